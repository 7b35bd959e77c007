"""Real-time notification fan-out: in-process channel hub and the posting event notifier.

Delivery is best-effort. A recipient without an open connection misses the event; the
store stays the source of truth and clients re-fetch on reconnect.
"""

import asyncio
import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

ADMINS_CHANNEL = "admins"

POSTING_CREATED = "posting_created"
POSTING_UPDATED = "posting_updated"
POSTING_DELETED = "posting_deleted"
POSTING_SELECTED = "posting_selected"

DEFAULT_QUEUE_SIZE = 100


def user_channel(email: str) -> str:
    """Private channel of one user, keyed by lower-cased email."""
    return f"user:{email.strip().lower()}"


def channels_for(email: str | None, is_admin: bool) -> set[str]:
    """Channels a connection joins: its own user channel, plus admins for administrators."""
    if not email:
        return set()
    channels = {user_channel(email)}
    if is_admin:
        channels.add(ADMINS_CHANNEL)
    return channels


def recipient_channels(owner_emails: Iterable[str | None]) -> set[str]:
    """Administrators always, plus the private channel of every owner involved."""
    channels = {ADMINS_CHANNEL}
    for email in owner_emails:
        if email:
            channels.add(user_channel(email))
    return channels


@dataclass(frozen=True)
class Message:
    event: str
    data: dict[str, Any]

    def as_dict(self) -> dict[str, Any]:
        return {"event": self.event, "data": self.data}


@dataclass(eq=False)
class Subscription:
    """One connection's membership; iterate it to receive messages for its channels."""

    hub: "ChannelHub"
    channels: frozenset[str]
    queue: asyncio.Queue = field(repr=False)
    loop: asyncio.AbstractEventLoop = field(repr=False)
    dropped: int = 0

    def offer(self, message: Message) -> bool:
        """Hand a message to the owning event loop; safe to call from any thread."""
        try:
            self.loop.call_soon_threadsafe(self._put, message)
        except RuntimeError:
            # Loop already closed; the connection is gone.
            self.hub.unsubscribe(self)
            return False
        return True

    def _put(self, message: Message) -> None:
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "Realtime queue full; event dropped",
                extra={"event": message.event, "channels": sorted(self.channels)},
            )

    async def get(self) -> Message:
        return await self.queue.get()

    def close(self) -> None:
        self.hub.unsubscribe(self)

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Message:
        return await self.get()


class ChannelHub:
    """
    Process-local channel registry (channel -> subscriptions).

    Rebuilt from scratch on restart; entries are removed when a subscription closes.
    """

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self.queue_size = queue_size
        self._channels: dict[str, set[Subscription]] = {}
        self._subscriptions: set[Subscription] = set()
        self._lock = threading.Lock()

    def subscribe(self, channels: Iterable[str]) -> Subscription:
        """Register a subscription on the running event loop. An empty channel set is allowed."""
        subscription = Subscription(
            hub=self,
            channels=frozenset(channels),
            queue=asyncio.Queue(maxsize=self.queue_size),
            loop=asyncio.get_running_loop(),
        )
        with self._lock:
            self._subscriptions.add(subscription)
            for channel in subscription.channels:
                self._channels.setdefault(channel, set()).add(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscriptions.discard(subscription)
            for channel in subscription.channels:
                members = self._channels.get(channel)
                if members is None:
                    continue
                members.discard(subscription)
                if not members:
                    del self._channels[channel]

    def publish(self, channel: str, event: str, payload: dict[str, Any]) -> int:
        return self.broadcast([channel], event, payload)

    def broadcast(self, channels: Iterable[str], event: str, payload: dict[str, Any]) -> int:
        """Deliver to every subscription in any of the channels, once each. Returns deliveries."""
        with self._lock:
            targets: set[Subscription] = set()
            for channel in channels:
                targets.update(self._channels.get(channel, ()))
        message = Message(event=event, data=dict(payload))
        return sum(1 for subscription in targets if subscription.offer(message))

    def subscribers(self, channel: str) -> int:
        with self._lock:
            return len(self._channels.get(channel, ()))

    @property
    def connection_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)


class Notifier:
    """Fans posting events out to administrators and the owners involved. Never raises."""

    def __init__(self, hub: ChannelHub | None) -> None:
        self.hub = hub

    def notify(self, event: str, payload: dict[str, Any], owner_emails: Iterable[str | None]) -> int:
        if self.hub is None:
            return 0
        try:
            channels = recipient_channels(owner_emails)
            delivered = self.hub.broadcast(channels, event, payload)
        except Exception:
            logger.exception(
                "Notification fan-out failed",
                extra={"event": event, "posting_id": payload.get("id")},
            )
            return 0
        logger.debug(
            "Notification sent",
            extra={"event": event, "channels": sorted(channels), "delivered": delivered},
        )
        return delivered
