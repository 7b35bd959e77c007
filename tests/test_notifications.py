"""Unit tests for app.services.notifications: channel routing, fan-out and delivery semantics."""

import asyncio
import threading
import unittest

from app.services.notifications import (
    ADMINS_CHANNEL,
    POSTING_DELETED,
    ChannelHub,
    Notifier,
    channels_for,
    recipient_channels,
    user_channel,
)


async def _drain(subscription, settle: float = 0.05) -> list:
    """Collect whatever has been delivered to a subscription so far."""
    await asyncio.sleep(settle)
    messages = []
    while not subscription.queue.empty():
        messages.append(subscription.queue.get_nowait())
    return messages


class TestChannelNames(unittest.TestCase):
    def test_user_channel_is_lower_cased(self) -> None:
        self.assertEqual(user_channel(" Ana@Voluntarios.org "), "user:ana@voluntarios.org")

    def test_channels_for_connection(self) -> None:
        self.assertEqual(channels_for(None, False), set())
        self.assertEqual(channels_for("ana@voluntarios.org", False), {"user:ana@voluntarios.org"})
        self.assertEqual(
            channels_for("admin@voluntarios.org", True),
            {"user:admin@voluntarios.org", ADMINS_CHANNEL},
        )

    def test_recipients_always_include_admins(self) -> None:
        self.assertEqual(recipient_channels([]), {ADMINS_CHANNEL})
        self.assertEqual(
            recipient_channels(["ana@voluntarios.org", None, "ANA@voluntarios.org", "bea@voluntarios.org"]),
            {ADMINS_CHANNEL, "user:ana@voluntarios.org", "user:bea@voluntarios.org"},
        )


class TestChannelHub(unittest.TestCase):
    """Subscriptions receive events for their channels only, once each."""

    def test_owner_and_admins_receive_other_user_does_not(self) -> None:
        async def scenario() -> tuple[list, list, list]:
            hub = ChannelHub()
            notifier = Notifier(hub)
            owner = hub.subscribe(channels_for("ana@voluntarios.org", False))
            admin = hub.subscribe(channels_for("admin@voluntarios.org", True))
            other = hub.subscribe(channels_for("bea@voluntarios.org", False))
            delivered = notifier.notify(POSTING_DELETED, {"id": "7"}, ["ana@voluntarios.org"])
            self.assertEqual(delivered, 2)
            return await _drain(owner), await _drain(admin), await _drain(other)

        owner_msgs, admin_msgs, other_msgs = asyncio.run(scenario())
        self.assertEqual([m.as_dict() for m in owner_msgs], [{"event": POSTING_DELETED, "data": {"id": "7"}}])
        self.assertEqual([m.as_dict() for m in admin_msgs], [{"event": POSTING_DELETED, "data": {"id": "7"}}])
        self.assertEqual(other_msgs, [])

    def test_admin_owner_receives_event_once(self) -> None:
        async def scenario() -> list:
            hub = ChannelHub()
            admin = hub.subscribe(channels_for("admin@voluntarios.org", True))
            hub.broadcast(recipient_channels(["admin@voluntarios.org"]), "posting_created", {"id": "1"})
            return await _drain(admin)

        self.assertEqual(len(asyncio.run(scenario())), 1)

    def test_anonymous_subscription_receives_nothing(self) -> None:
        async def scenario() -> tuple[int, list]:
            hub = ChannelHub()
            anonymous = hub.subscribe(set())
            hub.publish(ADMINS_CHANNEL, "posting_created", {"id": "1"})
            return hub.connection_count, await _drain(anonymous)

        count, messages = asyncio.run(scenario())
        self.assertEqual(count, 1)
        self.assertEqual(messages, [])

    def test_closing_prunes_registry(self) -> None:
        async def scenario() -> tuple[int, int, int]:
            hub = ChannelHub()
            async with hub.subscribe({ADMINS_CHANNEL}):
                during = hub.subscribers(ADMINS_CHANNEL)
            delivered = hub.publish(ADMINS_CHANNEL, "posting_created", {"id": "1"})
            return during, hub.connection_count, delivered

        self.assertEqual(asyncio.run(scenario()), (1, 0, 0))

    def test_full_queue_drops_message(self) -> None:
        async def scenario():
            hub = ChannelHub(queue_size=1)
            subscription = hub.subscribe({ADMINS_CHANNEL})
            hub.publish(ADMINS_CHANNEL, "posting_created", {"id": "1"})
            hub.publish(ADMINS_CHANNEL, "posting_created", {"id": "2"})
            messages = await _drain(subscription)
            return messages, subscription.dropped

        messages, dropped = asyncio.run(scenario())
        self.assertEqual([m.data["id"] for m in messages], ["1"])
        self.assertEqual(dropped, 1)

    def test_publish_from_worker_thread(self) -> None:
        async def scenario():
            hub = ChannelHub()
            subscription = hub.subscribe({user_channel("ana@voluntarios.org")})
            worker = threading.Thread(
                target=hub.publish,
                args=(user_channel("ana@voluntarios.org"), "posting_updated", {"id": "3", "title": "T"}),
            )
            worker.start()
            await asyncio.get_running_loop().run_in_executor(None, worker.join)
            return await asyncio.wait_for(subscription.get(), timeout=1)

        message = asyncio.run(scenario())
        self.assertEqual(message.event, "posting_updated")
        self.assertEqual(message.data, {"id": "3", "title": "T"})


class TestNotifier(unittest.TestCase):
    """Notifier never raises, with or without a hub."""

    def test_without_hub_is_noop(self) -> None:
        self.assertEqual(Notifier(None).notify(POSTING_DELETED, {"id": "1"}, ["a@voluntarios.org"]), 0)

    def test_broadcast_error_is_swallowed(self) -> None:
        class BrokenHub(ChannelHub):
            def broadcast(self, channels, event, payload):
                raise RuntimeError("boom")

        with self.assertLogs("app.services.notifications", level="ERROR"):
            delivered = Notifier(BrokenHub()).notify(POSTING_DELETED, {"id": "1"}, [])
        self.assertEqual(delivered, 0)


if __name__ == "__main__":
    unittest.main()
