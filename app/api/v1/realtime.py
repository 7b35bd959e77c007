"""Realtime channel: WebSocket connections receiving posting events for their channels."""

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.api.v1.auth import resolve_identity
from app.services.notifications import ChannelHub, Subscription, channels_for

logger = logging.getLogger(__name__)
router = APIRouter()

CONNECTED_EVENT = "connected"


async def _forward(websocket: WebSocket, subscription: Subscription) -> None:
    async for message in subscription:
        await websocket.send_json(message.as_dict())


@router.websocket("/realtime")
async def realtime(websocket: WebSocket) -> None:
    """
    Accept every connection. A valid token (Authorization header, ?token= or the login
    session) joins user:<email>, and admins for administrators; anonymous connections join
    nothing and only receive the greeting.
    """
    resolved = resolve_identity(websocket, allow_query_token=True)
    identity = resolved.identity
    channels = channels_for(identity.email if identity else None, bool(identity and identity.is_admin))

    await websocket.accept()
    hub: ChannelHub = websocket.app.state.hub
    async with hub.subscribe(channels) as subscription:
        await websocket.send_json(
            {
                "event": CONNECTED_EVENT,
                "data": {"channels": sorted(channels), "authenticated": identity is not None},
            }
        )
        logger.info(
            "Realtime connection opened",
            extra={"channels": sorted(channels), "connections": hub.connection_count},
        )
        sender = asyncio.create_task(_forward(websocket, subscription))
        try:
            while True:
                # Client frames are ignored; receiving detects the disconnect.
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
        finally:
            sender.cancel()
            try:
                await sender
            except (asyncio.CancelledError, WebSocketDisconnect, RuntimeError):
                pass
    logger.info("Realtime connection closed", extra={"connections": hub.connection_count})
