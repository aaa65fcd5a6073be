"""
WebSocket endpoint for realtime loan status events
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, status

from ..auth import Session
from ..errors import AuthenticationError
from ..realtime import Subscription

logger = logging.getLogger("loan_servicing.api.realtime")

router = APIRouter()


def _authenticate(websocket: WebSocket, token: Optional[str]) -> Optional[Session]:
    """Bearer header first, then the ``token`` query parameter (browsers cannot set headers)"""
    header = websocket.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        token = credentials
    if not token:
        return None
    try:
        return websocket.app.state.system.decode_token(token)
    except AuthenticationError:
        return None


async def _forward_events(websocket: WebSocket, subscription: Subscription) -> None:
    while True:
        await websocket.send_json(await subscription.next_message())


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/ws")
async def status_events(websocket: WebSocket, token: Optional[str] = None):
    """
    Stream ``loan:statusChanged`` events for the caller's channels.

    There is no replay: a client that reconnects must re-fetch its loans.
    """
    session = _authenticate(websocket, token)
    if session is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    system = websocket.app.state.system
    subscription = system.hub.connect(session, loop=asyncio.get_running_loop())
    logger.info(f"Realtime session opened for {session.user_id}")

    forwarder = asyncio.ensure_future(_forward_events(websocket, subscription))
    listener = asyncio.ensure_future(_wait_for_disconnect(websocket))
    try:
        await websocket.send_json({
            "event": "connected",
            "data": {"userId": session.user_id, "channels": sorted(subscription.channels)}
        })
        await asyncio.wait({forwarder, listener}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        forwarder.cancel()
        listener.cancel()
        subscription.close()
        logger.info(f"Realtime session closed for {session.user_id}")
