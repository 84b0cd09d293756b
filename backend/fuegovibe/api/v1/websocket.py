"""WebSocket endpoint streaming live event projections."""

import asyncio
import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from fuegovibe.core.security import verify_token
from fuegovibe.services.websocket_manager import manager

logger = logging.getLogger(__name__)

router = APIRouter()


async def _receive_loop(websocket: WebSocket, user_id: str) -> None:
    # Wait for messages from client (for keepalive/ping)
    while True:
        data = await websocket.receive_text()
        if data == "ping":
            await websocket.send_json({"type": "pong"})


@router.websocket("/events")
async def websocket_events(websocket: WebSocket, token: str = Query(...)):
    """
    WebSocket endpoint for live event lists.

    Client connects with: ws://host/api/v1/ws/events?token=JWT_TOKEN

    The first message is {"type": "connected", ...}. After it, every change to
    one of the user's projections is pushed as:
    {
        "type": "snapshot",
        "projection": "all_public_events" | "my_events" | "joined_events",
        "events": [...]
    }
    """
    # Token is passed as query parameter since WebSocket doesn't support headers
    try:
        payload = verify_token(token, token_type="access")
        user_id = payload["sub"]
    except (ValueError, KeyError) as e:
        logger.error(f"WebSocket auth error: {e}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    session = await manager.connect(websocket, user_id, websocket.app.state.store)
    logger.info(f"WebSocket connection established for user {user_id}")
    sender = asyncio.create_task(manager.pump(session))

    try:
        await _receive_loop(websocket, user_id)
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected gracefully for user {user_id}")
    except Exception as e:
        logger.error(f"WebSocket error for user {user_id}: {e}", exc_info=True)
    finally:
        sender.cancel()
        await manager.disconnect(session)
        # wait() does not re-raise the sender's cancellation
        await asyncio.wait({sender})
        logger.info(f"WebSocket connection closed for user {user_id}")
