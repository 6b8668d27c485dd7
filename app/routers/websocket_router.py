import asyncio
import logging

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect

from app.auth import decode_access_token
from app.core.family_access import user_family_ids
from app.database import SessionLocal

router = APIRouter(tags=["WebSocket"])

logger = logging.getLogger(__name__)


def _allowed_family_ids(user_id: str) -> set[str]:
    db = SessionLocal()
    try:
        return set(user_family_ids(db, user_id))
    finally:
        db.close()


@router.websocket("/ws")
async def notifications_socket(websocket: WebSocket):
    """
    Push channel for notifications. Authenticated with `?token=<jwt>`; the
    client subscribes to family broadcasts with
    {"type": "join-families", "familyIds": [...]}.
    """
    connections = websocket.app.state.connections

    token = websocket.query_params.get("token")
    if not token:
        await websocket.close(code=4001, reason="Access token required")
        return
    try:
        user_id = decode_access_token(token)
    except HTTPException as e:
        await websocket.close(code=4001, reason=e.detail)
        return

    await connections.connect(websocket, user_id)

    try:
        while True:
            message = await websocket.receive_json()
            if not isinstance(message, dict) or message.get("type") != "join-families":
                continue

            # Only rooms of families the user actually belongs to
            allowed = await asyncio.to_thread(_allowed_family_ids, user_id)
            requested = [str(f) for f in message.get("familyIds") or []]
            joined = [f for f in requested if f in allowed]
            connections.join_families(user_id, joined)

            await websocket.send_json({"type": "families-joined", "familyIds": joined})
    except WebSocketDisconnect:
        pass
    except ValueError as e:
        logger.warning("Closing socket of user %s after bad message: %s", user_id, e)
    finally:
        connections.disconnect(websocket, user_id)
