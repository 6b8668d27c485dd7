import asyncio
import logging
from datetime import datetime
from typing import Dict, List, Optional, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Registry of open notification sockets.

    One instance lives on `app.state.connections` and is handed to whoever
    needs to push (Notifier, websocket router). Pushing is fire-and-forget:
    callers from worker threads are bridged onto the event loop that accepted
    the sockets, and send failures are logged and dropped.
    """

    def __init__(self):
        # user id -> open sockets (a user may have several tabs)
        self.active_connections: Dict[str, List[WebSocket]] = {}
        # user id -> family ids the client subscribed to
        self.user_families: Dict[str, Set[str]] = {}
        self.loop: Optional[asyncio.AbstractEventLoop] = None

    async def connect(self, websocket: WebSocket, user_id: str):
        await websocket.accept()
        self.loop = asyncio.get_running_loop()
        self.active_connections.setdefault(user_id, []).append(websocket)
        self.user_families.setdefault(user_id, set())

        logger.info("User %s connected to notifications socket", user_id)

        await websocket.send_json({
            "type": "connection_status",
            "status": "connected",
            "user_id": user_id,
            "timestamp": datetime.utcnow().isoformat(),
        })

    def disconnect(self, websocket: WebSocket, user_id: str):
        sockets = self.active_connections.get(user_id, [])
        if websocket in sockets:
            sockets.remove(websocket)

        if not sockets:
            self.active_connections.pop(user_id, None)
            self.user_families.pop(user_id, None)

        logger.info("User %s disconnected from notifications socket", user_id)

    def join_families(self, user_id: str, family_ids: List[str]):
        self.user_families[user_id] = {str(f) for f in family_ids}

    def is_connected(self, user_id: str) -> bool:
        return bool(self.active_connections.get(user_id))

    # --------------------------------------------------
    # SENDING
    # --------------------------------------------------
    async def send_personal_message(self, message: dict, user_id: str):
        for websocket in list(self.active_connections.get(user_id, [])):
            try:
                await websocket.send_json(message)
            except Exception as e:
                logger.warning("Dropping socket of user %s after send failure: %s", user_id, e)
                self.disconnect(websocket, user_id)

    async def send_family_message(self, message: dict, family_id: str, exclude_user: Optional[str] = None):
        for user_id, families in list(self.user_families.items()):
            if family_id in families and user_id != exclude_user:
                await self.send_personal_message(message, user_id)

    def notify_user(self, user_id: str, notification: dict):
        if not self.is_connected(user_id):
            return
        self._dispatch(
            self.send_personal_message({"type": "new-notification", "notification": notification}, user_id)
        )

    def notify_family(self, family_id: str, notification: dict, exclude_user: Optional[str] = None):
        self._dispatch(
            self.send_family_message(
                {"type": "new-notification", "notification": notification},
                family_id,
                exclude_user=exclude_user,
            )
        )

    def _dispatch(self, coro):
        loop = self.loop
        if loop is None or not loop.is_running():
            coro.close()
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            loop.create_task(coro)
        else:
            asyncio.run_coroutine_threadsafe(coro, loop)
