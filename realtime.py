import logging
from typing import Any, Dict

import anyio
import socketio
from pymongo.database import Database

from auth import user_for_token
from config import Settings
from errors import Unauthenticated

logger = logging.getLogger(__name__)


def user_room(user_id: Any) -> str:
    return f"user:{user_id}"


class Notifier:
    """Socket.IO server that pushes events to logged-in users."""

    def __init__(self, settings: Settings, db: Database, mount_path: str = "/ws"):
        self.settings = settings
        self.db = db
        self.mount_path = mount_path
        self.sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=settings.cors_origins)
        # Starlette hands mounted apps the full request path, so the prefix is part of it
        self.asgi_app = socketio.ASGIApp(self.sio, socketio_path=f"{mount_path}/socket.io")
        self.sio.on("connect", self.connect)

    async def connect(self, sid, environ, auth=None):
        token = (auth or {}).get("token")
        if not token:
            return False
        try:
            user = await anyio.to_thread.run_sync(user_for_token, self.db, token, self.settings)
        except Unauthenticated:
            return False
        await self.sio.enter_room(sid, user_room(user["_id"]))
        return True

    def notify(self, event: str, payload: Dict[str, Any], user_id: Any) -> None:
        """Emit from a worker thread; failures are logged, never raised."""
        try:
            anyio.from_thread.run(self.sio.emit, event, payload, user_room(user_id))
        except Exception:
            logger.warning("Realtime event %s to %s failed", event, user_id, exc_info=True)
