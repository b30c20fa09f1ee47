# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20260206v1
# ---------------------------------------------------------------------------
"""
Socket.IO session registry.

A connection is admitted only if its handshake carries ``{"token": ...}``
that passes the same checks as an HTTP request (signature, expiry, live
credential, approval gate).  Admitted sockets join ``user_<id>`` and, for
admins, ``admin_room``; routers push change notifications to those rooms.
"""

from typing import Any, Optional

import socketio
from socketio.exceptions import ConnectionRefusedError as SocketRefused
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from starlette.requests import Request
from starlette.concurrency import run_in_threadpool

from core.errors import ApiError
from core.guards import Identity, load_identity
from core.logger import get_logger
from core.security import TokenService

log = get_logger("realtime")

ADMIN_ROOM = "admin_room"


def user_room(user_id: str) -> str:
    return f"user_{user_id}"


class RealtimeRegistry:
    def __init__(
        self,
        tokens: TokenService,
        session_factory: sessionmaker,
        cors_origins: Optional[list] = None,
        sio: Optional[socketio.AsyncServer] = None,
    ):
        self.tokens = tokens
        self.session_factory = session_factory
        self.sio = sio or socketio.AsyncServer(
            async_mode="asgi",
            cors_allowed_origins=cors_origins or [],
        )
        self.sio.on("connect", self.connect)
        self.sio.on("disconnect", self.disconnect)

    # -- handshake -------------------------------------------------------

    async def connect(self, sid: str, environ: dict, auth: Optional[dict] = None):
        token = (auth or {}).get("token") if isinstance(auth, dict) else None
        if not token:
            log.warning("Socket %s refused: no token in handshake", sid)
            raise SocketRefused("Authentication error")

        try:
            claims = self.tokens.verify(token)
            identity = await run_in_threadpool(self._load, claims)
        except ApiError as exc:
            log.warning("Socket %s refused: %s", sid, exc.code)
            raise SocketRefused("Authentication error") from exc
        except SQLAlchemyError as exc:
            log.exception("Socket %s refused: credential store failure", sid)
            raise SocketRefused("Authentication error") from exc

        await self.sio.save_session(sid, {"user_id": identity.id, "role": identity.role})
        await self.sio.enter_room(sid, user_room(identity.id))
        if identity.is_admin:
            await self.sio.enter_room(sid, ADMIN_ROOM)
        log.info("Socket %s connected (user %s)", sid, identity.id)

    async def disconnect(self, sid: str, *args):
        log.info("Socket %s disconnected", sid)

    def _load(self, claims) -> Identity:
        db = self.session_factory()
        try:
            return load_identity(db, claims)
        finally:
            db.close()

    # -- fan-out ---------------------------------------------------------

    async def notify_user(self, user_id: str, event: str, data: Any) -> None:
        await self.sio.emit(event, data, room=user_room(user_id))

    async def notify_admins(self, event: str, data: Any) -> None:
        await self.sio.emit(event, data, room=ADMIN_ROOM)


def get_realtime(request: Request) -> RealtimeRegistry:
    return request.app.state.realtime
