# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20260206v1
# ---------------------------------------------------------------------------
"""
FastAPI application factory.

Responsibilities
----------------
* Build the process-wide components once from ``Settings``: DB engine and
  session factory, password hasher, token service, realtime registry.
* Register CORS, request-logging and expired-token-sweep middleware.
* Mount the feature routers (auth, users) and the JSON error envelope.
* Wrap the app in ``socketio.ASGIApp`` so one uvicorn process serves both
  HTTP and the Socket.IO channel:

      uvicorn main:build_asgi_app --factory --app-dir backend
"""

import time
from datetime import timedelta
from typing import Optional

import socketio
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from starlette.middleware.base import BaseHTTPMiddleware

from auth.router import router as auth_router
from users.router import router as users_router
from core.config import Settings
from core.errors import register_error_handlers
from core.guards import ExpiredTokenSweepMiddleware
from core.logger import logger
from core.realtime import RealtimeRegistry
from core.security import PasswordHasher, TokenService, get_client_ip
from database import make_engine, make_session_factory


# ---------------------------------------------------------------------------
# Request-logging middleware
# ---------------------------------------------------------------------------
# Logs every inbound request: method, path, client IP, status, latency.
# Bodies (passwords, tokens) are never echoed – only the URL and metadata.


class _RequestLogMiddleware(BaseHTTPMiddleware):
    """Log method, path, client IP, response status and latency (ms)."""

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.perf_counter()
        response: Response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000

        logger.info(
            "%s %s | client=%s status=%d latency=%.1fms",
            request.method,
            request.url.path,
            get_client_ip(request),
            response.status_code,
            elapsed_ms,
        )
        return response


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the HTTP application.  *settings* defaults to the environment."""
    settings = settings or Settings()

    engine = make_engine(settings)
    session_factory = make_session_factory(engine)
    tokens = TokenService(
        settings.secret_key,
        timedelta(minutes=settings.access_token_expire_minutes),
    )

    app = FastAPI(title="userhub", version="1.0.0")
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.hasher = PasswordHasher(settings.password_hash_rounds)
    app.state.tokens = tokens
    app.state.realtime = RealtimeRegistry(tokens, session_factory, settings.cors_origins)

    # -----------------------------------------------------------------------
    # Middleware (last added runs first)
    # -----------------------------------------------------------------------
    app.add_middleware(ExpiredTokenSweepMiddleware, tokens=tokens)
    app.add_middleware(_RequestLogMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["Authorization", "Content-Type"],
    )

    register_error_handlers(app, debug=settings.is_development)

    # -----------------------------------------------------------------------
    # Routers
    # -----------------------------------------------------------------------
    app.include_router(auth_router)
    app.include_router(users_router)

    @app.on_event("startup")
    async def _on_startup():
        logger.info("userhub starting up (environment=%s)", settings.environment)
        if settings.is_production and settings.allow_public_admin_signup:
            logger.warning(
                "ALLOW_PUBLIC_ADMIN_SIGNUP is enabled in production: anyone can "
                "register an admin account"
            )

    @app.on_event("shutdown")
    async def _on_shutdown():
        logger.info("userhub shutting down")
        engine.dispose()

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


def build_asgi_app(settings: Optional[Settings] = None) -> socketio.ASGIApp:
    """HTTP app with the Socket.IO endpoint mounted at /socket.io."""
    app = create_app(settings)
    return socketio.ASGIApp(app.state.realtime.sio, other_asgi_app=app)
