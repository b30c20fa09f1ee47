# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20260206v1
# ---------------------------------------------------------------------------
"""
SQLAlchemy engine factory, declarative base, and the FastAPI dependency
that provides a DB session per request.

The engine and session factory are built from the process ``Settings`` by
``create_app`` and live on ``app.state``; nothing here is module-global
except the declarative base.
"""

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from core.config import Settings

Base = declarative_base()


def make_engine(settings: Settings) -> Engine:
    """
    Build the engine for ``settings.database_url``.

    Every backend gets a bounded connect timeout so an unreachable store
    fails the request instead of hanging it.  In-memory SQLite is pinned to a
    single shared connection, otherwise each session would see an empty DB.
    """
    url = make_url(settings.database_url)
    timeout = settings.db_connect_timeout

    if url.get_backend_name() == "sqlite":
        kwargs = {"connect_args": {"check_same_thread": False, "timeout": timeout}}
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)

    # pool_pre_ping keeps idle connections alive across MySQL's wait_timeout
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_timeout=timeout,
        connect_args={"connect_timeout": timeout},
    )


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db(request: Request):
    """
    FastAPI dependency.  Yields a session for the duration of the request,
    then closes it.  Use with Depends(get_db).
    """
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
