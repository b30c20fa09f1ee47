# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20260206v1
# ---------------------------------------------------------------------------
"""
Alembic environment for the userhub schema.

Connections are built by ``database.make_engine`` so migrations get the same
connect timeout and pool settings as the running service.  The URL comes
from ``Settings`` unless overridden on the command line:

    alembic upgrade head
    alembic -x db_url=sqlite:///./userhub.db upgrade head
"""

import os
import sys

_BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)

from alembic import context                      # noqa: E402

from core.config import Settings                 # noqa: E402
from core.logger import get_logger               # noqa: E402
from database import Base, make_engine           # noqa: E402

# Registers the tables on Base.metadata for --autogenerate
import models.user        # noqa: F401, E402
import models.audit_log   # noqa: F401, E402

log = get_logger("migrations")


def _settings() -> Settings:
    override = context.get_x_argument(as_dictionary=True).get("db_url")
    if override:
        return Settings(database_url=override)
    return Settings()


def _configure(**kwargs) -> None:
    # SQLite cannot ALTER most constraints in place; batch mode rebuilds tables
    url = kwargs.get("url") or kwargs["connection"].engine.url
    context.configure(
        target_metadata=Base.metadata,
        compare_type=True,
        render_as_batch=str(url).startswith("sqlite"),
        **kwargs,
    )


def run_migrations_online(settings: Settings) -> None:
    engine = make_engine(settings)
    try:
        with engine.connect() as conn:
            _configure(connection=conn)
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


def run_migrations_offline(settings: Settings) -> None:
    _configure(url=settings.database_url, literal_binds=True)
    with context.begin_transaction():
        context.run_migrations()


_active = _settings()
log.info("Running migrations (%s mode)", "offline" if context.is_offline_mode() else "online")
if context.is_offline_mode():
    run_migrations_offline(_active)
else:
    run_migrations_online(_active)
