# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20260206v1
# ---------------------------------------------------------------------------
"""
Bootstrap script – creates the first admin user.

Run once after the initial migration:
    python bin/seed_admin.py

The script reads FIRST_ADMIN_NAME, FIRST_ADMIN_EMAIL and FIRST_ADMIN_PASSWORD
from the environment / etc/app.conf.  This is the admin-provisioning path:
the account is created already approved.
"""

import sys
import os

# ---------------------------------------------------------------------------
# Path setup so backend modules are importable
# ---------------------------------------------------------------------------
# bin/seed_admin.py  →  ../  →  project root
_PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
_BACKEND_DIR  = os.path.join(_PROJECT_ROOT, "backend")
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)

from core.approval import Role                          # noqa: E402
from core.config import Settings                        # noqa: E402
from core.errors import ApiError                        # noqa: E402
from core.logger import logger                          # noqa: E402
from core.security import PasswordHasher                # noqa: E402
from database import make_engine, make_session_factory  # noqa: E402
from users import service                               # noqa: E402


def seed(settings: Settings) -> bool:
    """Create the configured admin.  Returns True when a row was inserted."""
    if not settings.first_admin_email or not settings.first_admin_password:
        logger.info("[seed_admin] FIRST_ADMIN_EMAIL or FIRST_ADMIN_PASSWORD not set – nothing to do.")
        return False

    engine = make_engine(settings)
    db = make_session_factory(engine)()
    try:
        if service.find_by_email(db, settings.first_admin_email):
            logger.info("[seed_admin] Admin '%s' already exists – skipping.", settings.first_admin_email)
            return False

        admin = service.create_user(
            db,
            PasswordHasher(settings.password_hash_rounds),
            name=settings.first_admin_name,
            email=settings.first_admin_email,
            password=settings.first_admin_password,
            role=Role.ADMIN,
            approved=True,
        )
        service.record_audit(db, "create_user", target_user_id=admin.id, detail="seed_admin")
        db.commit()
        logger.info("[seed_admin] Admin '%s' created (id=%s).", admin.email, admin.id)
        return True
    finally:
        db.close()
        engine.dispose()


if __name__ == "__main__":
    try:
        seed(Settings())
    except ApiError as exc:
        logger.error("[seed_admin] %s: %s", exc.code, exc.message)
        sys.exit(1)
