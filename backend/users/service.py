# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20260206v1
# ---------------------------------------------------------------------------
"""
Credential-store helpers shared by the auth and users routers.

Input validation lives here so that every entry point (register, the
self-registration variant, edits, password recovery, seeding) enforces the
same rules before anything reaches the database.
"""

import re
from typing import Optional

from sqlalchemy.orm import Session

from core.approval import ApprovalStatus, Role
from core.errors import DuplicateEmail, Forbidden, UserNotFound, ValidationFailed
from core.security import PasswordHasher
from models.audit_log import AuditLog
from models.user import User

MIN_PASSWORD_LENGTH = 6

# Each repeated group is anchored on a literal dot, so matching stays linear
# on near-miss input.
_EMAIL_RE = re.compile(r"^[\w.+-]+@[\w-]+(\.[\w-]+)*\.\w{2,}$")


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def validate_email(email: str) -> str:
    """Return the normalized address or raise ``VALIDATION_ERROR``."""
    normalized = normalize_email(email)
    if not _EMAIL_RE.match(normalized):
        raise ValidationFailed("Please provide a valid email address", code="INVALID_EMAIL")
    return normalized


def validate_password(password: Optional[str]) -> str:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
            code="PASSWORD_TOO_SHORT",
        )
    return password


def validate_name(name: Optional[str]) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationFailed("Name is required", code="NAME_REQUIRED")
    return cleaned


def check_admin_signup(role: Role, *, provisioned_by_admin: bool, allow_public: bool) -> None:
    """
    Refuse to create an ``admin`` account unless an authenticated admin asks
    for it or public admin signup is enabled.  Shared by every signup route.
    """
    if role == Role.ADMIN and not provisioned_by_admin and not allow_public:
        raise Forbidden(
            "Only an administrator can create admin accounts",
            code="ADMIN_SIGNUP_FORBIDDEN",
        )


def find_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == normalize_email(email)).first()


def get_user_or_404(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if not user:
        raise UserNotFound()
    return user


def create_user(
    db: Session,
    hasher: PasswordHasher,
    *,
    name: str,
    email: str,
    password: str,
    role: Role,
    approved: bool = False,
) -> User:
    """
    Validate and insert a new credential.  The caller commits.

    Raises ``EMAIL_EXISTS`` (409) when the address is taken.
    """
    name = validate_name(name)
    email = validate_email(email)
    validate_password(password)

    if find_by_email(db, email):
        raise DuplicateEmail()

    user = User(
        name=name,
        email=email,
        password_hash=hasher.hash(password),
        role=role,
        approval_status=ApprovalStatus.APPROVED if approved else ApprovalStatus.PENDING,
    )
    db.add(user)
    db.flush()  # assigns user.id
    return user


def email_taken_by_other(db: Session, email: str, user_id: str) -> bool:
    return (
        db.query(User)
        .filter(User.email == normalize_email(email), User.id != user_id)
        .first()
        is not None
    )


def record_audit(
    db: Session,
    action: str,
    *,
    actor_id: Optional[str] = None,
    target_user_id: Optional[str] = None,
    detail: Optional[str] = None,
    request_ip: Optional[str] = None,
) -> None:
    db.add(AuditLog(
        actor_id=actor_id,
        target_user_id=target_user_id,
        action=action,
        detail=detail,
        request_ip=request_ip,
    ))
