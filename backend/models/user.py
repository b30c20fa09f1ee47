# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20260206v1
# ---------------------------------------------------------------------------
"""User (credential) ORM model."""

import uuid

from sqlalchemy import Column, String, Enum, DateTime
from sqlalchemy.sql import func

from core.approval import ApprovalStatus, Role
from database import Base


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


def new_user_id() -> str:
    return uuid.uuid4().hex


class User(Base):
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=new_user_id)
    name = Column(String(255), nullable=False)
    # Always stored lower-cased and trimmed (see users.service.normalize_email)
    email = Column(String(255), unique=True, nullable=False, index=True)
    # passlib embeds salt and round count in the hash string.
    password_hash = Column(String(255), nullable=False)
    role = Column(
        Enum(Role, name="user_role", values_callable=_enum_values),
        nullable=False,
        default=Role.USER,
        index=True,
    )
    approval_status = Column(
        Enum(ApprovalStatus, name="approval_status", values_callable=_enum_values),
        nullable=False,
        default=ApprovalStatus.PENDING,
        index=True,
    )
    last_login = Column(DateTime(timezone=True), nullable=True)
    # SHA-256 digest of the outstanding password-recovery token, if any
    reset_token_hash = Column(String(64), nullable=True)
    reset_token_expires = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    # Derived views of approval_status kept for API consumers that still read
    # the approved/pending pair.
    @property
    def approved(self) -> bool:
        return self.approval_status == ApprovalStatus.APPROVED

    @property
    def pending(self) -> bool:
        return self.approval_status == ApprovalStatus.PENDING

    def __repr__(self) -> str:
        return f"<User id={self.id} role={self.role} status={self.approval_status}>"
