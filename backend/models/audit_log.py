# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20260206v1
# ---------------------------------------------------------------------------
"""
AuditLog ORM model – one row per account-lifecycle event.

Actions written by the routers:

    register, create_user, user_login, approve_user, reject_user,
    update_user, delete_user, reset_requested, password_reset

``actor_id`` is the authenticated caller that triggered the event: the admin
for approve/reject and provisioning, the user themself for login and
self-service edits, NULL for anonymous signup and recovery requests.
``target_user_id`` is the account the event changed.  Both are nulled when
that account is deleted, so ``delete_user`` rows keep the removed id and
e-mail in ``detail``.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.sql import func

from database import Base

ACTIONS = (
    "register",
    "create_user",
    "user_login",
    "approve_user",
    "reject_user",
    "update_user",
    "delete_user",
    "reset_requested",
    "password_reset",
)


def _user_fk():
    return ForeignKey("users.id", ondelete="SET NULL")


class AuditLog(Base):
    __tablename__ = "audit_logs"
    __table_args__ = (
        # GET /users/audit-logs?user_id=... reads a user's history newest-first
        Index("ix_audit_logs_target_created", "target_user_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    actor_id = Column(String(32), _user_fk(), nullable=True, index=True)
    target_user_id = Column(String(32), _user_fk(), nullable=True)
    action = Column(String(64), nullable=False, index=True)
    detail = Column(Text, nullable=True)
    request_ip = Column(String(45), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} actor={self.actor_id} target={self.target_user_id}>"
