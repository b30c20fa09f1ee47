# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20260206v1
# ---------------------------------------------------------------------------
"""
Roles and the account-approval state machine.

    pending ──approve──▶ approved
       │
       └────reject────▶ rejected

``approved`` and ``rejected`` are terminal for the approve/reject actions.
Only an admin editing the raw status (PUT /users/{id}) can move an account
out of a decided state.  Admins bypass the gate but still need a password.
"""

import enum
from dataclasses import dataclass
from typing import Optional

from core.errors import InvalidRole, InvalidTransition, ValidationFailed


class Role(str, enum.Enum):
    ADMIN = "admin"
    USER = "user"


class ApprovalStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


VALID_ROLES = [r.value for r in Role]


def parse_role(value: Optional[str]) -> Role:
    """
    Resolve a client-supplied role against the closed :class:`Role` enum.
    Matching is case-insensitive; anything else is rejected with the list of
    valid roles so every entry point answers the same way.
    """
    normalized = (value or "").strip().lower()
    try:
        return Role(normalized)
    except ValueError:
        raise InvalidRole(f"Invalid role '{value}'", valid_roles=VALID_ROLES) from None


def parse_approval_status(value: str) -> ApprovalStatus:
    try:
        return ApprovalStatus(value.strip().lower())
    except ValueError:
        raise ValidationFailed(
            f"Unknown approval status '{value}'",
            code="INVALID_APPROVAL_STATUS",
            valid_statuses=[s.value for s in ApprovalStatus],
        ) from None


@dataclass(frozen=True)
class GateDecision:
    allowed: bool
    reason: Optional[str] = None


_DENIAL_REASONS = {
    ApprovalStatus.PENDING: "Account pending approval by an administrator",
    ApprovalStatus.REJECTED: "Account registration was rejected by an administrator",
}


def can_authenticate(user) -> GateDecision:
    """Pure decision over a credential snapshot (anything with role/approval_status)."""
    if user.role == Role.ADMIN:
        return GateDecision(True)
    if user.approval_status == ApprovalStatus.APPROVED:
        return GateDecision(True)
    return GateDecision(False, _DENIAL_REASONS[ApprovalStatus(user.approval_status)])


def approve(user) -> bool:
    """Move *user* to approved.  Returns False when it already was."""
    if user.approval_status == ApprovalStatus.APPROVED:
        return False
    if user.approval_status == ApprovalStatus.REJECTED:
        raise InvalidTransition("Rejected accounts cannot be approved; edit the account status instead")
    user.approval_status = ApprovalStatus.APPROVED
    return True


def reject(user) -> bool:
    """Move *user* to rejected.  Returns False when it already was."""
    if user.approval_status == ApprovalStatus.REJECTED:
        return False
    if user.approval_status == ApprovalStatus.APPROVED:
        raise InvalidTransition("Approved accounts cannot be rejected; edit the account status instead")
    user.approval_status = ApprovalStatus.REJECTED
    return True
