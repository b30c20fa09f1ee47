# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20260206v1
# ---------------------------------------------------------------------------
"""
User lifecycle endpoints – self-registration, approval decisions, edits,
deletion.

Listing, lookup and approve/reject are guarded by ``require_admin``.  Edits
and deletions are open to the account owner and to admins; role and raw
approval-status changes stay admin-only.
"""

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, status
from sqlalchemy.orm import Session

from database import get_db
from core import approval
from core.approval import ApprovalStatus, Role, parse_approval_status, parse_role
from core.config import Settings, get_settings
from core.errors import DuplicateEmail, Forbidden
from core.guards import Identity, get_current_identity, get_optional_identity, require_admin
from core.logger import get_logger
from core.realtime import RealtimeRegistry, get_realtime
from core.security import PasswordHasher, get_client_ip, get_hasher
from models.audit_log import AuditLog
from models.user import User
from users import service
from users.schemas import (
    AuditLogListResponse,
    AuditLogRow,
    CreateUserRequest,
    CreateUserResponse,
    DeleteUserResponse,
    UpdateUserRequest,
    UserActionResponse,
    UserListResponse,
    UserOut,
)

router = APIRouter(prefix="/users", tags=["users"])

log = get_logger("users")


def _dump(user: User) -> dict:
    return UserOut.model_validate(user).model_dump(mode="json")


# ---------------------------------------------------------------------------
# POST /users/  – self-registration / admin provisioning
# ---------------------------------------------------------------------------


@router.post("/", response_model=CreateUserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    body: CreateUserRequest,
    request: Request,
    background: BackgroundTasks,
    caller: Optional[Identity] = Depends(get_optional_identity),
    db: Session = Depends(get_db),
    hasher: PasswordHasher = Depends(get_hasher),
    settings: Settings = Depends(get_settings),
    realtime: RealtimeRegistry = Depends(get_realtime),
):
    """
    Create an account.  Accounts provisioned by an authenticated admin, and
    ``admin`` accounts, start approved; everything else waits for approval.
    """
    role = parse_role(body.role)
    provisioned_by_admin = caller is not None and caller.is_admin

    service.check_admin_signup(
        role,
        provisioned_by_admin=provisioned_by_admin,
        allow_public=settings.allow_public_admin_signup,
    )

    approved = provisioned_by_admin or role == Role.ADMIN
    user = service.create_user(
        db,
        hasher,
        name=body.name,
        email=body.email,
        password=body.password,
        role=role,
        approved=approved,
    )
    service.record_audit(
        db,
        "create_user",
        actor_id=caller.id if caller else None,
        target_user_id=user.id,
        detail=f"role={role.value}, approved={approved}",
        request_ip=get_client_ip(request),
    )
    db.commit()
    db.refresh(user)
    log.info("Created user %s (role=%s, approved=%s)", user.id, role.value, approved)

    if not approved:
        background.add_task(realtime.notify_admins, "users:pending", _dump(user))

    return CreateUserResponse(
        message="Account created" if approved else "Account created, awaiting approval",
        user=UserOut.model_validate(user),
        requires_approval=not approved,
    )


# ---------------------------------------------------------------------------
# GET /users/pending
# ---------------------------------------------------------------------------


@router.get("/pending", response_model=UserListResponse)
def list_pending(
    admin: Identity = Depends(require_admin),
    db: Session = Depends(get_db),
):
    users = (
        db.query(User)
        .filter(User.approval_status == ApprovalStatus.PENDING)
        .order_by(User.created_at, User.email)
        .all()
    )
    return UserListResponse(count=len(users), data=[UserOut.model_validate(u) for u in users])


# ---------------------------------------------------------------------------
# GET /users/audit-logs
# ---------------------------------------------------------------------------


@router.get("/audit-logs", response_model=AuditLogListResponse)
def list_audit_logs(
    user_id: Optional[str] = Query(None, description="Rows where this user is actor or target"),
    action: Optional[str] = Query(None),
    limit: int = Query(200, ge=1, le=1000),
    admin: Identity = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Return audit rows newest-first."""
    q = db.query(AuditLog)
    if user_id:
        q = q.filter((AuditLog.actor_id == user_id) | (AuditLog.target_user_id == user_id))
    if action:
        q = q.filter(AuditLog.action == action)
    rows = q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()
    return AuditLogListResponse(logs=[AuditLogRow.model_validate(r) for r in rows])


# ---------------------------------------------------------------------------
# GET /users/  and  GET /users/{id}
# ---------------------------------------------------------------------------


@router.get("/", response_model=UserListResponse)
def list_users(
    admin: Identity = Depends(require_admin),
    db: Session = Depends(get_db),
):
    users = db.query(User).order_by(User.created_at, User.email).all()
    return UserListResponse(count=len(users), data=[UserOut.model_validate(u) for u in users])


@router.get("/{user_id}", response_model=UserOut)
def get_user(
    user_id: str,
    admin: Identity = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return UserOut.model_validate(service.get_user_or_404(db, user_id))


# ---------------------------------------------------------------------------
# PATCH /users/{id}/approve  |  /reject
# ---------------------------------------------------------------------------


def _decide(
    user_id: str,
    decision: str,
    admin: Identity,
    request: Request,
    background: BackgroundTasks,
    db: Session,
    realtime: RealtimeRegistry,
) -> User:
    target = service.get_user_or_404(db, user_id)
    transition = approval.approve if decision == "approved" else approval.reject
    changed = transition(target)

    if changed:
        service.record_audit(
            db,
            "approve_user" if decision == "approved" else "reject_user",
            actor_id=admin.id,
            target_user_id=target.id,
            request_ip=get_client_ip(request),
        )
        db.commit()
        db.refresh(target)
        log.info("Admin %s %s user %s", admin.id, decision, target.id)

        payload = _dump(target)
        background.add_task(realtime.notify_user, target.id, f"account:{decision}", payload)
        background.add_task(realtime.notify_admins, "users:updated", payload)
    return target


@router.patch("/{user_id}/approve", response_model=UserActionResponse)
def approve_user(
    user_id: str,
    request: Request,
    background: BackgroundTasks,
    admin: Identity = Depends(require_admin),
    db: Session = Depends(get_db),
    realtime: RealtimeRegistry = Depends(get_realtime),
):
    """pending → approved.  Approving an approved account is a no-op."""
    target = _decide(user_id, "approved", admin, request, background, db, realtime)
    return UserActionResponse(message="User approved", user=UserOut.model_validate(target))


@router.patch("/{user_id}/reject", response_model=UserActionResponse)
def reject_user(
    user_id: str,
    request: Request,
    background: BackgroundTasks,
    admin: Identity = Depends(require_admin),
    db: Session = Depends(get_db),
    realtime: RealtimeRegistry = Depends(get_realtime),
):
    """pending → rejected.  Rejecting a rejected account is a no-op."""
    target = _decide(user_id, "rejected", admin, request, background, db, realtime)
    return UserActionResponse(message="User rejected", user=UserOut.model_validate(target))


# ---------------------------------------------------------------------------
# PUT /users/{id}  – self or admin
# ---------------------------------------------------------------------------


@router.put("/{user_id}", response_model=UserActionResponse)
def update_user(
    user_id: str,
    body: UpdateUserRequest,
    request: Request,
    background: BackgroundTasks,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
    hasher: PasswordHasher = Depends(get_hasher),
    realtime: RealtimeRegistry = Depends(get_realtime),
):
    """
    Update name / email / password (owner or admin), role and raw approval
    status (admin only).  A new password is re-hashed before it is stored.
    """
    is_self = identity.id == user_id
    if not identity.is_admin and not is_self:
        raise Forbidden("You may only edit your own account", code="UNAUTHORIZED_UPDATE_ATTEMPT")
    if body.role is not None and not identity.is_admin:
        raise Forbidden("Only administrators can change roles", code="ROLE_MODIFICATION_FORBIDDEN")
    if body.approval_status is not None and not identity.is_admin:
        raise Forbidden(
            "Only administrators can change approval status",
            code="APPROVAL_MODIFICATION_FORBIDDEN",
        )

    # Validate everything before touching the row
    new_role = parse_role(body.role) if body.role is not None else None
    new_status = (
        parse_approval_status(body.approval_status) if body.approval_status is not None else None
    )
    new_name = service.validate_name(body.name) if body.name is not None else None
    new_email = service.validate_email(body.email) if body.email is not None else None
    if body.password is not None:
        service.validate_password(body.password)

    target = service.get_user_or_404(db, user_id)

    if new_email and new_email != target.email and service.email_taken_by_other(db, new_email, target.id):
        raise DuplicateEmail("Email already in use", code="DUPLICATE_EMAIL")

    changes = []
    if new_name is not None:
        target.name = new_name
        changes.append("name")
    if new_email is not None:
        target.email = new_email
        changes.append("email")
    if body.password is not None:
        target.password_hash = hasher.hash(body.password)
        changes.append("password")
    if new_role is not None:
        target.role = new_role
        changes.append(f"role={new_role.value}")
    if new_status is not None:
        target.approval_status = new_status
        changes.append(f"approval_status={new_status.value}")

    service.record_audit(
        db,
        "update_user",
        actor_id=identity.id,
        target_user_id=target.id,
        detail=", ".join(changes) or "no changes",
        request_ip=get_client_ip(request),
    )
    db.commit()
    db.refresh(target)
    log.info("User %s updated by %s: %s", target.id, identity.id, ", ".join(changes) or "no changes")

    background.add_task(realtime.notify_admins, "users:updated", _dump(target))
    return UserActionResponse(message="User updated", user=UserOut.model_validate(target))


# ---------------------------------------------------------------------------
# DELETE /users/{id}  – self or admin
# ---------------------------------------------------------------------------


@router.delete("/{user_id}", response_model=DeleteUserResponse)
def delete_user(
    user_id: str,
    request: Request,
    background: BackgroundTasks,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
    realtime: RealtimeRegistry = Depends(get_realtime),
):
    """Immediate, unrecoverable deletion."""
    if not identity.is_admin and identity.id != user_id:
        raise Forbidden("You may only delete your own account", code="DELETE_FORBIDDEN")

    target = service.get_user_or_404(db, user_id)
    service.record_audit(
        db,
        "delete_user",
        actor_id=identity.id if identity.id != user_id else None,
        target_user_id=None,
        detail=f"user_id={target.id}, email={target.email}",
        request_ip=get_client_ip(request),
    )
    db.delete(target)
    db.commit()
    log.info("User %s deleted by %s", user_id, identity.id)

    background.add_task(realtime.notify_admins, "users:deleted", {"user_id": user_id})
    return DeleteUserResponse(message="User deleted", user_id=user_id)
