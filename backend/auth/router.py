# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20260206v1
# ---------------------------------------------------------------------------
"""
Auth endpoints – registration, login, profile, password recovery.

Security notes
--------------
* Login checks the password *before* the approval gate, so the pending /
  rejected state of an account is only revealed to someone holding its
  password.
* Every password write goes through the PasswordHasher; recovery tokens are
  stored as SHA-256 digests and are single-use.
"""

from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from sqlalchemy.orm import Session

from database import get_db
from core.approval import ApprovalStatus, can_authenticate, parse_role
from core.config import Settings, get_settings
from core.errors import AccountPending, InvalidCredentials, UserNotFound, ValidationFailed
from core.guards import Identity, get_current_identity, require_admin
from core.logger import get_logger
from core.realtime import RealtimeRegistry, get_realtime
from core.security import (
    PasswordHasher,
    TokenService,
    get_client_ip,
    get_hasher,
    get_tokens,
    new_reset_token,
    reset_token_matches,
)
from models.user import User
from users import service
from users.schemas import UserListResponse, UserOut
from auth.schemas import (
    EmailRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    ProfileResponse,
    RegisterRequest,
    RegisterResponse,
    RegistrationData,
    ResetRequestedResponse,
    VerifyAndResetRequest,
)

router = APIRouter(prefix="/auth", tags=["auth"])

log = get_logger("auth")

_LOGIN_FAIL = "Invalid email or password"


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# POST /auth/register
# ---------------------------------------------------------------------------


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
def register(
    body: RegisterRequest,
    request: Request,
    background: BackgroundTasks,
    db: Session = Depends(get_db),
    hasher: PasswordHasher = Depends(get_hasher),
    settings: Settings = Depends(get_settings),
    realtime: RealtimeRegistry = Depends(get_realtime),
):
    """Create a pending account.  An administrator must approve it."""
    role = parse_role(body.role)
    service.check_admin_signup(
        role, provisioned_by_admin=False, allow_public=settings.allow_public_admin_signup
    )
    user = service.create_user(
        db,
        hasher,
        name=body.name,
        email=body.email,
        password=body.password,
        role=role,
    )
    service.record_audit(
        db,
        "register",
        target_user_id=user.id,
        detail=f"role={role.value}",
        request_ip=get_client_ip(request),
    )
    db.commit()
    db.refresh(user)
    log.info("Registered user %s (role=%s), awaiting approval", user.id, role.value)

    background.add_task(
        realtime.notify_admins,
        "users:pending",
        UserOut.model_validate(user).model_dump(mode="json"),
    )

    return RegisterResponse(
        message="Registration successful. Your account is awaiting administrator approval.",
        data=RegistrationData(
            user_id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            requires_approval=True,
            approval_status=ApprovalStatus.PENDING,
        ),
    )


# ---------------------------------------------------------------------------
# POST /auth/login
# ---------------------------------------------------------------------------


@router.post("/login", response_model=LoginResponse)
def login(
    body: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
    hasher: PasswordHasher = Depends(get_hasher),
    tokens: TokenService = Depends(get_tokens),
):
    """Authenticate and return a signed JWT (2 h by default)."""
    if not body.email.strip() or not body.password:
        raise InvalidCredentials("Email and password are required")

    user = service.find_by_email(db, body.email)
    if not user:
        log.warning("Login failed: unknown email")
        raise UserNotFound(_LOGIN_FAIL, status_code=status.HTTP_401_UNAUTHORIZED)

    if not hasher.verify(body.password, user.password_hash):
        log.warning("Login failed: wrong password for user %s", user.id)
        raise InvalidCredentials(_LOGIN_FAIL, code="INVALID_PASSWORD")

    decision = can_authenticate(user)
    if not decision.allowed:
        log.warning("Login refused: user %s is %s", user.id, user.approval_status.value)
        raise AccountPending(decision.reason)

    user.last_login = datetime.now(timezone.utc)
    service.record_audit(
        db, "user_login", actor_id=user.id, target_user_id=user.id,
        request_ip=get_client_ip(request),
    )
    db.commit()
    db.refresh(user)

    token = tokens.issue(
        user_id=user.id, role=user.role.value, name=user.name, email=user.email
    )
    log.info("User %s logged in", user.id)
    return LoginResponse(
        message="Login successful",
        token=token,
        user=UserOut.model_validate(user),
    )


# ---------------------------------------------------------------------------
# GET /auth/profile
# ---------------------------------------------------------------------------


@router.get("/profile", response_model=ProfileResponse)
def profile(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """Return the authenticated user's profile (no secrets)."""
    user = service.get_user_or_404(db, identity.id)
    return ProfileResponse(user=UserOut.model_validate(user))


# ---------------------------------------------------------------------------
# GET /auth/  – admin listing
# ---------------------------------------------------------------------------


@router.get("/", response_model=UserListResponse)
def list_all(
    admin: Identity = Depends(require_admin),
    db: Session = Depends(get_db),
):
    users = db.query(User).order_by(User.created_at, User.email).all()
    return UserListResponse(count=len(users), data=[UserOut.model_validate(u) for u in users])


# ---------------------------------------------------------------------------
# Password recovery
# ---------------------------------------------------------------------------


@router.post("/verify-email", response_model=MessageResponse)
def verify_email(body: EmailRequest, db: Session = Depends(get_db)):
    """Tell the recovery UI whether an account exists for this address."""
    if not service.find_by_email(db, body.email):
        raise UserNotFound("No account found for this email")
    return MessageResponse(message="Email verified")


@router.post("/reset-password", response_model=ResetRequestedResponse)
def reset_password(
    body: EmailRequest,
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Issue a single-use recovery token.  Only its digest is stored.  The raw
    token is echoed in development mode; delivering it otherwise is up to
    the deployment.
    """
    user = service.find_by_email(db, body.email)
    if not user:
        raise UserNotFound("No account found for this email")

    raw, digest = new_reset_token()
    user.reset_token_hash = digest
    user.reset_token_expires = datetime.now(timezone.utc) + timedelta(
        minutes=settings.reset_token_expire_minutes
    )
    service.record_audit(
        db, "reset_requested", target_user_id=user.id, request_ip=get_client_ip(request)
    )
    db.commit()
    log.info("Password reset token issued for user %s", user.id)

    return ResetRequestedResponse(
        message="Password reset token issued",
        reset_token=raw if settings.is_development else None,
    )


@router.post("/verify-and-reset-password", response_model=MessageResponse)
def verify_and_reset_password(
    body: VerifyAndResetRequest,
    request: Request,
    db: Session = Depends(get_db),
    hasher: PasswordHasher = Depends(get_hasher),
):
    """Consume a recovery token and set a new (hashed) password."""
    user = service.find_by_email(db, body.email)
    if not user:
        raise UserNotFound("No account found for this email")

    if not reset_token_matches(body.token, user.reset_token_hash):
        raise ValidationFailed("Invalid reset token", code="INVALID_RESET_TOKEN")
    if not user.reset_token_expires or _as_utc(user.reset_token_expires) < datetime.now(timezone.utc):
        raise ValidationFailed("Reset token expired", code="RESET_TOKEN_EXPIRED")

    service.validate_password(body.new_password)
    user.password_hash = hasher.hash(body.new_password)
    user.reset_token_hash = None
    user.reset_token_expires = None
    service.record_audit(
        db, "password_reset", actor_id=user.id, target_user_id=user.id,
        request_ip=get_client_ip(request),
    )
    db.commit()
    log.info("Password reset completed for user %s", user.id)

    return MessageResponse(message="Password updated successfully")
