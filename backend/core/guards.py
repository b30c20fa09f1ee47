# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20260206v1
# ---------------------------------------------------------------------------
"""
Per-request authentication chain and authorization guards.

``get_current_identity`` runs, in order, each step as a hard gate:

1. bearer token present in ``Authorization``     → AUTH_HEADER_MISSING (401)
2. signature / expiry valid                      → TOKEN_EXPIRED (401) / INVALID_TOKEN (403)
3. live credential re-read by the token's id     → USER_NOT_FOUND (401)
4. approval gate on the fresh credential         → ACCOUNT_PENDING (403)
5. typed ``Identity`` attached to ``request.state.identity``
6. anything unexpected                           → AUTH_FAILURE (500)

Role and approval are never taken from the token claims: an admin decision
made after the token was issued takes effect on the next request.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.approval import Role, can_authenticate
from core.errors import (
    AccountPending,
    ApiError,
    AuthFailure,
    AuthHeaderMissing,
    Forbidden,
    TokenExpired,
    UserNotFound,
)
from core.logger import get_logger
from core.security import TokenClaims, TokenService, get_tokens
from database import get_db

log = get_logger("auth")

# The tokenUrl here is only used by the auto-generated OpenAPI docs.
# auto_error=False: a missing or non-bearer header yields None and the chain
# answers with its own error code instead of FastAPI's generic 401.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


@dataclass(frozen=True)
class Identity:
    """Normalized, read-only view of the authenticated caller."""

    id: str
    role: str
    name: str
    email: str
    approved: bool

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value

    @classmethod
    def from_user(cls, user) -> "Identity":
        return cls(
            id=user.id,
            role=Role(user.role).value,
            name=user.name,
            email=user.email,
            approved=user.approved,
        )


def load_identity(db: Session, claims: TokenClaims) -> Identity:
    """Steps 3–4: re-read the credential and apply the approval gate."""
    # Lazy import to avoid circular dependency at module load time
    from models.user import User  # noqa: E402

    user = db.get(User, claims.user_id)
    if not user:
        raise UserNotFound(status_code=401)

    decision = can_authenticate(user)
    if not decision.allowed:
        raise AccountPending(decision.reason)

    return Identity.from_user(user)


def _establish_identity(
    request: Request,
    token: Optional[str],
    db: Session,
    tokens: TokenService,
) -> Identity:
    try:
        if not token:
            # The expiry sweep strips expired tokens but leaves a mark so
            # protected routes can still tell the client to log in again.
            if getattr(request.state, "token_expired", False):
                raise TokenExpired()
            raise AuthHeaderMissing()

        claims = tokens.verify(token)
        identity = load_identity(db, claims)
    except ApiError as exc:
        log.warning(
            "Auth rejected %s %s: %s", request.method, request.url.path, exc.code
        )
        raise
    except SQLAlchemyError as exc:
        log.exception("Credential store failure during authentication")
        raise AuthFailure() from exc
    except Exception as exc:
        log.exception("Unexpected authentication failure")
        raise AuthFailure() from exc

    request.state.identity = identity
    return identity


def get_current_identity(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_tokens),
) -> Identity:
    """Dependency: the full chain.  Rejects anonymous callers."""
    return _establish_identity(request, token, db, tokens)


def get_optional_identity(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_tokens),
) -> Optional[Identity]:
    """
    Dependency for routes that also serve anonymous callers.  No header (or
    an expired token removed by the sweep) means anonymous; a header that is
    present is held to the full chain.
    """
    if not token:
        return None
    return _establish_identity(request, token, db, tokens)


def require_roles(*roles: str):
    """
    Build a guard that admits identities whose role is in *roles*.
    Comparison is case-insensitive; stored roles come from the closed
    :class:`Role` enum so normalization cannot mask an invalid value.
    """
    allowed = {str(getattr(r, "value", r)).strip().lower() for r in roles}
    required = sorted(allowed)

    def guard(identity: Identity = Depends(get_current_identity)) -> Identity:
        role = identity.role.strip().lower()
        if role not in allowed:
            raise Forbidden(
                f"Role '{role}' is not permitted. Required: {', '.join(required)}",
                your_role=role,
                required_roles=required,
            )
        return identity

    return guard


require_admin = require_roles(Role.ADMIN)


# ---------------------------------------------------------------------------
# Expired-token sweep (ASGI middleware)
# ---------------------------------------------------------------------------


class ExpiredTokenSweepMiddleware:
    """
    Removes the ``Authorization`` header when it carries a correctly signed
    but expired bearer token, and sets ``request.state.token_expired``.
    Never rejects a request.
    """

    def __init__(self, app, tokens: TokenService):
        self.app = app
        self.tokens = tokens

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http":
            token = _bearer_from_headers(scope.get("headers", []))
            if token and self.tokens.is_expired(token):
                scope = dict(scope)
                scope["headers"] = [
                    (name, value)
                    for name, value in scope["headers"]
                    if name.lower() != b"authorization"
                ]
                scope.setdefault("state", {})["token_expired"] = True
                log.info("Stripped expired token from %s %s", scope.get("method"), scope.get("path"))
        await self.app(scope, receive, send)


def _bearer_from_headers(headers) -> Optional[str]:
    for name, value in headers:
        if name.lower() == b"authorization":
            scheme, _, credentials = value.decode("latin-1").partition(" ")
            if scheme.lower() == "bearer" and credentials.strip():
                return credentials.strip()
            return None
    return None
