# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20260206v1
# ---------------------------------------------------------------------------
"""
Central security module.  All cryptographic primitives live here.  No other
module should touch raw crypto directly.

Responsibilities
----------------
1. Password hashing / verification          (passlib pbkdf2_sha256)
2. JWT creation / decoding                  (PyJWT / HS256)
3. Password-recovery token generation       (secrets + SHA-256 digest)

Both services are built once by ``create_app`` from the process ``Settings``
and kept on ``app.state``; the accessors at the bottom hand them to route
dependencies.
"""

import hashlib
import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt as _jwt        # PyJWT
from fastapi import Request
from passlib.hash import pbkdf2_sha256 as _pbkdf2  # pure Python, no binary deps

from core.errors import InvalidToken, TokenExpired

# ---------------------------------------------------------------------------
# 1.  pbkdf2_sha256 – password hashing
# ---------------------------------------------------------------------------
# passlib embeds the random salt and the round count inside the hash string,
# so verification keeps working for hashes created under an older work factor.


class PasswordHasher:
    """One-way salted hashing with a tunable work factor (PBKDF2 rounds)."""

    def __init__(self, rounds: int):
        self.rounds = rounds
        self._scheme = _pbkdf2.using(rounds=rounds)

    def hash(self, plain: str) -> str:
        """Return a ``$pbkdf2-sha256$…`` string.  Failures propagate."""
        return self._scheme.hash(plain)

    def verify(self, plain: str, stored_hash: str) -> bool:
        """Constant-time verification of *plain* against *stored_hash*."""
        return self._scheme.verify(plain, stored_hash)


# ---------------------------------------------------------------------------
# 2.  JWT – access tokens
# ---------------------------------------------------------------------------

ALGORITHM = "HS256"


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    role: str
    name: str
    email: str
    expires_at: datetime


class TokenService:
    """
    Signs and verifies bearer tokens.  The signing key is fixed for the
    lifetime of the instance.
    """

    def __init__(self, secret_key: str, default_ttl: timedelta):
        self._secret_key = secret_key
        self.default_ttl = default_ttl

    def issue(
        self,
        *,
        user_id: str,
        role: str,
        name: str,
        email: str,
        ttl: Optional[timedelta] = None,
    ) -> str:
        """Sign a JWT carrying identity + role claims and an absolute ``exp``."""
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "user_id": user_id,
            "role": role,
            "name": name,
            "email": email,
            "iat": now,
            "exp": now + (ttl if ttl is not None else self.default_ttl),
        }
        return _jwt.encode(payload, self._secret_key, algorithm=ALGORITHM)

    def verify(self, token: str) -> TokenClaims:
        """
        Decode and verify a JWT.

        Raises :class:`TokenExpired` when the signature is valid but ``exp``
        has passed, :class:`InvalidToken` for any signature, structure or
        missing-claim failure.
        """
        try:
            payload = _jwt.decode(
                token,
                self._secret_key,
                algorithms=[ALGORITHM],
                options={"require": ["exp", "sub"]},
            )
        except _jwt.ExpiredSignatureError as exc:
            raise TokenExpired() from exc
        except _jwt.InvalidTokenError as exc:
            raise InvalidToken() from exc

        try:
            return TokenClaims(
                user_id=str(payload["user_id"]),
                role=str(payload["role"]),
                name=str(payload.get("name", "")),
                email=str(payload.get("email", "")),
                expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidToken() from exc

    def is_expired(self, token: str) -> bool:
        """True only for a correctly signed token whose ``exp`` has passed."""
        try:
            _jwt.decode(token, self._secret_key, algorithms=[ALGORITHM])
        except _jwt.ExpiredSignatureError:
            return True
        except _jwt.InvalidTokenError:
            return False
        return False


# ---------------------------------------------------------------------------
# 3.  Password-recovery tokens
# ---------------------------------------------------------------------------
# Only the SHA-256 digest is stored; the raw token leaves the server once.


def new_reset_token() -> tuple[str, str]:
    """Return ``(raw_token, digest)``."""
    raw = secrets.token_urlsafe(32)
    return raw, digest_reset_token(raw)


def digest_reset_token(raw: str) -> str:
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def reset_token_matches(raw: str, stored_digest: Optional[str]) -> bool:
    if not stored_digest:
        return False
    return hmac.compare_digest(digest_reset_token(raw), stored_digest)


# ---------------------------------------------------------------------------
# Accessors used as FastAPI dependencies
# ---------------------------------------------------------------------------


def get_hasher(request: Request) -> PasswordHasher:
    return request.app.state.hasher


def get_tokens(request: Request) -> TokenService:
    return request.app.state.tokens


# -- IP Address extraction ----------------------------------------------------


def get_client_ip(request: Request) -> str:
    """
    Extract the client IP address from the request.
    Checks X-Forwarded-For header first (for proxies), then falls back to client host.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # X-Forwarded-For can contain multiple IPs, take the first (original client)
        return forwarded.split(",")[0].strip()

    if request.client:
        return request.client.host

    return "unknown"
