"""
Unit tests for core.security: password hashing, signed tokens and
password-recovery token digests.
"""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from core.errors import InvalidToken, TokenExpired
from core.security import (
    PasswordHasher,
    TokenService,
    digest_reset_token,
    new_reset_token,
    reset_token_matches,
)

SECRET = "unit-test-signing-key-0123456789-abcdef"


@pytest.fixture
def hasher():
    return PasswordHasher(rounds=1000)


@pytest.fixture
def tokens():
    return TokenService(SECRET, timedelta(hours=2))


def issue(tokens, **overrides):
    claims = {"user_id": "u1", "role": "user", "name": "Alice", "email": "alice@example.com"}
    claims.update(overrides)
    return tokens.issue(**claims)


# ============================================================
# PasswordHasher
# ============================================================

def test_hash_never_returns_the_plaintext(hasher):
    hashed = hasher.hash("secret1")
    assert hashed != "secret1"
    assert "secret1" not in hashed
    assert hashed.startswith("$pbkdf2-sha256$")


def test_hash_is_salted(hasher):
    """Two hashes of the same password differ; both still verify."""
    first, second = hasher.hash("secret1"), hasher.hash("secret1")
    assert first != second
    assert hasher.verify("secret1", first)
    assert hasher.verify("secret1", second)


def test_verify_rejects_wrong_password(hasher):
    assert hasher.verify("wrong-password", hasher.hash("secret1")) is False


def test_verify_accepts_hash_from_other_work_factor(hasher):
    """The round count travels inside the hash string."""
    legacy = PasswordHasher(rounds=2000).hash("secret1")
    assert hasher.verify("secret1", legacy)


# ============================================================
# TokenService
# ============================================================

def test_issue_then_verify_returns_claims(tokens):
    claims = tokens.verify(issue(tokens))
    assert claims.user_id == "u1"
    assert claims.role == "user"
    assert claims.name == "Alice"
    assert claims.email == "alice@example.com"


def test_default_ttl_is_applied(tokens):
    before = datetime.now(timezone.utc)
    claims = tokens.verify(issue(tokens))
    # exp has one-second resolution
    assert before + timedelta(hours=2) - timedelta(seconds=2) <= claims.expires_at
    assert claims.expires_at <= before + timedelta(hours=2, seconds=2)


def test_expired_token_raises_token_expired(tokens):
    token = issue(tokens, ttl=timedelta(seconds=-10))
    with pytest.raises(TokenExpired):
        tokens.verify(token)


def test_token_signed_with_other_key_is_invalid(tokens):
    other = TokenService("another-signing-key-0123456789-abcdef", timedelta(hours=2))
    with pytest.raises(InvalidToken):
        tokens.verify(issue(other))


def test_tampered_payload_is_invalid(tokens):
    header, payload, signature = issue(tokens).split(".")
    forged_payload = jwt.encode(
        {"sub": "u1", "user_id": "u1", "role": "admin", "exp": 9999999999},
        "attacker-key-0123456789-abcdefghijkl",
        algorithm="HS256",
    ).split(".")[1]
    with pytest.raises(InvalidToken):
        tokens.verify(".".join([header, forged_payload, signature]))


@pytest.mark.parametrize("garbage", ["", "not-a-jwt", "a.b.c"])
def test_malformed_token_is_invalid(tokens, garbage):
    with pytest.raises(InvalidToken):
        tokens.verify(garbage)


def test_token_missing_identity_claims_is_invalid(tokens):
    token = jwt.encode(
        {"sub": "u1", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
        SECRET,
        algorithm="HS256",
    )
    with pytest.raises(InvalidToken):
        tokens.verify(token)


def test_token_without_exp_is_invalid(tokens):
    token = jwt.encode({"sub": "u1", "user_id": "u1", "role": "user"}, SECRET, algorithm="HS256")
    with pytest.raises(InvalidToken):
        tokens.verify(token)


def test_is_expired_only_for_correctly_signed_expired_tokens(tokens):
    other = TokenService("another-signing-key-0123456789-abcdef", timedelta(hours=2))
    assert tokens.is_expired(issue(tokens, ttl=timedelta(seconds=-10))) is True
    assert tokens.is_expired(issue(tokens)) is False
    assert tokens.is_expired(issue(other, ttl=timedelta(seconds=-10))) is False
    assert tokens.is_expired("not-a-jwt") is False


# ============================================================
# Password-recovery tokens
# ============================================================

def test_new_reset_token_stores_only_digest():
    raw, digest = new_reset_token()
    assert raw != digest
    assert len(digest) == 64
    assert digest == digest_reset_token(raw)


def test_reset_token_matches():
    raw, digest = new_reset_token()
    assert reset_token_matches(raw, digest)
    assert not reset_token_matches(raw + "x", digest)
    assert not reset_token_matches(raw, None)
