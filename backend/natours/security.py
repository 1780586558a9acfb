"""
Natours Backend: Password Hashing, JWT and Reset Tokens
========================================================

What:  Thin wrappers around bcrypt, PyJWT and hashlib.
Why:   Every credential primitive lives in one module, so the cost factor,
       algorithm and token format are configured once.
Who:   Used by the User model, AuthService and the auth dependencies.

Token format:
    HS256 JWT with payload {"id": "<user uuid>", "iat": <unix>, "exp": <unix>}.
    `iat` is compared with User.password_changed_at to reject tokens issued
    before a password change.

Reset tokens:
    The raw token (32 random bytes, hex) is only ever emailed. The database
    stores its sha256 digest, so a leaked table cannot be used to reset
    passwords.
"""

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Tuple

import bcrypt
import jwt

from natours.config import settings
from natours.exceptions import AuthenticationError

JWT_ALGORITHM = "HS256"


# ── Passwords ─────────────────────────────────────────────────────────────

def hash_password(raw: str) -> str:
    """Hash a password with bcrypt at the configured cost factor."""
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(raw.encode("utf-8"), salt).decode("utf-8")


def verify_password(candidate: str, hashed: str) -> bool:
    """Constant-time comparison of a candidate password against a bcrypt hash."""
    if not candidate or not hashed:
        return False
    try:
        return bcrypt.checkpw(candidate.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in the database; treat as a mismatch
        return False


# ── JWT ───────────────────────────────────────────────────────────────────

def sign_token(user_id: Any) -> str:
    """Issue an access token for the given user id."""
    now = datetime.now(timezone.utc)
    payload = {
        "id": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(days=settings.jwt_expires_in_days)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    """
    Verify a token's signature and expiry and return its payload.

    Raises:
        AuthenticationError: expired, tampered or otherwise unreadable token.
    """
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Your token has expired! Please log in again.")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token. Please log in again!")

    if "id" not in payload or "iat" not in payload:
        raise AuthenticationError("Invalid token. Please log in again!")
    return payload


# ── Password reset tokens ─────────────────────────────────────────────────

def hash_reset_token(raw: str) -> str:
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def create_reset_token() -> Tuple[str, str]:
    """Return (raw_token, sha256_digest). Only the digest is persisted."""
    raw = secrets.token_hex(32)
    return raw, hash_reset_token(raw)


# ── Input sanitizing ──────────────────────────────────────────────────────

def escape_html(value: str) -> str:
    """Neutralize markup in free-text input before it is stored."""
    return value.replace("<", "&lt;").replace(">", "&gt;")
