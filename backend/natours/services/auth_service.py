"""
Natours Backend: Authentication Service
========================================

What:  Signup, login, token verification (protect) and the password flows.
Why:   Keeps every credential decision out of the route handlers, which only
       deal with cookies and response envelopes.
Who:   routes/users.py and the auth dependencies.

Password reset workflow:
    1. forgot_password: store sha256(token) + expiry, COMMIT, email raw token
       → on delivery failure: clear token fields, COMMIT, raise 500
    2. reset_password: look up by sha256(raw) with expiry in the future
       → set new password, clear token fields
    The early commits matter: the reset token must be persisted before the
    email goes out, and cleared again if it never arrives.

Error messages:
    Login deliberately uses one message for "no such user" and "wrong
    password" so the endpoint cannot be used to enumerate accounts.
"""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from natours.database import as_utc, utcnow
from natours.exceptions import (
    AuthenticationError,
    DuplicateFieldError,
    EmailDeliveryError,
    NotFoundError,
    ValidationError,
)
from natours.models.user import User, active_users
from natours.schemas.user import (
    ResetPasswordRequest,
    SignupRequest,
    UpdatePasswordRequest,
)
from natours.security import decode_token, hash_reset_token
from natours.services.email_service import email_service

logger = logging.getLogger(__name__)


class AuthService:
    """Credential workflows. Stateless; one shared instance."""

    async def signup(self, db: AsyncSession, payload: SignupRequest) -> User:
        """Create a regular user. The role is always 'user'."""
        existing = await db.execute(select(User.id).where(User.email == payload.email))
        if existing.scalar_one_or_none() is not None:
            raise DuplicateFieldError(value=payload.email, context={"field": "email"})

        user = User(name=payload.name, email=payload.email, role="user")
        user.set_password(payload.password)
        db.add(user)
        try:
            await db.flush()
        except IntegrityError:
            raise DuplicateFieldError(value=payload.email, context={"field": "email"})

        logger.info("User signed up: %s", user.id)
        return user

    async def login(self, db: AsyncSession, email: str | None, password: str | None) -> User:
        if not email or not password:
            raise ValidationError(message="Please provide email and password!")

        result = await db.execute(active_users().where(User.email == email.strip().lower()))
        user = result.scalar_one_or_none()
        if user is None or not user.correct_password(password):
            logger.warning("Failed login for %s", email)
            raise AuthenticationError("Incorrect email or password")

        logger.info("User logged in: %s", user.id)
        return user

    async def authenticate(self, db: AsyncSession, token: str) -> User:
        """
        Resolve a JWT to the active user it was issued for.

        Raises:
            AuthenticationError: bad/expired token, user gone or deactivated,
                                 or the password changed after issuance.
        """
        payload = decode_token(token)
        try:
            user_id = uuid.UUID(str(payload["id"]))
        except ValueError:
            raise AuthenticationError("Invalid token. Please log in again!")

        result = await db.execute(active_users().where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user is None:
            raise AuthenticationError("The user belonging to this token no longer exists.")

        if user.changed_password_after(int(payload["iat"])):
            raise AuthenticationError("User recently changed password! Please log in again.")
        return user

    async def is_logged_in(self, db: AsyncSession, cookie: str | None) -> User:
        """Cookie-only session check; any failure reads as 'not logged in'."""
        if not cookie:
            raise AuthenticationError("You are no longer logged in. Please log in again.")
        try:
            return await self.authenticate(db, cookie)
        except AuthenticationError as e:
            logger.debug("Session cookie rejected: %s", e.message)
            raise AuthenticationError("You are no longer logged in. Please log in again.")

    async def forgot_password(self, db: AsyncSession, email: str | None, base_url: str) -> None:
        """Mint a reset token and email the reset link."""
        user = None
        if email:
            result = await db.execute(active_users().where(User.email == email.strip().lower()))
            user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError(
                resource="user",
                message="There is no user with that email address.",
            )

        raw_token = user.create_password_reset_token()
        await db.commit()

        reset_url = f"{base_url.rstrip('/')}/api/v1/users/resetpassword/{raw_token}"
        try:
            await email_service.send_password_reset(user.name, user.email, reset_url)
        except EmailDeliveryError:
            user.clear_password_reset()
            await db.commit()
            logger.error("Password reset email failed for user %s; token cleared", user.id)
            raise

        logger.info("Password reset token issued for user %s", user.id)

    async def reset_password(
        self, db: AsyncSession, raw_token: str, payload: ResetPasswordRequest
    ) -> User:
        result = await db.execute(
            active_users().where(User.password_reset_token == hash_reset_token(raw_token))
        )
        user = result.scalar_one_or_none()
        expires = as_utc(user.password_reset_expires) if user else None
        if user is None or expires is None or expires <= utcnow():
            raise ValidationError(message="Token is invalid or has expired")

        user.set_password(payload.password)
        user.clear_password_reset()
        await db.flush()
        logger.info("Password reset for user %s", user.id)
        return user

    async def update_password(
        self, db: AsyncSession, user: User, payload: UpdatePasswordRequest
    ) -> User:
        if not user.correct_password(payload.password_current):
            raise AuthenticationError("Your current password is wrong.")

        user.set_password(payload.password)
        await db.flush()
        logger.info("Password updated for user %s", user.id)
        return user


auth_service = AuthService()
