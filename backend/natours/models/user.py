"""
Natours Backend: User SQLAlchemy Model
=======================================

What:  ORM model for the `users` table plus the password lifecycle methods.
Why:   Password hashing, "changed after token" checks and reset-token minting
       are properties of a user row, so they live on the model.
Who:   Used by AuthService, UserService and the auth dependencies.

Soft delete:
    DELETE /users/deleteme only flips `active` to false. Every lookup in the
    services filters on `User.active.is_(True)` (see `active_users()`), so a
    deactivated account is invisible to login, protect and the admin list.
"""

import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import Boolean, DateTime, Select, String, Uuid, inspect, select
from sqlalchemy.orm import Mapped, mapped_column

from natours.config import settings
from natours.database import Base, as_utc, utcnow
from natours.security import create_reset_token, hash_password, verify_password

USER_ROLES = ("user", "guide", "lead-guide", "admin")


class User(Base):
    """A customer, tour guide or administrator."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    photo: Mapped[str] = mapped_column(String(255), nullable=False, default="default.jpg")
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="user")

    # bcrypt hash; never part of any response schema
    password: Mapped[str] = mapped_column(String(255), nullable=False)
    password_changed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    password_reset_token: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True, index=True
    )
    password_reset_expires: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    def set_password(self, raw: str) -> None:
        """
        Hash and store a new password.

        For an existing account, password_changed_at is backdated by one
        second: the token issued right after a change has an `iat` truncated
        to whole seconds and must still be accepted.
        """
        self.password = hash_password(raw)
        if inspect(self).has_identity:
            self.password_changed_at = utcnow() - timedelta(seconds=1)

    def correct_password(self, candidate: str) -> bool:
        return verify_password(candidate, self.password)

    def changed_password_after(self, jwt_iat: int) -> bool:
        """True if the password was changed after the token was issued."""
        changed_at = as_utc(self.password_changed_at)
        if changed_at is None:
            return False
        return jwt_iat < int(changed_at.timestamp())

    def create_password_reset_token(self) -> str:
        """Store the hashed reset token with its expiry; return the raw token."""
        raw, digest = create_reset_token()
        self.password_reset_token = digest
        self.password_reset_expires = utcnow() + timedelta(
            minutes=settings.password_reset_expires_minutes
        )
        return raw

    def clear_password_reset(self) -> None:
        self.password_reset_token = None
        self.password_reset_expires = None

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"


def active_users() -> Select:
    """Base query for every user lookup: deactivated accounts are hidden."""
    return select(User).where(User.active.is_(True))
