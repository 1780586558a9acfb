"""
Natours Backend: User Service (Business Logic Layer)
=====================================================

What:  Self-service profile updates and the admin user management endpoints.
Who:   routes/users.py.

Self-service (/me, /updateme, /deleteme):
    - updateme only ever touches name, email and (via upload) photo; sending
      password fields is a 400 pointing at /updatemypassword
    - deleteme is a soft delete (active = false)

Admin:
    - list / get / update (name, email, role, photo)
    - delete is a hard delete; the user's reviews cascade away and the
      affected tours get their ratings recalculated
    - creating users through this API is not supported (use /signup)
"""

import logging
import uuid
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from natours.exceptions import (
    DatabaseError,
    DuplicateFieldError,
    NatoursError,
    NotFoundError,
    ValidationError,
)
from natours.models.review import Review
from natours.models.user import User, active_users
from natours.schemas.common import parse_payload
from natours.schemas.user import UpdateMeRequest, UserResponse, UserUpdate
from natours.services.image_service import ImageUpload, image_service
from natours.services.query_features import QueryFeatures
from natours.services.review_service import review_service

logger = logging.getLogger(__name__)

USER_FIELDS = {
    "id": User.id,
    "name": User.name,
    "email": User.email,
    "role": User.role,
    "createdAt": User.created_at,
}

PASSWORD_FIELDS = ("password", "passwordConfirm", "password_confirm")


class UserService:
    """User workflows. Stateless; one shared instance."""

    async def _get_active(self, db: AsyncSession, user_id: uuid.UUID) -> User:
        user = (await db.execute(active_users().where(User.id == user_id))).scalar_one_or_none()
        if user is None:
            raise NotFoundError(resource="user", resource_id=str(user_id))
        return user

    async def _ensure_unique_email(self, db: AsyncSession, email: str, user_id: uuid.UUID) -> None:
        taken = (
            await db.execute(select(User.id).where(User.email == email, User.id != user_id))
        ).first()
        if taken is not None:
            raise DuplicateFieldError(value=email, context={"field": "email"})

    async def _flush(self, db: AsyncSession, user: User) -> None:
        try:
            await db.flush()
        except IntegrityError:
            raise DuplicateFieldError(value=user.email, context={"field": "email"})

    # ── Admin ─────────────────────────────────────────────────────────────

    async def list_users(
        self, db: AsyncSession, params: Iterable[Tuple[str, str]]
    ) -> List[Dict[str, Any]]:
        features = QueryFeatures(params, USER_FIELDS, default_sort="name")
        stmt = features.apply(active_users(), tie_breaker=User.id)
        try:
            result = await db.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("Database error listing users: %s", str(e), exc_info=True)
            raise DatabaseError(context={"operation": "list_users"})
        return [
            features.project(UserResponse.model_validate(u).to_json())
            for u in result.scalars().all()
        ]

    async def get_user(self, db: AsyncSession, user_id: uuid.UUID) -> User:
        return await self._get_active(db, user_id)

    def create_user(self) -> None:
        raise NatoursError("This route is not defined! Please use /signup instead.")

    async def update_user(self, db: AsyncSession, user_id: uuid.UUID, payload: UserUpdate) -> User:
        user = await self._get_active(db, user_id)
        updates = payload.model_dump(exclude_unset=True, exclude_none=True)
        if "email" in updates and updates["email"] != user.email:
            await self._ensure_unique_email(db, updates["email"], user.id)

        for key, value in updates.items():
            setattr(user, key, value)
        await self._flush(db, user)
        logger.info("User %s updated by admin: fields=%s", user.id, sorted(updates))
        return user

    async def delete_user(self, db: AsyncSession, user_id: uuid.UUID) -> None:
        user = await self._get_active(db, user_id)
        reviewed_tours = (
            await db.execute(select(Review.tour_id).where(Review.user_id == user.id))
        ).scalars().all()

        await db.delete(user)
        await db.flush()
        await review_service.recalculate_for_tours(db, reviewed_tours)
        logger.info("User deleted: %s (%d reviews removed)", user_id, len(reviewed_tours))

    # ── Self-service ──────────────────────────────────────────────────────

    async def update_me(
        self,
        db: AsyncSession,
        user: User,
        data: Mapping[str, Any],
        photo: Optional[ImageUpload] = None,
    ) -> User:
        """Apply name/email from `data` and an optional new photo to `user`."""
        if any(key in data for key in PASSWORD_FIELDS):
            raise ValidationError(
                message="This route is not for password updates. Please use /updatemypassword.",
                field="password",
            )

        # Anything besides name and email is silently ignored
        payload = parse_payload(UpdateMeRequest, data)
        updates = payload.model_dump(exclude_unset=True, exclude_none=True)
        if "email" in updates and updates["email"] != user.email:
            await self._ensure_unique_email(db, updates["email"], user.id)

        if photo is not None:
            updates["photo"] = await image_service.save_user_photo(str(user.id), photo)

        try:
            for key, value in updates.items():
                setattr(user, key, value)
            await self._flush(db, user)
        except Exception:
            if photo is not None:
                await image_service.cleanup_file("users", updates["photo"])
            raise
        logger.info("User %s updated own profile: fields=%s", user.id, sorted(updates))
        return user

    async def delete_me(self, db: AsyncSession, user: User) -> None:
        user.active = False
        await db.flush()
        logger.info("User deactivated: %s", user.id)


user_service = UserService()
