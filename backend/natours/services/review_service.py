"""
Natours Backend: Review Service (Business Logic Layer)
=======================================================

What:  Review CRUD plus the rating aggregation that keeps each tour's
       ratingsAverage / ratingsQuantity in sync with its reviews.
Who:   routes/reviews.py and the nested /tours/{tourId}/reviews routes;
       UserService calls recalculate_for_tours() after deleting a user.

Rating aggregation:
    After every create, update and delete:
        SELECT count(*), avg(rating) FROM reviews WHERE tour_id = :tour
    → ratings_quantity = count, ratings_average = round(avg, 1)
    → no reviews left: 0 and the default 4.5

Ownership:
    The author of a new review is always the logged-in user. A 'user' may
    only change or delete their own reviews; an 'admin' may change any.
"""

import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from natours.exceptions import (
    DatabaseError,
    DuplicateFieldError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from natours.models.review import Review
from natours.models.tour import Tour
from natours.models.user import User
from natours.schemas.review import ReviewCreate, ReviewResponse, ReviewUpdate
from natours.services.query_features import QueryFeatures

logger = logging.getLogger(__name__)

REVIEW_FIELDS = {
    "id": Review.id,
    "rating": Review.rating,
    "createdAt": Review.created_at,
    "tour": Review.tour_id,
    "user": Review.user_id,
}

DEFAULT_RATINGS_AVERAGE = 4.5


class ReviewService:
    """Review workflows. Stateless; one shared instance."""

    async def calc_average_ratings(self, db: AsyncSession, tour_id: uuid.UUID) -> None:
        """Recompute a tour's rating count and average from its reviews."""
        await db.flush()
        row = (
            await db.execute(
                select(func.count(Review.id), func.avg(Review.rating)).where(
                    Review.tour_id == tour_id
                )
            )
        ).one()
        count, average = row

        tour = await db.get(Tour, tour_id)
        if tour is None:
            return
        if count:
            tour.ratings_quantity = count
            tour.ratings_average = float(average)
        else:
            tour.ratings_quantity = 0
            tour.ratings_average = DEFAULT_RATINGS_AVERAGE
        await db.flush()
        logger.info(
            "Ratings recalculated for tour %s: %d reviews, avg %.1f",
            tour_id, tour.ratings_quantity, tour.ratings_average,
        )

    async def recalculate_for_tours(self, db: AsyncSession, tour_ids: Iterable[uuid.UUID]) -> None:
        for tour_id in set(tour_ids):
            await self.calc_average_ratings(db, tour_id)

    async def _get(self, db: AsyncSession, review_id: uuid.UUID) -> Review:
        review = (
            await db.execute(select(Review).where(Review.id == review_id))
        ).scalar_one_or_none()
        if review is None:
            raise NotFoundError(resource="review", resource_id=str(review_id))
        return review

    def _check_owner(self, user: User, review: Review) -> None:
        if user.role != "admin" and review.user_id != user.id:
            raise PermissionDeniedError("You can only modify your own reviews.")

    # ── Listing ───────────────────────────────────────────────────────────

    async def list_reviews(
        self,
        db: AsyncSession,
        params: Iterable[Tuple[str, str]],
        tour_id: Optional[uuid.UUID] = None,
    ) -> List[Dict[str, Any]]:
        features = QueryFeatures(params, REVIEW_FIELDS, default_sort="-createdAt")
        base = select(Review)
        if tour_id is not None:
            base = base.where(Review.tour_id == tour_id)
        stmt = features.apply(base, tie_breaker=Review.id)
        try:
            result = await db.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("Database error listing reviews: %s", str(e), exc_info=True)
            raise DatabaseError(context={"operation": "list_reviews"})
        return [
            features.project(ReviewResponse.model_validate(r).to_json())
            for r in result.scalars().all()
        ]

    # ── CRUD ──────────────────────────────────────────────────────────────

    async def get_review(self, db: AsyncSession, review_id: uuid.UUID) -> Review:
        return await self._get(db, review_id)

    async def create_review(
        self,
        db: AsyncSession,
        user: User,
        payload: ReviewCreate,
        tour_id: Optional[uuid.UUID] = None,
    ) -> Review:
        """
        Create a review by `user`.

        tour_id from a nested route takes precedence over `tour` in the body.
        """
        target = tour_id or payload.tour
        if target is None:
            raise ValidationError(message="Review must belong to a tour.", field="tour")

        tour_exists = (
            await db.execute(
                select(Tour.id).where(Tour.id == target, Tour.secret_tour.is_(False))
            )
        ).first()
        if tour_exists is None:
            raise NotFoundError(resource="tour", resource_id=str(target))

        duplicate = (
            await db.execute(
                select(Review.id).where(Review.tour_id == target, Review.user_id == user.id)
            )
        ).first()
        if duplicate is not None:
            raise DuplicateFieldError(context={"fields": ["tour", "user"]})

        review = Review(review=payload.review, rating=payload.rating, tour_id=target, user_id=user.id)
        review.user = user
        db.add(review)
        try:
            await db.flush()
        except IntegrityError:
            raise DuplicateFieldError(context={"fields": ["tour", "user"]})

        await self.calc_average_ratings(db, target)
        logger.info("Review created: %s (tour=%s, user=%s)", review.id, target, user.id)
        return review

    async def update_review(
        self, db: AsyncSession, user: User, review_id: uuid.UUID, payload: ReviewUpdate
    ) -> Review:
        review = await self._get(db, review_id)
        self._check_owner(user, review)

        updates = payload.model_dump(exclude_unset=True, exclude_none=True)
        for key, value in updates.items():
            setattr(review, key, value)
        await db.flush()

        await self.calc_average_ratings(db, review.tour_id)
        logger.info("Review updated: %s fields=%s", review.id, sorted(updates))
        return review

    async def delete_review(self, db: AsyncSession, user: User, review_id: uuid.UUID) -> None:
        review = await self._get(db, review_id)
        self._check_owner(user, review)

        tour_id = review.tour_id
        await db.delete(review)
        await db.flush()

        await self.calc_average_ratings(db, tour_id)
        logger.info("Review deleted: %s", review_id)


review_service = ReviewService()
