"""
Natours Backend: Tour Service (Business Logic Layer)
=====================================================

What:  Tour CRUD, the "top 5 cheap" alias, the two reports and the geo queries.
Why:   Keeps query building, cross-field validation and image handling out
       of the route handlers.
Who:   routes/tours.py.

Visibility:
    Every query starts from `visible_tours()`, so secret tours can be neither
    read, changed, deleted nor counted in a report through the API.

Reports:
    get_tour_stats    one GROUP BY upper(difficulty) over tours rated >= 4.5
    get_monthly_plan  start dates live in a JSON array, so the "unwind" and
                      grouping by month happen in Python over (name, dates)
                      rows; the table is small (one row per tour)
"""

import logging
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from natours.database import as_utc
from natours.exceptions import (
    DatabaseError,
    DuplicateFieldError,
    NotFoundError,
    ValidationError,
)
from natours.models.tour import Tour, visible_tours
from natours.models.user import User, active_users
from natours.schemas.tour import TourCreate, TourResponse, TourUpdate
from natours.services import geo
from natours.services.image_service import ImageUpload, image_service
from natours.services.query_features import QueryFeatures

logger = logging.getLogger(__name__)

# Public (camelCase) field name → column, for ?filter and ?sort
TOUR_FIELDS = {
    "id": Tour.id,
    "name": Tour.name,
    "slug": Tour.slug,
    "duration": Tour.duration,
    "maxGroupSize": Tour.max_group_size,
    "difficulty": Tour.difficulty,
    "ratingsAverage": Tour.ratings_average,
    "ratingsQuantity": Tour.ratings_quantity,
    "price": Tour.price,
    "priceDiscount": Tour.price_discount,
    "summary": Tour.summary,
    "createdAt": Tour.created_at,
}

TOP_CHEAP_PARAMS = {
    "limit": "5",
    "sort": "-ratingsAverage,price",
    "fields": "name,price,ratingsAverage,summary,difficulty",
}

GUIDE_ROLES = ("guide", "lead-guide")

# Columns that may be explicitly cleared with null in an update
NULLABLE_FIELDS = {"price_discount", "description", "start_location"}


class TourService:
    """Tour workflows. Stateless; one shared instance."""

    # ── Helpers ───────────────────────────────────────────────────────────

    async def _get_visible(
        self, db: AsyncSession, tour_id: uuid.UUID, with_reviews: bool = False
    ) -> Tour:
        stmt = visible_tours().where(Tour.id == tour_id)
        if with_reviews:
            stmt = stmt.options(selectinload(Tour.reviews))
        result = await db.execute(stmt)
        tour = result.scalar_one_or_none()
        if tour is None:
            raise NotFoundError(resource="tour", resource_id=str(tour_id))
        return tour

    async def _resolve_guides(self, db: AsyncSession, ids: Sequence[uuid.UUID]) -> List[User]:
        """Load guide users, requiring every id to be an active guide or lead guide."""
        unique_ids = list(dict.fromkeys(ids))
        if not unique_ids:
            return []
        result = await db.execute(active_users().where(User.id.in_(unique_ids)))
        users = list(result.scalars().all())

        found = {u.id for u in users}
        missing = [str(i) for i in unique_ids if i not in found]
        if missing:
            raise ValidationError(
                message=f"Invalid guides: {', '.join(missing)}.",
                field="guides",
            )
        wrong_role = [str(u.id) for u in users if u.role not in GUIDE_ROLES]
        if wrong_role:
            raise ValidationError(
                message="Only users with role guide or lead-guide can be tour guides.",
                field="guides",
                context={"user_ids": wrong_role},
            )
        return users

    async def _ensure_unique_name(
        self, db: AsyncSession, name: str, exclude_id: Optional[uuid.UUID] = None
    ) -> None:
        # Checked against all tours, secret ones included: the column is unique
        stmt = select(Tour.id).where(Tour.name == name)
        if exclude_id is not None:
            stmt = stmt.where(Tour.id != exclude_id)
        if (await db.execute(stmt)).first() is not None:
            raise DuplicateFieldError(value=name, context={"field": "name"})

    async def _flush(self, db: AsyncSession, name: str) -> None:
        try:
            await db.flush()
        except IntegrityError as e:
            logger.warning("Tour write rejected by constraint: %s", str(e.orig))
            raise DuplicateFieldError(value=name, context={"field": "name"})

    # ── Listing ───────────────────────────────────────────────────────────

    def top_tour_params(self, params: Iterable[Tuple[str, str]]) -> List[Tuple[str, str]]:
        """Rewrite a query string into the top-5-cheap alias (alias keys win)."""
        kept = [(k, v) for k, v in params if k not in TOP_CHEAP_PARAMS]
        return kept + list(TOP_CHEAP_PARAMS.items())

    async def list_tours(
        self, db: AsyncSession, params: Iterable[Tuple[str, str]]
    ) -> List[Dict[str, Any]]:
        features = QueryFeatures(params, TOUR_FIELDS, default_sort="-createdAt")
        stmt = features.apply(visible_tours(), tie_breaker=Tour.id)
        try:
            result = await db.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("Database error listing tours: %s", str(e), exc_info=True)
            raise DatabaseError(context={"operation": "list_tours"})
        return [
            features.project(TourResponse.model_validate(t).to_json())
            for t in result.scalars().all()
        ]

    # ── CRUD ──────────────────────────────────────────────────────────────

    async def get_tour(self, db: AsyncSession, tour_id: uuid.UUID) -> Tour:
        """A visible tour with guides and reviews (with authors) loaded."""
        return await self._get_visible(db, tour_id, with_reviews=True)

    async def create_tour(self, db: AsyncSession, payload: TourCreate) -> Tour:
        data = payload.model_dump(exclude_none=True)
        guide_ids = data.pop("guides", [])

        await self._ensure_unique_name(db, payload.name)
        guides = await self._resolve_guides(db, guide_ids)

        tour = Tour(**data)
        tour.guides = guides
        db.add(tour)
        await self._flush(db, tour.name)

        logger.info("Tour created: %s (%s)", tour.id, tour.slug)
        return tour

    async def update_tour(
        self,
        db: AsyncSession,
        tour_id: uuid.UUID,
        payload: TourUpdate,
        cover: Optional[ImageUpload] = None,
        images: Sequence[ImageUpload] = (),
    ) -> Tour:
        """
        Partial update, optionally with a new cover and/or gallery.

        The discount rule is checked against the tour as it will be after
        the update, so lowering only the price below an existing discount
        is rejected too.
        """
        tour = await self._get_visible(db, tour_id)
        updates = payload.model_dump(exclude_unset=True)

        for key, value in updates.items():
            if value is None and key not in NULLABLE_FIELDS:
                raise ValidationError(message=f"{key} cannot be null.", field=key)

        if "name" in updates and updates["name"] != tour.name:
            await self._ensure_unique_name(db, updates["name"], exclude_id=tour.id)

        price = updates.get("price", tour.price)
        discount = updates["price_discount"] if "price_discount" in updates else tour.price_discount
        if discount is not None and discount >= price:
            raise ValidationError(
                message=f"Discount price ({discount:g}) should be lower than regular price",
                field="priceDiscount",
            )

        if "guides" in updates:
            tour.guides = await self._resolve_guides(db, updates.pop("guides"))

        stored: List[str] = []
        if cover is not None or images:
            cover_name, gallery = await image_service.save_tour_images(str(tour.id), cover, images)
            if cover_name:
                updates["image_cover"] = cover_name
            if gallery:
                updates["images"] = gallery
            stored = [name for name in (cover_name, *gallery) if name]

        try:
            for key, value in updates.items():
                setattr(tour, key, value)
            await self._flush(db, tour.name)
        except Exception:
            await image_service.discard("tours", stored)
            raise

        logger.info("Tour updated: %s fields=%s", tour.id, sorted(updates))
        return tour

    async def delete_tour(self, db: AsyncSession, tour_id: uuid.UUID) -> None:
        """Delete a tour; its reviews and guide links go with it (ON DELETE CASCADE)."""
        tour = await self._get_visible(db, tour_id)
        await db.delete(tour)
        await db.flush()
        logger.info("Tour deleted: %s", tour_id)

    # ── Reports ───────────────────────────────────────────────────────────

    async def get_tour_stats(self, db: AsyncSession) -> List[Dict[str, Any]]:
        difficulty = func.upper(Tour.difficulty)
        stmt = (
            select(
                difficulty.label("difficulty"),
                func.count(Tour.id).label("num_tours"),
                func.sum(Tour.ratings_quantity).label("num_ratings"),
                func.avg(Tour.ratings_average).label("avg_rating"),
                func.avg(Tour.price).label("avg_price"),
                func.min(Tour.price).label("min_price"),
                func.max(Tour.price).label("max_price"),
            )
            .where(Tour.secret_tour.is_(False), Tour.ratings_average >= 4.5)
            .group_by(difficulty)
            .order_by(func.avg(Tour.price))
        )
        try:
            rows = (await db.execute(stmt)).all()
        except SQLAlchemyError as e:
            logger.error("Database error computing tour stats: %s", str(e), exc_info=True)
            raise DatabaseError(context={"operation": "tour_stats"})

        return [
            {
                "difficulty": row.difficulty,
                "numTours": row.num_tours,
                "numRatings": int(row.num_ratings or 0),
                "avgRating": float(row.avg_rating),
                "avgPrice": float(row.avg_price),
                "minPrice": float(row.min_price),
                "maxPrice": float(row.max_price),
            }
            for row in rows
        ]

    async def get_monthly_plan(self, db: AsyncSession, year: int) -> List[Dict[str, Any]]:
        """
        Number of tour starts per month of `year`, busiest month first.

        A tour starting twice in the same month is counted (and listed) twice.
        """
        start = datetime(year, 1, 1, tzinfo=timezone.utc)
        end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)

        rows = (
            await db.execute(
                select(Tour.name, Tour.start_dates_raw).where(Tour.secret_tour.is_(False))
            )
        ).all()

        by_month: Dict[int, List[str]] = defaultdict(list)
        for name, raw_dates in rows:
            for raw in raw_dates or []:
                started = as_utc(datetime.fromisoformat(raw))
                if start <= started < end:
                    by_month[started.month].append(name)

        plan = [
            {"month": month, "numTourStarts": len(names), "tours": names}
            for month, names in by_month.items()
        ]
        plan.sort(key=lambda p: (-p["numTourStarts"], p["month"]))
        return plan[:12]

    # ── Geo ───────────────────────────────────────────────────────────────

    async def get_tours_within(
        self, db: AsyncSession, distance: float, latlng: str, unit: str
    ) -> List[Tour]:
        """Tours whose start point lies within `distance` of the centre."""
        unit = geo.validate_unit(unit)
        lat, lng = geo.parse_latlng(latlng)
        if distance < 0:
            raise ValidationError(message="Distance must be a positive number.", field="distance")

        radius = geo.radius_in_radians(distance, unit)
        low, high = geo.latitude_band(lat, radius)
        stmt = visible_tours().where(
            Tour.start_lat.is_not(None),
            Tour.start_lng.is_not(None),
            Tour.start_lat.between(low, high),
        )
        candidates = (await db.execute(stmt)).scalars().all()
        return [
            t for t in candidates
            if geo.central_angle(lat, lng, t.start_lat, t.start_lng) <= radius
        ]

    async def get_distances(self, db: AsyncSession, latlng: str, unit: str) -> List[Dict[str, Any]]:
        """Distance from the given point to every tour's start, nearest first."""
        unit = geo.validate_unit(unit)
        lat, lng = geo.parse_latlng(latlng)

        rows = (
            await db.execute(
                select(Tour.id, Tour.name, Tour.start_lat, Tour.start_lng).where(
                    Tour.secret_tour.is_(False),
                    Tour.start_lat.is_not(None),
                    Tour.start_lng.is_not(None),
                )
            )
        ).all()

        distances = [
            {
                "id": str(row.id),
                "name": row.name,
                "distance": geo.distance_in_unit(lat, lng, row.start_lat, row.start_lng, unit),
            }
            for row in rows
        ]
        distances.sort(key=lambda d: d["distance"])
        return distances


tour_service = TourService()
