"""
Natours Backend: Tour SQLAlchemy Model
=======================================

What:  ORM model for the `tours` table and its `tour_guides` association.
Why:   Maps the tour document (with its GeoJSON start point, itinerary
       locations and start dates) onto relational columns.
How:   Scalar fields are plain columns. The itinerary, image gallery and
       start dates are JSON columns. The start point is split into
       latitude/longitude columns so proximity queries can pre-filter on an
       indexed latitude band before the exact great-circle check.
Who:   Used by TourService, ReviewService (rating updates) and Alembic.

Derived values:
    slug            → slugify(name), kept in sync by the `name` validator
    ratings_average → rounded to one decimal whenever it is assigned
    duration_weeks  → duration / 7, computed in Python

Secret tours:
    `secret_tour = True` rows are hidden from every read, update, delete and
    report. TourService builds all of its queries on `visible_tours()`.
"""

import math
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from slugify import slugify
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Select,
    String,
    Table,
    Text,
    Uuid,
    select,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from natours.database import Base, as_utc, utcnow
from natours.models.user import User

DIFFICULTIES = ("easy", "medium", "difficult")

# Association table: which users guide which tours.
# ON DELETE CASCADE on both sides, so deleting a user or a tour never leaves
# dangling rows and the ORM never has to load the collection first.
tour_guides = Table(
    "tour_guides",
    Base.metadata,
    Column("tour_id", Uuid, ForeignKey("tours.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


def round_rating(value: float) -> float:
    """Round half up to one decimal place (4.666 → 4.7, 4.45 → 4.5)."""
    return math.floor(value * 10 + 0.5) / 10


class Tour(Base):
    """A bookable tour."""

    __tablename__ = "tours"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    slug: Mapped[str] = mapped_column(String(80), nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)
    max_group_size: Mapped[int] = mapped_column(Integer, nullable=False)
    difficulty: Mapped[str] = mapped_column(String(20), nullable=False)

    ratings_average: Mapped[float] = mapped_column(Float, nullable=False, default=4.5)
    ratings_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    price: Mapped[float] = mapped_column(Float, nullable=False)
    price_discount: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    summary: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    image_cover: Mapped[str] = mapped_column(String(255), nullable=False)
    images: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    # Never serialized; still usable for sorting (?sort=-createdAt)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    # ISO 8601 strings; use the `start_dates` property for datetimes
    start_dates_raw: Mapped[List[str]] = mapped_column(
        "start_dates", JSON, nullable=False, default=list
    )
    secret_tour: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # GeoJSON start point, flattened
    start_lat: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    start_lng: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    start_address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    start_description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Itinerary: [{"type": "Point", "coordinates": [lng, lat], "address", "description", "day"}]
    locations: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    guides: Mapped[List[User]] = relationship(
        User,
        secondary=tour_guides,
        lazy="selectin",
        order_by=User.name,
    )
    reviews: Mapped[List["Review"]] = relationship(  # noqa: F821
        "Review",
        back_populates="tour",
        passive_deletes=True,
        order_by="Review.created_at",
    )

    __table_args__ = (
        Index("idx_tours_price_ratings", "price", "ratings_average"),
        Index("idx_tours_slug", "slug"),
        Index("idx_tours_start_point", "start_lat", "start_lng"),
    )

    # ── Validators ────────────────────────────────────────────────────────

    @validates("name")
    def _sync_slug(self, key: str, value: str) -> str:
        value = value.strip()
        self.slug = slugify(value, lowercase=True)
        return value

    @validates("ratings_average")
    def _round_rating(self, key: str, value: float) -> float:
        return round_rating(value)

    # ── Derived properties ────────────────────────────────────────────────

    @property
    def duration_weeks(self) -> float:
        return self.duration / 7

    @property
    def start_dates(self) -> List[datetime]:
        return [as_utc(datetime.fromisoformat(raw)) for raw in self.start_dates_raw or []]

    @start_dates.setter
    def start_dates(self, values: List[datetime]) -> None:
        self.start_dates_raw = [as_utc(v).isoformat() for v in values]

    @property
    def start_location(self) -> Optional[Dict[str, Any]]:
        """The start point as a GeoJSON Point with address and description."""
        if self.start_lat is None or self.start_lng is None:
            return None
        return {
            "type": "Point",
            "coordinates": [self.start_lng, self.start_lat],
            "address": self.start_address,
            "description": self.start_description,
        }

    @start_location.setter
    def start_location(self, point: Optional[Dict[str, Any]]) -> None:
        if point is None:
            self.start_lat = self.start_lng = None
            self.start_address = self.start_description = None
            return
        lng, lat = point["coordinates"][:2]
        self.start_lng = float(lng)
        self.start_lat = float(lat)
        self.start_address = point.get("address")
        self.start_description = point.get("description")

    def __repr__(self) -> str:
        return f"<Tour(id={self.id}, slug='{self.slug}', price={self.price})>"


def visible_tours() -> Select:
    """Base query for every tour read: secret tours are excluded."""
    return select(Tour).where(Tour.secret_tour.is_(False))
