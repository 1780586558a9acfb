"""
Natours Backend: Review SQLAlchemy Model
=========================================

What:  ORM model for the `reviews` table.
Who:   ReviewService (CRUD + rating aggregation) and TourService (detail view).

Constraints:
    - One review per (tour, user): uq_reviews_tour_user
    - rating between 1 and 5: ck_reviews_rating_range
    - Deleting a tour or a user deletes its reviews (ON DELETE CASCADE)

The author is always loaded with the review (lazy="selectin"), because every
response shape shows the author's name and photo.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from natours.database import Base, utcnow
from natours.models.tour import Tour
from natours.models.user import User


class Review(Base):
    """A rating and text review of a tour by a user."""

    __tablename__ = "reviews"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    review: Mapped[str] = mapped_column(Text, nullable=False)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    tour_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tours.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    tour: Mapped[Tour] = relationship(Tour, back_populates="reviews")
    user: Mapped[User] = relationship(User, lazy="selectin")

    __table_args__ = (
        UniqueConstraint("tour_id", "user_id", name="uq_reviews_tour_user"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_reviews_rating_range"),
    )

    def __repr__(self) -> str:
        return f"<Review(id={self.id}, tour_id={self.tour_id}, rating={self.rating})>"
