"""
Natours Backend: Review Schemas
================================
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from natours.schemas.common import CamelModel
from natours.security import escape_html


def _clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = escape_html(value.strip())
    if not value:
        raise ValueError("Review text cannot be empty.")
    return value


class ReviewCreate(CamelModel):
    """
    POST /reviews and POST /tours/{tourId}/reviews.

    `tour` is only read when the route is not nested; the author is always
    the logged-in user, so there is no `user` field.
    """
    review: str
    rating: int = Field(ge=1, le=5)
    tour: Optional[uuid.UUID] = None

    @field_validator("review")
    @classmethod
    def validate_review(cls, v: str) -> str:
        return _clean_text(v)


class ReviewUpdate(CamelModel):
    review: Optional[str] = None
    rating: Optional[int] = Field(default=None, ge=1, le=5)

    @field_validator("review")
    @classmethod
    def validate_review(cls, v: Optional[str]) -> Optional[str]:
        return _clean_text(v)


class ReviewAuthor(CamelModel):
    id: uuid.UUID
    name: str
    photo: str


class ReviewResponse(CamelModel):
    id: uuid.UUID
    review: str
    rating: int
    created_at: datetime
    tour_id: uuid.UUID = Field(serialization_alias="tour")
    user: ReviewAuthor
