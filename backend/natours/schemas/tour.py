"""
Natours Backend: Tour Schemas
==============================

What:  Pydantic models for tour input (create/update) and output.
Why:   Field-level rules live here so a bad payload is rejected before any
       SQL runs:
       - name 10 to 40 characters, trimmed
       - difficulty in easy / medium / difficult
       - ratingsAverage 1 to 5
       - priceDiscount below price (create; updates are re-checked by
         TourService against the stored price)
How:   TourResponse reads straight from the ORM object (from_attributes),
       including the `duration_weeks` and `start_location` properties.
"""

import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field, field_validator, model_validator

from natours.models.tour import DIFFICULTIES
from natours.schemas.common import CamelModel
from natours.schemas.review import ReviewResponse
from natours.security import escape_html

NAME_MIN = 10
NAME_MAX = 40


# ── Geo ───────────────────────────────────────────────────────────────────

class GeoPoint(CamelModel):
    """GeoJSON Point. Coordinates are [longitude, latitude]."""
    type: Literal["Point"] = "Point"
    coordinates: List[float] = Field(min_length=2, max_length=2)
    address: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = Field(default=None, max_length=255)

    @field_validator("coordinates")
    @classmethod
    def validate_coordinates(cls, v: List[float]) -> List[float]:
        lng, lat = v
        if not -180 <= lng <= 180 or not -90 <= lat <= 90:
            raise ValueError("Coordinates must be [longitude, latitude] within valid ranges")
        return v


class Location(GeoPoint):
    day: Optional[int] = Field(default=None, ge=0)


# ── Input ─────────────────────────────────────────────────────────────────

def _clean_name(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    # Escaped first: the limits apply to the stored String(40) value
    value = escape_html(value.strip())
    if len(value) < NAME_MIN:
        raise ValueError(f"A tour name must have at least {NAME_MIN} characters")
    if len(value) > NAME_MAX:
        raise ValueError(f"A tour name must not be more than {NAME_MAX} characters")
    return value


def _check_difficulty(value: Optional[str]) -> Optional[str]:
    if value is not None and value not in DIFFICULTIES:
        raise ValueError("Difficulty is either: easy, medium, difficult")
    return value


def _clean_text(value: Optional[str]) -> Optional[str]:
    return escape_html(value.strip()) if value is not None else None


class TourUpdate(CamelModel):
    """PATCH /tours/{id}: every field optional."""
    name: Optional[str] = None
    duration: Optional[int] = Field(default=None, gt=0)
    max_group_size: Optional[int] = Field(default=None, gt=0)
    difficulty: Optional[str] = None
    ratings_average: Optional[float] = Field(default=None, ge=1, le=5)
    ratings_quantity: Optional[int] = Field(default=None, ge=0)
    price: Optional[float] = Field(default=None, ge=0)
    price_discount: Optional[float] = Field(default=None, ge=0)
    summary: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=255)
    image_cover: Optional[str] = Field(default=None, max_length=255)
    images: Optional[List[str]] = None
    start_dates: Optional[List[datetime]] = None
    secret_tour: Optional[bool] = None
    start_location: Optional[GeoPoint] = None
    locations: Optional[List[Location]] = None
    guides: Optional[List[uuid.UUID]] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return _clean_name(v)

    @field_validator("difficulty")
    @classmethod
    def validate_difficulty(cls, v: Optional[str]) -> Optional[str]:
        return _check_difficulty(v)

    @field_validator("summary", "description")
    @classmethod
    def validate_text(cls, v: Optional[str]) -> Optional[str]:
        return _clean_text(v)


class TourCreate(TourUpdate):
    """POST /tours: the required subset of TourUpdate."""
    name: str
    duration: int = Field(gt=0)
    max_group_size: int = Field(gt=0)
    difficulty: str
    price: float = Field(ge=0)
    summary: str = Field(min_length=1)
    image_cover: str = Field(max_length=255)

    @model_validator(mode="after")
    def discount_below_price(self):
        if self.price_discount is not None and self.price_discount >= self.price:
            raise ValueError(
                f"Discount price ({self.price_discount:g}) should be lower than regular price"
            )
        return self


# ── Output ────────────────────────────────────────────────────────────────

class TourGuide(CamelModel):
    id: uuid.UUID
    name: str
    email: str
    photo: str
    role: str


class TourResponse(CamelModel):
    """Public tour shape. created_at is intentionally not exposed."""
    id: uuid.UUID
    name: str
    slug: str
    duration: int
    duration_weeks: float
    max_group_size: int
    difficulty: str
    ratings_average: float
    ratings_quantity: int
    price: float
    price_discount: Optional[float] = None
    summary: str
    description: Optional[str] = Field(default=None, max_length=255)
    image_cover: str
    images: List[str] = []
    start_dates: List[datetime] = []
    secret_tour: bool = False
    start_location: Optional[GeoPoint] = None
    locations: List[Location] = []
    guides: List[TourGuide] = []

    @field_validator("guides", mode="before")
    @classmethod
    def only_active_guides(cls, v):
        # Deactivated accounts stay linked but are never shown
        return [g for g in v or [] if getattr(g, "active", True)]


class TourDetailResponse(TourResponse):
    """GET /tours/{id}: the tour plus its reviews."""
    reviews: List[ReviewResponse] = []
