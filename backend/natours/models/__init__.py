"""ORM models. Importing this package registers every table on Base.metadata."""

from natours.models.user import User, USER_ROLES, active_users
from natours.models.tour import Tour, DIFFICULTIES, tour_guides, visible_tours
from natours.models.review import Review

__all__ = [
    "User",
    "USER_ROLES",
    "active_users",
    "Tour",
    "DIFFICULTIES",
    "tour_guides",
    "visible_tours",
    "Review",
]
