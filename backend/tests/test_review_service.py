"""
Natours Backend: ReviewService Unit Tests
==========================================

What:  Rating aggregation and ownership rules against a mocked session.
"""

from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from natours.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from natours.models.review import Review
from natours.models.tour import Tour
from natours.models.user import User
from natours.schemas.review import ReviewCreate
from natours.services.review_service import ReviewService


def aggregate(count, average):
    result = MagicMock()
    result.one.return_value = (count, average)
    return result


class TestCalcAverageRatings:

    def setup_method(self):
        self.service = ReviewService()

    @pytest.mark.asyncio
    async def test_rounds_average(self, mock_db_session):
        tour = Tour(name="The Forest Hiker", ratings_average=4.5, ratings_quantity=0)
        mock_db_session.execute.return_value = aggregate(2, 4.25)
        mock_db_session.get.return_value = tour

        await self.service.calc_average_ratings(mock_db_session, uuid4())

        assert tour.ratings_quantity == 2
        assert tour.ratings_average == 4.3

    @pytest.mark.asyncio
    async def test_no_reviews_resets_defaults(self, mock_db_session):
        tour = Tour(name="The Forest Hiker", ratings_average=3.0, ratings_quantity=7)
        mock_db_session.execute.return_value = aggregate(0, None)
        mock_db_session.get.return_value = tour

        await self.service.calc_average_ratings(mock_db_session, uuid4())

        assert tour.ratings_quantity == 0
        assert tour.ratings_average == 4.5

    @pytest.mark.asyncio
    async def test_missing_tour_is_ignored(self, mock_db_session):
        mock_db_session.execute.return_value = aggregate(1, 5.0)
        mock_db_session.get.return_value = None

        await self.service.calc_average_ratings(mock_db_session, uuid4())
        # Only the flush before the aggregate query
        assert mock_db_session.flush.await_count == 1


class TestOwnership:

    def setup_method(self):
        self.service = ReviewService()
        self.author = User(id=uuid4(), role="user")
        self.review = Review(id=uuid4(), user_id=self.author.id, tour_id=uuid4(), rating=4, review="Nice")

    def test_author_may_modify(self):
        self.service._check_owner(self.author, self.review)

    def test_admin_may_modify(self):
        self.service._check_owner(User(id=uuid4(), role="admin"), self.review)

    def test_other_user_may_not(self):
        with pytest.raises(PermissionDeniedError):
            self.service._check_owner(User(id=uuid4(), role="user"), self.review)


class TestCreateReview:

    def setup_method(self):
        self.service = ReviewService()
        self.user = User(id=uuid4(), role="user")

    @pytest.mark.asyncio
    async def test_requires_a_tour(self, mock_db_session):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.create_review(mock_db_session, self.user, ReviewCreate(review="Great", rating=5))
        assert exc_info.value.field == "tour"
        mock_db_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_tour(self, mock_db_session):
        missing = MagicMock()
        missing.first.return_value = None
        mock_db_session.execute.return_value = missing

        with pytest.raises(NotFoundError):
            await self.service.create_review(
                mock_db_session, self.user, ReviewCreate(review="Great", rating=5), tour_id=uuid4()
            )
        mock_db_session.add.assert_not_called()
