"""
Natours Backend: Review Route Handlers
=======================================

What:  /api/v1/reviews endpoints. Every route requires a logged-in user;
       creating is limited to role 'user', changing to 'user' and 'admin'.
"""

import uuid

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from natours.database import get_db_session
from natours.dependencies import get_current_user, restrict_to
from natours.models.user import User
from natours.responses import no_content, success
from natours.schemas.common import ErrorResponse
from natours.schemas.review import ReviewCreate, ReviewResponse, ReviewUpdate
from natours.services.review_service import review_service

router = APIRouter(
    prefix="/api/v1/reviews",
    tags=["Reviews"],
    dependencies=[Depends(get_current_user)],
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)


@router.get("", summary="List reviews")
async def get_all_reviews(request: Request, db: AsyncSession = Depends(get_db_session)):
    reviews = await review_service.list_reviews(db, request.query_params.multi_items())
    return success(reviews, results=len(reviews))


@router.post("", status_code=201, summary="Create a review (tour id in the body)")
async def create_review(
    payload: ReviewCreate,
    user: User = Depends(restrict_to("user")),
    db: AsyncSession = Depends(get_db_session),
):
    review = await review_service.create_review(db, user, payload)
    return success(ReviewResponse.model_validate(review).to_json(), status_code=201)


@router.get("/{review_id}", summary="Get one review")
async def get_review(review_id: uuid.UUID, db: AsyncSession = Depends(get_db_session)):
    review = await review_service.get_review(db, review_id)
    return success(ReviewResponse.model_validate(review).to_json())


@router.patch("/{review_id}", summary="Update a review")
async def update_review(
    review_id: uuid.UUID,
    payload: ReviewUpdate,
    user: User = Depends(restrict_to("user", "admin")),
    db: AsyncSession = Depends(get_db_session),
):
    review = await review_service.update_review(db, user, review_id, payload)
    return success(ReviewResponse.model_validate(review).to_json())


@router.delete("/{review_id}", status_code=204, summary="Delete a review")
async def delete_review(
    review_id: uuid.UUID,
    user: User = Depends(restrict_to("user", "admin")),
    db: AsyncSession = Depends(get_db_session),
):
    await review_service.delete_review(db, user, review_id)
    return no_content()
