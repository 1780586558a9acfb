"""
Natours Backend: Tour Route Handlers
=====================================

What:  /api/v1/tours endpoints, including the nested /{tourId}/reviews.
How:   Handlers translate HTTP into TourService / ReviewService calls and wrap
       the results in the JSend envelope.

Route order matters: the fixed paths (top-5-cheap, tour-stats, ...) are
declared before /{tour_id} so they are never parsed as an id.

Access:
    public                 list, get, top-5-cheap, tour-stats, geo queries
    admin/lead-guide/guide monthly-plan
    admin/lead-guide       create, update, delete
    protected              list nested reviews
    user                   create nested review
"""

import uuid

from fastapi import APIRouter, Depends, Path, Request
from sqlalchemy.ext.asyncio import AsyncSession

from natours.database import get_db_session
from natours.dependencies import get_current_user, read_payload, restrict_to
from natours.models.user import User
from natours.responses import no_content, success
from natours.schemas.common import ErrorResponse, parse_payload
from natours.schemas.review import ReviewCreate, ReviewResponse
from natours.schemas.tour import TourCreate, TourDetailResponse, TourResponse, TourUpdate
from natours.services.review_service import review_service
from natours.services.tour_service import tour_service

router = APIRouter(
    prefix="/api/v1/tours",
    tags=["Tours"],
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)


# ── Aliases, reports and geo queries ──────────────────────────────────────

@router.get("/top-5-cheap", summary="Five best-rated, cheapest tours")
async def top_tours(request: Request, db: AsyncSession = Depends(get_db_session)):
    params = tour_service.top_tour_params(request.query_params.multi_items())
    tours = await tour_service.list_tours(db, params)
    return success(tours, results=len(tours))


@router.get("/tour-stats", summary="Aggregate statistics per difficulty")
async def tour_stats(db: AsyncSession = Depends(get_db_session)):
    stats = await tour_service.get_tour_stats(db)
    return success({"stats": stats})


@router.get(
    "/monthly-plan/{year}",
    summary="Tour starts per month of a year",
    dependencies=[Depends(restrict_to("admin", "lead-guide", "guide"))],
)
async def monthly_plan(
    year: int = Path(ge=1, le=9998),
    db: AsyncSession = Depends(get_db_session),
):
    plan = await tour_service.get_monthly_plan(db, year)
    return success({"plan": plan})


@router.get(
    "/tours-within/{distance}/center/{latlng}/unit/{unit}",
    summary="Tours starting within a distance of a point",
)
async def tours_within(
    distance: float,
    latlng: str,
    unit: str,
    db: AsyncSession = Depends(get_db_session),
):
    tours = await tour_service.get_tours_within(db, distance, latlng, unit)
    data = [TourResponse.model_validate(t).to_json() for t in tours]
    return success({"data": data}, results=len(data))


@router.get("/distances/{latlng}/unit/{unit}", summary="Distance from a point to every tour")
async def distances(latlng: str, unit: str, db: AsyncSession = Depends(get_db_session)):
    result = await tour_service.get_distances(db, latlng, unit)
    return success({"data": result}, results=len(result))


# ── CRUD ──────────────────────────────────────────────────────────────────

@router.get("", summary="List tours (filter, sort, fields, paginate)")
async def get_all_tours(request: Request, db: AsyncSession = Depends(get_db_session)):
    tours = await tour_service.list_tours(db, request.query_params.multi_items())
    return success(tours, results=len(tours))


@router.post(
    "",
    status_code=201,
    summary="Create a tour",
    dependencies=[Depends(restrict_to("admin", "lead-guide"))],
)
async def create_tour(payload: TourCreate, db: AsyncSession = Depends(get_db_session)):
    tour = await tour_service.create_tour(db, payload)
    return success(TourResponse.model_validate(tour).to_json(), status_code=201)


@router.get("/{tour_id}", summary="Get one tour with its reviews")
async def get_tour(tour_id: uuid.UUID, db: AsyncSession = Depends(get_db_session)):
    tour = await tour_service.get_tour(db, tour_id)
    return success(TourDetailResponse.model_validate(tour).to_json())


@router.patch(
    "/{tour_id}",
    summary="Update a tour (JSON, or multipart with imageCover / images)",
    dependencies=[Depends(restrict_to("admin", "lead-guide"))],
)
async def update_tour(
    tour_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db_session),
):
    fields, files = await read_payload(request)
    payload = parse_payload(TourUpdate, fields)
    covers = files.get("imageCover", [])
    tour = await tour_service.update_tour(
        db,
        tour_id,
        payload,
        cover=covers[-1] if covers else None,
        images=files.get("images", []),
    )
    return success(TourResponse.model_validate(tour).to_json())


@router.delete(
    "/{tour_id}",
    status_code=204,
    summary="Delete a tour and its reviews",
    dependencies=[Depends(restrict_to("admin", "lead-guide"))],
)
async def delete_tour(tour_id: uuid.UUID, db: AsyncSession = Depends(get_db_session)):
    await tour_service.delete_tour(db, tour_id)
    return no_content()


# ── Nested reviews ────────────────────────────────────────────────────────

@router.get(
    "/{tour_id}/reviews",
    summary="List reviews of a tour",
    dependencies=[Depends(get_current_user)],
)
async def get_tour_reviews(
    tour_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db_session),
):
    reviews = await review_service.list_reviews(db, request.query_params.multi_items(), tour_id)
    return success(reviews, results=len(reviews))


@router.post("/{tour_id}/reviews", status_code=201, summary="Review a tour")
async def create_tour_review(
    tour_id: uuid.UUID,
    payload: ReviewCreate,
    user: User = Depends(restrict_to("user")),
    db: AsyncSession = Depends(get_db_session),
):
    review = await review_service.create_review(db, user, payload, tour_id=tour_id)
    return success(ReviewResponse.model_validate(review).to_json(), status_code=201)
