"""Review endpoints for completed tasks."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from task_market.core.state import get_app_state
from task_market.routers.validation import (
    authenticate,
    parse_pagination,
    read_filters,
    read_payload,
)
from task_market.schemas import (
    REVIEW_SORT_FIELDS,
    CreateReviewRequest,
    ReviewListFilters,
    ReviewStatsFilters,
    UpdateReviewRequest,
)
from task_market.services.review_manager import ReviewManager

router = APIRouter()


def _review_manager() -> ReviewManager:
    state = get_app_state()
    if state.review_manager is None:
        msg = "ReviewManager not initialized"
        raise RuntimeError(msg)
    return state.review_manager


@router.post("/reviews", status_code=201)
async def create_review(request: Request) -> JSONResponse:
    """Review the other party of a completed task."""
    caller = await authenticate(request)
    payload = await read_payload(request, CreateReviewRequest)

    result = await _review_manager().create_review(
        caller,
        payload.task_id,
        rating=payload.rating,
        comment=payload.comment,
    )
    return JSONResponse(status_code=201, content=result)


@router.get("/reviews")
async def list_reviews(request: Request) -> dict[str, Any]:
    """Public review listing."""
    page = parse_pagination(request.query_params, REVIEW_SORT_FIELDS)
    filters = read_filters(request, ReviewListFilters)
    return await _review_manager().list_reviews(
        task_id=filters.task_id,
        reviewee_id=filters.reviewee_id,
        rating=filters.rating,
        page=page,
    )


# MUST be before GET /reviews/{review_id}
@router.get("/reviews/mine")
async def list_my_reviews(request: Request) -> dict[str, Any]:
    caller = await authenticate(request)
    page = parse_pagination(request.query_params, REVIEW_SORT_FIELDS)
    return await _review_manager().list_my_reviews(caller, page)


# MUST be before GET /reviews/{review_id}
@router.get("/reviews/stats")
async def review_stats(request: Request) -> dict[str, Any]:
    filters = read_filters(request, ReviewStatsFilters)
    return await _review_manager().get_stats(filters.reviewee_id)


@router.get("/reviews/{review_id}")
async def get_review(review_id: str) -> dict[str, Any]:
    return await _review_manager().get_review(review_id)


@router.patch("/reviews/{review_id}")
async def update_review(review_id: str, request: Request) -> dict[str, Any]:
    caller = await authenticate(request)
    payload = await read_payload(request, UpdateReviewRequest)

    return await _review_manager().update_review(
        caller,
        review_id,
        payload.model_dump(exclude_unset=True),
    )


@router.delete("/reviews/{review_id}")
async def delete_review(review_id: str, request: Request) -> dict[str, Any]:
    caller = await authenticate(request)
    return await _review_manager().delete_review(caller, review_id)
