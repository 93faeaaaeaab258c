"""Bid placement, listing and acceptance endpoints."""

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
from task_market.schemas import BID_SORT_FIELDS, CreateBidRequest, MyBidFilters, UpdateBidRequest
from task_market.services.bid_manager import BidManager

router = APIRouter()


def _bid_manager() -> BidManager:
    state = get_app_state()
    if state.bid_manager is None:
        msg = "BidManager not initialized"
        raise RuntimeError(msg)
    return state.bid_manager


# ---------------------------------------------------------------------------
# POST /tasks/{task_id}/bids — place bid
# ---------------------------------------------------------------------------


@router.post("/tasks/{task_id}/bids", status_code=201)
async def create_bid(task_id: str, request: Request) -> JSONResponse:
    """Place a bid on an open task."""
    caller = await authenticate(request)
    payload = await read_payload(request, CreateBidRequest)

    result = await _bid_manager().create_bid(
        caller,
        task_id,
        amount=payload.amount,
        proposal=payload.proposal,
        delivery_time_days=payload.delivery_time_days,
        phone=payload.phone,
    )
    return JSONResponse(status_code=201, content=result)


# ---------------------------------------------------------------------------
# GET /tasks/{task_id}/bids — list bids (owner sees all, bidders their own)
# ---------------------------------------------------------------------------


@router.get("/tasks/{task_id}/bids")
async def list_bids(task_id: str, request: Request) -> dict[str, Any]:
    """List bids for a task with contact details redacted per viewer."""
    caller = await authenticate(request)
    page = parse_pagination(request.query_params, BID_SORT_FIELDS)
    return await _bid_manager().list_bids_for_task(caller, task_id, page)


# ---------------------------------------------------------------------------
# GET /bids/mine and /bids/stats
# MUST be before GET /bids/{bid_id}
# ---------------------------------------------------------------------------


@router.get("/bids/mine")
async def list_my_bids(request: Request) -> dict[str, Any]:
    """The caller's own bids across all tasks."""
    caller = await authenticate(request)
    page = parse_pagination(request.query_params, BID_SORT_FIELDS)
    filters = read_filters(request, MyBidFilters)
    return await _bid_manager().list_my_bids(caller, filters.status, page)


@router.get("/bids/stats")
async def bid_statistics(request: Request) -> dict[str, Any]:
    """Aggregate bid counts and amounts per status."""
    await authenticate(request)
    return _bid_manager().get_stats()


# ---------------------------------------------------------------------------
# /bids/{bid_id}
# ---------------------------------------------------------------------------


@router.get("/bids/{bid_id}")
async def get_bid(bid_id: str, request: Request) -> dict[str, Any]:
    """A single bid, for its bidder or the task owner."""
    caller = await authenticate(request)
    return await _bid_manager().get_bid(caller, bid_id)


@router.patch("/bids/{bid_id}")
async def update_bid(bid_id: str, request: Request) -> dict[str, Any]:
    """Revise a pending bid."""
    caller = await authenticate(request)
    payload = await read_payload(request, UpdateBidRequest)
    return await _bid_manager().update_bid(
        caller,
        bid_id,
        payload.model_dump(exclude_unset=True),
    )


@router.delete("/bids/{bid_id}")
async def delete_bid(bid_id: str, request: Request) -> dict[str, Any]:
    """Delete one of the caller's bids that was never accepted."""
    caller = await authenticate(request)
    return await _bid_manager().delete_bid(caller, bid_id)


# ---------------------------------------------------------------------------
# Bid actions
# ---------------------------------------------------------------------------


@router.post("/bids/{bid_id}/accept")
async def accept_bid(bid_id: str, request: Request) -> dict[str, Any]:
    """Accept a bid: the task starts and sibling bids are rejected."""
    caller = await authenticate(request)
    return await _bid_manager().accept_bid(caller, bid_id)


@router.post("/bids/{bid_id}/reject")
async def reject_bid(bid_id: str, request: Request) -> dict[str, Any]:
    """Task owner turns down a pending bid."""
    caller = await authenticate(request)
    return await _bid_manager().reject_bid(caller, bid_id)


@router.post("/bids/{bid_id}/withdraw")
async def withdraw_bid(bid_id: str, request: Request) -> dict[str, Any]:
    """Bidder pulls back a pending bid."""
    caller = await authenticate(request)
    return await _bid_manager().withdraw_bid(caller, bid_id)
