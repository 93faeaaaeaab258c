"""Dispute filing, discussion and resolution endpoints."""

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
    CreateDisputeRequest,
    DisputeMessageRequest,
    MyDisputeFilters,
    ResolveDisputeRequest,
)
from task_market.services.dispute_manager import DisputeManager

router = APIRouter()

_DISPUTE_SORT_FIELDS = frozenset({"created_at"})


def _dispute_manager() -> DisputeManager:
    state = get_app_state()
    if state.dispute_manager is None:
        msg = "DisputeManager not initialized"
        raise RuntimeError(msg)
    return state.dispute_manager


@router.post("/disputes", status_code=201)
async def create_dispute(request: Request) -> JSONResponse:
    """Open a dispute on an assigned, in-progress or submitted task."""
    caller = await authenticate(request)
    payload = await read_payload(request, CreateDisputeRequest)

    result = await _dispute_manager().create_dispute(
        caller,
        payload.task_id,
        reason=payload.reason,
        description=payload.description,
    )
    return JSONResponse(status_code=201, content=result)


# MUST be before GET /disputes/{dispute_id}
@router.get("/disputes/mine")
async def list_my_disputes(request: Request) -> dict[str, Any]:
    caller = await authenticate(request)
    page = parse_pagination(request.query_params, _DISPUTE_SORT_FIELDS)
    filters = read_filters(request, MyDisputeFilters)
    return await _dispute_manager().list_my_disputes(caller, filters.status, page)


@router.get("/disputes/{dispute_id}")
async def get_dispute(dispute_id: str, request: Request) -> dict[str, Any]:
    caller = await authenticate(request)
    return await _dispute_manager().get_dispute(caller, dispute_id)


@router.post("/disputes/{dispute_id}/messages", status_code=201)
async def add_dispute_message(dispute_id: str, request: Request) -> JSONResponse:
    """Post a message to an active dispute."""
    caller = await authenticate(request)
    payload = await read_payload(request, DisputeMessageRequest)

    result = await _dispute_manager().add_message(caller, dispute_id, payload.message)
    return JSONResponse(status_code=201, content=result)


@router.post("/disputes/{dispute_id}/resolve")
async def resolve_dispute(dispute_id: str, request: Request) -> dict[str, Any]:
    """Settle a dispute; the task's payment follows the resolution."""
    caller = await authenticate(request)
    payload = await read_payload(request, ResolveDisputeRequest)

    return await _dispute_manager().resolve_dispute(
        caller,
        dispute_id,
        resolution=payload.resolution,
        resolution_notes=payload.resolution_notes,
        refund_amount=payload.refund_amount,
    )
