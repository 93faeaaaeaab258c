"""Task posting, browsing and lifecycle endpoints."""

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
    TASK_SORT_FIELDS,
    AssignTaskRequest,
    CreateTaskRequest,
    MyTaskFilters,
    RevisionRequest,
    SubmitWorkRequest,
    TaskListFilters,
    UpdateTaskRequest,
)
from task_market.services.task_manager import TaskManager

router = APIRouter()


def _task_manager() -> TaskManager:
    state = get_app_state()
    if state.task_manager is None:
        msg = "TaskManager not initialized"
        raise RuntimeError(msg)
    return state.task_manager


# ---------------------------------------------------------------------------
# POST /tasks — post a task
# ---------------------------------------------------------------------------


@router.post("/tasks", status_code=201)
async def create_task(request: Request) -> JSONResponse:
    """Post a new open task owned by the caller."""
    caller = await authenticate(request)
    payload = await read_payload(request, CreateTaskRequest)

    result = await _task_manager().create_task(
        caller,
        title=payload.title,
        description=payload.description,
        category=payload.category,
        college=payload.college,
        budget=payload.budget,
        deadline=payload.deadline,
        location=payload.location,
        requirements=payload.requirements,
    )
    return JSONResponse(status_code=201, content=result)


# ---------------------------------------------------------------------------
# GET /tasks — browse (public)
# ---------------------------------------------------------------------------


@router.get("/tasks")
async def list_tasks(request: Request) -> dict[str, Any]:
    """Browse tasks with filters, sorting and pagination."""
    page = parse_pagination(request.query_params, TASK_SORT_FIELDS)
    filters = read_filters(request, TaskListFilters)

    return await _task_manager().list_tasks(
        page,
        status=filters.status,
        category=filters.category,
        college=filters.college,
        min_budget=filters.min_budget,
        max_budget=filters.max_budget,
        search=filters.search,
    )


# ---------------------------------------------------------------------------
# GET /tasks/mine and /tasks/stats
# MUST be before GET /tasks/{task_id}
# ---------------------------------------------------------------------------


@router.get("/tasks/mine")
async def list_my_tasks(request: Request) -> dict[str, Any]:
    """Tasks the caller posted, or with role=freelancer, is working on."""
    caller = await authenticate(request)
    page = parse_pagination(request.query_params, TASK_SORT_FIELDS)
    filters = read_filters(request, MyTaskFilters)

    return await _task_manager().list_my_tasks(
        caller,
        page,
        role=filters.role,
        status=filters.status,
    )


@router.get("/tasks/stats")
async def task_statistics() -> dict[str, Any]:
    """Counts and average budgets per status and category."""
    return _task_manager().get_statistics()


# ---------------------------------------------------------------------------
# /tasks/{task_id}
# ---------------------------------------------------------------------------


@router.get("/tasks/{task_id}")
async def get_task(task_id: str) -> dict[str, Any]:
    """Get a single task. An overdue open task is cancelled on read."""
    return await _task_manager().get_task(task_id)


@router.patch("/tasks/{task_id}")
async def update_task(task_id: str, request: Request) -> dict[str, Any]:
    """Edit an open task the caller owns."""
    caller = await authenticate(request)
    payload = await read_payload(request, UpdateTaskRequest)

    return await _task_manager().update_task(
        caller,
        task_id,
        payload.model_dump(exclude_unset=True),
    )


@router.delete("/tasks/{task_id}")
async def delete_task(task_id: str, request: Request) -> dict[str, Any]:
    """Delete a task that never received a bid."""
    caller = await authenticate(request)
    return await _task_manager().delete_task(caller, task_id)


# ---------------------------------------------------------------------------
# Lifecycle actions
# ---------------------------------------------------------------------------


@router.post("/tasks/{task_id}/assign")
async def assign_task(task_id: str, request: Request) -> dict[str, Any]:
    """Assign the task to the freelancer behind one of its pending bids."""
    caller = await authenticate(request)
    payload = await read_payload(request, AssignTaskRequest)
    return await _task_manager().assign_task(caller, task_id, payload.bid_id)


@router.post("/tasks/{task_id}/start")
async def start_task(task_id: str, request: Request) -> dict[str, Any]:
    """Assigned freelancer starts work."""
    caller = await authenticate(request)
    return await _task_manager().start_task(caller, task_id)


@router.post("/tasks/{task_id}/submit")
async def submit_task(task_id: str, request: Request) -> dict[str, Any]:
    """Assigned freelancer hands in the work."""
    caller = await authenticate(request)
    payload = await read_payload(request, SubmitWorkRequest)
    return await _task_manager().submit_task(
        caller,
        task_id,
        submission_url=str(payload.submission_url),
        submission_notes=payload.submission_notes,
    )


@router.post("/tasks/{task_id}/approve")
async def approve_task(task_id: str, request: Request) -> dict[str, Any]:
    """Owner accepts the submitted work and releases payment."""
    caller = await authenticate(request)
    return await _task_manager().approve_task(caller, task_id)


@router.post("/tasks/{task_id}/revision")
async def request_revision(task_id: str, request: Request) -> dict[str, Any]:
    """Owner sends the submitted work back for changes."""
    caller = await authenticate(request)
    payload = await read_payload(request, RevisionRequest)
    return await _task_manager().request_revision(caller, task_id, payload.notes)


@router.post("/tasks/{task_id}/cancel")
async def cancel_task(task_id: str, request: Request) -> dict[str, Any]:
    """Owner cancels an open task; pending bids are rejected."""
    caller = await authenticate(request)
    return await _task_manager().cancel_task(caller, task_id)
