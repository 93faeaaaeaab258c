"""Shared request validation helpers for task-market routers."""

from __future__ import annotations

import json
from collections.abc import Collection, Mapping
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel, ValidationError

from task_market.config import get_settings
from task_market.core.exceptions import ServiceError
from task_market.core.state import get_app_state
from task_market.services.pagination import PageParams

if TYPE_CHECKING:
    from fastapi import Request

    from task_market.services.authorization import Caller

ModelT = TypeVar("ModelT", bound=BaseModel)

_PAGING_KEYS = ("page", "limit", "sort_by", "sort_order")

# Largest row offset SQLite accepts as a 64-bit INTEGER.
_MAX_OFFSET = 2**63 - 1


def parse_json_body(raw_body: bytes) -> dict[str, Any]:
    """Parse JSON body, raising ServiceError on failure."""
    try:
        data = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ServiceError(
            "INVALID_JSON",
            "Request body is not valid JSON",
            400,
            {},
        ) from exc

    if not isinstance(data, dict):
        raise ServiceError(
            "INVALID_JSON",
            "Request body must be a JSON object",
            400,
            {},
        )

    return data


def validate_payload(model_cls: type[ModelT], data: Mapping[str, Any]) -> ModelT:
    """Validate a payload against its schema, collecting every field error."""
    try:
        return model_cls.model_validate(dict(data))
    except ValidationError as exc:
        errors = [
            {
                "field": ".".join(str(part) for part in error["loc"]) or "body",
                "message": error["msg"],
            }
            for error in exc.errors()
        ]
        raise ServiceError(
            "INVALID_PAYLOAD",
            "Request payload failed validation",
            400,
            {"errors": errors},
        ) from exc


async def read_payload(request: Request, model_cls: type[ModelT]) -> ModelT:
    """Parse the JSON body of a request and validate it."""
    body = await request.body()
    return validate_payload(model_cls, parse_json_body(body))


def read_filters(request: Request, model_cls: type[ModelT]) -> ModelT:
    """Validate the query parameters a filter model knows about; paging keys are ignored."""
    query = request.query_params
    data = {
        name: query[name]
        for name in model_cls.model_fields
        if name in query and name not in _PAGING_KEYS
    }
    return validate_payload(model_cls, data)


def _positive_int(raw: str, name: str) -> int:
    try:
        value = int(raw)
    except ValueError as exc:
        raise ServiceError(
            "INVALID_PAGINATION",
            f"'{name}' must be an integer",
            400,
            {"field": name},
        ) from exc
    if value < 1:
        raise ServiceError(
            "INVALID_PAGINATION",
            f"'{name}' must be at least 1",
            400,
            {"field": name},
        )
    return value


def parse_pagination(
    query_params: Mapping[str, str],
    sort_fields: Collection[str],
    *,
    default_sort: str = "created_at",
) -> PageParams:
    """
    Validate page, limit, sort_by and sort_order query parameters.

    Raises:
        ServiceError: INVALID_PAGINATION for bad page/limit/sort_order,
            INVALID_SORT_FIELD for a sort field outside the whitelist.
    """
    pagination = get_settings().pagination

    page = _positive_int(query_params.get("page", "1"), "page")
    limit_raw = query_params.get("limit")
    limit = pagination.default_limit if limit_raw is None else _positive_int(limit_raw, "limit")
    if limit > pagination.max_limit:
        raise ServiceError(
            "INVALID_PAGINATION",
            f"'limit' must be at most {pagination.max_limit}",
            400,
            {"field": "limit", "max_limit": pagination.max_limit},
        )
    if (page - 1) * limit > _MAX_OFFSET:
        raise ServiceError(
            "INVALID_PAGINATION",
            "'page' is out of range",
            400,
            {"field": "page"},
        )

    sort_by = query_params.get("sort_by", default_sort)
    if sort_by not in sort_fields:
        raise ServiceError(
            "INVALID_SORT_FIELD",
            f"Cannot sort by '{sort_by}'",
            400,
            {"sort_by": sort_by, "allowed": sorted(sort_fields)},
        )

    sort_order = query_params.get("sort_order", "desc").lower()
    if sort_order not in ("asc", "desc"):
        raise ServiceError(
            "INVALID_PAGINATION",
            "'sort_order' must be 'asc' or 'desc'",
            400,
            {"field": "sort_order"},
        )

    return PageParams(page=page, limit=limit, sort_by=sort_by, sort_order=sort_order)


def extract_bearer_token(authorization: str | None) -> str:
    """Extract the bearer token from an Authorization header."""
    if authorization is None:
        raise ServiceError(
            "UNAUTHENTICATED",
            "Missing Authorization header",
            401,
            {},
        )

    if not authorization.startswith("Bearer "):
        raise ServiceError(
            "UNAUTHENTICATED",
            "Authorization header must use Bearer scheme",
            401,
            {},
        )

    token = authorization[len("Bearer ") :].strip()
    if not token:
        raise ServiceError(
            "UNAUTHENTICATED",
            "Bearer token must not be empty",
            401,
            {},
        )

    return token


async def authenticate(request: Request) -> Caller:
    """Resolve the caller behind the request's bearer token."""
    token = extract_bearer_token(request.headers.get("authorization"))

    state = get_app_state()
    if state.caller_resolver is None:
        msg = "CallerResolver not initialized"
        raise RuntimeError(msg)

    return await state.caller_resolver.resolve(token)
