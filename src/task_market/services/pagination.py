"""Paging parameters and list envelopes."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class PageParams:
    """Validated paging and sort parameters for a list operation."""

    page: int
    limit: int
    sort_by: str = "created_at"
    sort_order: str = "desc"

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def page_envelope(key: str, items: list[dict[str, Any]], total: int, params: PageParams) -> dict[str, Any]:
    """Wrap one page of items with its pagination block."""
    return {
        key: items,
        "pagination": {
            "page": params.page,
            "limit": params.limit,
            "total": total,
            "pages": math.ceil(total / params.limit) if total > 0 else 0,
        },
    }
