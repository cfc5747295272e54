"""
core/models.py -- Envelope and pagination shared by every core operation.

Every public catalog and lifecycle method returns Envelope(data, meta_data).
The HTTP layer and the CLI serialize it with to_dict() as
{"data": ..., "metaData": ...}.
"""

import math
from dataclasses import dataclass, field
from typing import Any

# ---------------------------------------------------------------------------
# Pagination defaults
# ---------------------------------------------------------------------------

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100


@dataclass
class Envelope:
    """Result of every public core operation.

    data      -- the primary payload (record, list of records, or summary dict).
    meta_data -- pagination counters OR human-readable operation messages.
    """

    data: Any
    meta_data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"data": _dump(self.data), "metaData": _dump(self.meta_data)}


def _dump(value: Any) -> Any:
    """Recursively convert domain dataclasses (anything with to_dict) to plain JSON types."""
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, dict):
        return {k: _dump(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_dump(v) for v in value]
    return value


@dataclass
class PageRequest:
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT

    def __post_init__(self) -> None:
        self.page = max(int(self.page), 1)
        self.limit = min(max(int(self.limit), 1), MAX_LIMIT)

    @property
    def offset(self) -> int:
        return self.limit * (self.page - 1)


def page_meta(total_key: str, total: int, page: PageRequest) -> dict[str, int]:
    """Build the pagination block, e.g. {"totalRoles": 5, "limit": 2, "totalPages": 3, "currentPage": 1}."""
    return {
        total_key: total,
        "limit": page.limit,
        "totalPages": math.ceil(total / page.limit),
        "currentPage": page.page,
    }
