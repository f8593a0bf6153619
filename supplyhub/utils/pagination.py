from __future__ import annotations

from typing import Callable


def order_clause(column, direction: str, tiebreaker):
    """Sort on ``column`` with ``tiebreaker`` keeping page boundaries stable."""

    if direction == "desc":
        return [column.desc(), tiebreaker.desc()]
    return [column.asc(), tiebreaker.asc()]


def pagination_payload(
    pagination, key: str, serialize: Callable[[object], dict] | None = None
) -> dict[str, object]:
    serialize = serialize or (lambda row: row.to_dict())
    return {
        key: [serialize(row) for row in pagination.items],
        "total_pages": pagination.pages,
        "current_page": pagination.page,
        "total_items": pagination.total,
    }
