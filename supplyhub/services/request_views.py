"""Read models for listing and exporting supply requests.

Three projections share one filter set:

* ``RequestView`` - one row per request with its lines nested.
* ``RequestItemView`` - one row per request line.
* ``ItemSummaryView`` - one row per item with quantities summed over the
  matching lines and the most recent matching transaction.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Iterator

from sqlalchemy import func, or_

from supplyhub.errors import NotFound
from supplyhub.extensions import db
from supplyhub.models import Item, SupplyRequest, SupplyRequestItem
from supplyhub.utils.pagination import order_clause

REQUEST_PAGE_SIZE = 10

REQUEST_SORT_FIELDS = {
    "created_at": SupplyRequest.created_at,
    "updated_at": SupplyRequest.updated_at,
    "user_name": SupplyRequest.user_name,
    "user_email": SupplyRequest.user_email,
    "division": SupplyRequest.division,
    "section": SupplyRequest.section,
    "status": SupplyRequest.status,
}
ITEM_VIEW_SORT_FIELDS = {
    **REQUEST_SORT_FIELDS,
    "item_name": Item.name,
    "quantity": SupplyRequestItem.quantity,
}
SUMMARY_SORT_FIELDS = ("name", "total_quantity", "quantity", "status", "last_transaction_at")

DEFAULT_REQUEST_SORT = ("created_at", "desc")
DEFAULT_SUMMARY_SORT = ("name", "asc")


def _type_label(is_supply_in: bool) -> str:
    return "Supply In" if is_supply_in else "Supply Out"


@dataclass(frozen=True)
class RequestFilters:
    search: str | None = None
    status: str | None = None
    division: str | None = None
    section: str | None = None
    supply_type: str | None = None
    date_from: date | None = None
    date_to: date | None = None
    # Set for plain users: restricts rows to their own requests and limits
    # the search to item names.
    owner_email: str | None = None
    utc_offset_hours: int = 8


@dataclass(frozen=True)
class RequestLineView:
    item_id: int
    name: str
    quantity: int
    unit: str


@dataclass(frozen=True)
class RequestView:
    id: int
    user_name: str
    user_email: str
    division: str
    section: str
    status: str
    is_supply_in: bool
    is_received: bool
    approver_name: str | None
    additional_notes: str | None
    created_at: datetime
    updated_at: datetime
    items: tuple[RequestLineView, ...] = field(default_factory=tuple)
    kind: str = "request"

    @property
    def type_label(self) -> str:
        return _type_label(self.is_supply_in)

    @property
    def items_text(self) -> str:
        return "; ".join(f"{line.name} ({line.quantity} {line.unit})" for line in self.items)

    @property
    def items_count(self) -> int:
        return len(self.items)

    def to_dict(self) -> dict[str, object]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        data["updated_at"] = self.updated_at.isoformat()
        data["supply_type"] = "in" if self.is_supply_in else "out"
        return data


@dataclass(frozen=True)
class RequestItemView:
    request_id: int
    line_id: int
    user_name: str
    user_email: str
    division: str
    section: str
    status: str
    is_supply_in: bool
    is_received: bool
    approver_name: str | None
    created_at: datetime
    updated_at: datetime
    item_id: int
    item_name: str
    quantity: int
    unit: str
    available_quantity: int
    kind: str = "item"

    @property
    def type_label(self) -> str:
        return _type_label(self.is_supply_in)

    def to_dict(self) -> dict[str, object]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        data["updated_at"] = self.updated_at.isoformat()
        data["supply_type"] = "in" if self.is_supply_in else "out"
        return data


@dataclass(frozen=True)
class ItemSummaryView:
    item_id: int
    item_name: str
    total_quantity: int
    unit: str
    available_quantity: int
    item_status: str
    division: str | None
    section: str | None
    is_supply_in: bool | None
    last_transaction_at: datetime | None
    last_user_name: str | None
    last_user_email: str | None
    kind: str = "summary"

    @property
    def type_label(self) -> str:
        if self.is_supply_in is None:
            return ""
        return _type_label(self.is_supply_in)

    def to_dict(self) -> dict[str, object]:
        data = asdict(self)
        data["last_transaction_at"] = (
            self.last_transaction_at.isoformat() if self.last_transaction_at else None
        )
        return data


@dataclass(frozen=True)
class Page:
    rows: list
    total: int
    page: int
    per_page: int

    @property
    def pages(self) -> int:
        if self.total == 0:
            return 0
        return (self.total + self.per_page - 1) // self.per_page

    def to_dict(self, key: str) -> dict[str, object]:
        return {
            key: [row.to_dict() for row in self.rows],
            "total_pages": self.pages,
            "current_page": self.page,
            "total_items": self.total,
        }


def day_bounds_utc(filters: RequestFilters) -> tuple[datetime | None, datetime | None]:
    """Convert office-local calendar days into naive UTC datetimes.

    The upper bound is exclusive: it is the start of the day after
    ``date_to``.
    """

    offset = timedelta(hours=filters.utc_offset_hours)
    start = end = None
    if filters.date_from:
        start = datetime.combine(filters.date_from, time.min) - offset
    if filters.date_to:
        end = datetime.combine(filters.date_to + timedelta(days=1), time.min) - offset
    return start, end


def _request_conditions(filters: RequestFilters) -> list:
    conditions = []
    if filters.owner_email:
        conditions.append(func.lower(SupplyRequest.user_email) == filters.owner_email.lower())
    if filters.status:
        conditions.append(SupplyRequest.status == filters.status)
    if filters.division:
        conditions.append(SupplyRequest.division == filters.division)
    if filters.section:
        conditions.append(SupplyRequest.section == filters.section)
    if filters.supply_type == "in":
        conditions.append(SupplyRequest.is_supply_in.is_(True))
    elif filters.supply_type == "out":
        conditions.append(SupplyRequest.is_supply_in.is_(False))
    start, end = day_bounds_utc(filters)
    if start is not None:
        conditions.append(SupplyRequest.created_at >= start)
    if end is not None:
        conditions.append(SupplyRequest.created_at < end)
    return conditions


def _search_pattern(filters: RequestFilters) -> str | None:
    if not filters.search:
        return None
    return f"%{filters.search.strip()}%"


def _request_search_condition(filters: RequestFilters):
    pattern = _search_pattern(filters)
    if pattern is None:
        return None
    item_match = SupplyRequest.items.any(
        SupplyRequestItem.item.has(Item.name.ilike(pattern))
    )
    if filters.owner_email:
        return item_match
    return or_(
        SupplyRequest.user_name.ilike(pattern),
        SupplyRequest.user_email.ilike(pattern),
        item_match,
    )


def _line_search_condition(filters: RequestFilters):
    pattern = _search_pattern(filters)
    if pattern is None:
        return None
    if filters.owner_email:
        return Item.name.ilike(pattern)
    return or_(
        SupplyRequest.user_name.ilike(pattern),
        SupplyRequest.user_email.ilike(pattern),
        Item.name.ilike(pattern),
    )


def _request_query(filters: RequestFilters, sort: tuple[str, str]):
    query = SupplyRequest.query.filter(*_request_conditions(filters))
    search = _request_search_condition(filters)
    if search is not None:
        query = query.filter(search)
    field_name, direction = sort
    column = REQUEST_SORT_FIELDS.get(field_name, SupplyRequest.created_at)
    return query.order_by(*order_clause(column, direction, SupplyRequest.id))


def _to_request_view(supply_request: SupplyRequest) -> RequestView:
    return RequestView(
        id=supply_request.id,
        user_name=supply_request.user_name,
        user_email=supply_request.user_email,
        division=supply_request.division,
        section=supply_request.section,
        status=supply_request.status,
        is_supply_in=supply_request.is_supply_in,
        is_received=supply_request.is_received,
        approver_name=supply_request.approver_name,
        additional_notes=supply_request.additional_notes,
        created_at=supply_request.created_at,
        updated_at=supply_request.updated_at,
        items=tuple(
            RequestLineView(
                item_id=line.item_id,
                name=line.item.name,
                quantity=line.quantity,
                unit=line.item.unit,
            )
            for line in supply_request.items
        ),
    )


def get_request_view(request_id: int) -> RequestView:
    supply_request = db.session.get(SupplyRequest, request_id)
    if supply_request is None:
        raise NotFound("Request not found")
    return _to_request_view(supply_request)


def list_requests(
    filters: RequestFilters,
    *,
    page: int = 1,
    per_page: int = REQUEST_PAGE_SIZE,
    sort: tuple[str, str] = DEFAULT_REQUEST_SORT,
) -> Page:
    pagination = _request_query(filters, sort).paginate(
        page=page, per_page=per_page, error_out=False
    )
    return Page(
        rows=[_to_request_view(row) for row in pagination.items],
        total=pagination.total or 0,
        page=page,
        per_page=per_page,
    )


def iter_requests(
    filters: RequestFilters, *, sort: tuple[str, str] = DEFAULT_REQUEST_SORT
) -> Iterator[RequestView]:
    for supply_request in _request_query(filters, sort).all():
        yield _to_request_view(supply_request)


def _line_query(filters: RequestFilters, sort: tuple[str, str]):
    query = (
        db.session.query(SupplyRequestItem, SupplyRequest, Item)
        .join(SupplyRequest, SupplyRequest.id == SupplyRequestItem.request_id)
        .join(Item, Item.id == SupplyRequestItem.item_id)
        .filter(*_request_conditions(filters))
    )
    search = _line_search_condition(filters)
    if search is not None:
        query = query.filter(search)
    field_name, direction = sort
    column = ITEM_VIEW_SORT_FIELDS.get(field_name, SupplyRequest.created_at)
    return query.order_by(*order_clause(column, direction, SupplyRequestItem.id))


def _to_item_view(line: SupplyRequestItem, supply_request: SupplyRequest, item: Item):
    return RequestItemView(
        request_id=supply_request.id,
        line_id=line.id,
        user_name=supply_request.user_name,
        user_email=supply_request.user_email,
        division=supply_request.division,
        section=supply_request.section,
        status=supply_request.status,
        is_supply_in=supply_request.is_supply_in,
        is_received=supply_request.is_received,
        approver_name=supply_request.approver_name,
        created_at=supply_request.created_at,
        updated_at=supply_request.updated_at,
        item_id=item.id,
        item_name=item.name,
        quantity=line.quantity,
        unit=item.unit,
        available_quantity=item.quantity,
    )


def list_request_items(
    filters: RequestFilters,
    *,
    page: int = 1,
    per_page: int = REQUEST_PAGE_SIZE,
    sort: tuple[str, str] = DEFAULT_REQUEST_SORT,
) -> Page:
    pagination = _line_query(filters, sort).paginate(
        page=page, per_page=per_page, error_out=False
    )
    return Page(
        rows=[_to_item_view(*row) for row in pagination.items],
        total=pagination.total or 0,
        page=page,
        per_page=per_page,
    )


def iter_request_items(
    filters: RequestFilters, *, sort: tuple[str, str] = DEFAULT_REQUEST_SORT
) -> Iterator[RequestItemView]:
    for row in _line_query(filters, sort).all():
        yield _to_item_view(*row)


def _summary_query(filters: RequestFilters, sort: tuple[str, str]):
    total_quantity = func.sum(SupplyRequestItem.quantity).label("total_quantity")
    last_transaction_at = func.max(SupplyRequest.created_at).label("last_transaction_at")
    query = (
        db.session.query(
            Item.id,
            Item.name,
            Item.unit,
            Item.quantity,
            Item.status,
            total_quantity,
            last_transaction_at,
        )
        .join(SupplyRequestItem, SupplyRequestItem.item_id == Item.id)
        .join(SupplyRequest, SupplyRequest.id == SupplyRequestItem.request_id)
        .filter(*_request_conditions(filters))
    )
    search = _line_search_condition(filters)
    if search is not None:
        query = query.filter(search)
    query = query.group_by(Item.id, Item.name, Item.unit, Item.quantity, Item.status)

    field_name, direction = sort
    columns = {
        "name": Item.name,
        "total_quantity": total_quantity,
        "quantity": Item.quantity,
        "status": Item.status,
        "last_transaction_at": last_transaction_at,
    }
    column = columns.get(field_name, Item.name)
    return query.order_by(*order_clause(column, direction, Item.id))


def _last_matching_line(filters: RequestFilters, item_id: int):
    query = (
        db.session.query(SupplyRequest)
        .join(SupplyRequestItem, SupplyRequestItem.request_id == SupplyRequest.id)
        .join(Item, Item.id == SupplyRequestItem.item_id)
        .filter(SupplyRequestItem.item_id == item_id)
        .filter(*_request_conditions(filters))
    )
    search = _line_search_condition(filters)
    if search is not None:
        query = query.filter(search)
    return query.order_by(SupplyRequest.created_at.desc(), SupplyRequest.id.desc()).first()


def _to_summary_view(filters: RequestFilters, row) -> ItemSummaryView:
    item_id, name, unit, quantity, status, total, last_at = row
    latest = _last_matching_line(filters, item_id)
    return ItemSummaryView(
        item_id=item_id,
        item_name=name,
        total_quantity=int(total or 0),
        unit=unit,
        available_quantity=quantity,
        item_status=status,
        division=latest.division if latest else None,
        section=latest.section if latest else None,
        is_supply_in=latest.is_supply_in if latest else None,
        last_transaction_at=last_at,
        last_user_name=latest.user_name if latest else None,
        last_user_email=latest.user_email if latest else None,
    )


def summarize_items(
    filters: RequestFilters,
    *,
    page: int = 1,
    per_page: int = REQUEST_PAGE_SIZE,
    sort: tuple[str, str] = DEFAULT_SUMMARY_SORT,
) -> Page:
    pagination = _summary_query(filters, sort).paginate(
        page=page, per_page=per_page, error_out=False
    )
    return Page(
        rows=[_to_summary_view(filters, row) for row in pagination.items],
        total=pagination.total or 0,
        page=page,
        per_page=per_page,
    )


def iter_item_summaries(
    filters: RequestFilters, *, sort: tuple[str, str] = DEFAULT_SUMMARY_SORT
) -> Iterator[ItemSummaryView]:
    for row in _summary_query(filters, sort).all():
        yield _to_summary_view(filters, row)
