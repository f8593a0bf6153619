"""Supply request lifecycle: submit, approve or reject, and confirm receipt.

A request moves PENDING -> APPROVED or PENDING -> REJECTED exactly once.
Approval adjusts item stock in the same database transaction that flips the
request status, and the flip itself is a conditional update on the PENDING
status so two approvers racing on one request cannot both win.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import update

from supplyhub.errors import (
    InsufficientStock,
    InvalidState,
    NotFound,
    PermissionDenied,
    SupplyHubError,
    ValidationError,
)
from supplyhub.extensions import db
from supplyhub.models import (
    Item,
    RequestStatus,
    RoleName,
    SupplyRequest,
    SupplyRequestItem,
)
from supplyhub.security import Actor
from supplyhub.validation import MAX_INTEGER

logger = logging.getLogger("supplyhub.workflow")

APPROVE = "APPROVE"
REJECT = "REJECT"
ACTIONS = (APPROVE, REJECT)

STALE_DECISION_MESSAGE = (
    "This request has already been approved by another approver. "
    "Please refresh the page to view the updated status"
)


@dataclass(frozen=True)
class RequestLine:
    item_id: int
    quantity: int


@dataclass(frozen=True)
class DecisionResult:
    id: int
    status: str
    approver: str

    def to_dict(self) -> dict[str, object]:
        return {"id": self.id, "status": self.status, "approver": self.approver}


@dataclass(frozen=True)
class ReceiptResult:
    id: int
    is_received: bool

    def to_dict(self) -> dict[str, object]:
        return {"id": self.id, "is_received": self.is_received}


def _get_request(request_id: int) -> SupplyRequest:
    supply_request = db.session.get(SupplyRequest, request_id)
    if supply_request is None:
        raise NotFound("Request not found")
    return supply_request


def submit_request(
    requester,
    lines: list[RequestLine],
    *,
    is_supply_in: bool,
    additional_notes: str | None = None,
) -> SupplyRequest:
    """Create a PENDING request for ``requester`` with the given item lines."""

    if not requester.has_complete_profile:
        raise ValidationError("Incomplete user profile")
    if not lines:
        raise ValidationError("Select at least one item to request.")

    errors = [
        f"Quantity for item {line.item_id} must be between 1 and {MAX_INTEGER}."
        for line in lines
        if not 1 <= line.quantity <= MAX_INTEGER
    ]
    if errors:
        raise ValidationError("Invalid request lines", errors)

    item_ids = {line.item_id for line in lines}
    found = {
        item_id
        for (item_id,) in db.session.query(Item.id).filter(Item.id.in_(item_ids)).all()
    }
    missing = sorted(item_ids - found)
    if missing:
        raise NotFound(
            "Item not found: " + ", ".join(str(item_id) for item_id in missing)
        )

    supply_request = SupplyRequest(
        user_id=requester.id,
        user_name=requester.name,
        user_email=requester.email,
        division=requester.division,
        section=requester.section,
        is_supply_in=is_supply_in,
        status=RequestStatus.PENDING,
        additional_notes=additional_notes,
        items=[
            SupplyRequestItem(item_id=line.item_id, quantity=line.quantity)
            for line in lines
        ],
    )
    db.session.add(supply_request)
    db.session.commit()
    logger.info(
        "Request %s submitted by %s (%s, %d line(s))",
        supply_request.id,
        requester.email,
        supply_request.supply_type,
        len(lines),
    )
    return supply_request


def _claim_pending(request_id: int, status: str, actor: Actor) -> None:
    result = db.session.execute(
        update(SupplyRequest)
        .where(
            SupplyRequest.id == request_id,
            SupplyRequest.status == RequestStatus.PENDING,
        )
        .values(status=status, approver_id=actor.id, approver_name=actor.name)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidState(STALE_DECISION_MESSAGE)


def _apply_stock_changes(supply_request: SupplyRequest) -> None:
    requested: dict[int, int] = {}
    for line in supply_request.items:
        requested[line.item_id] = requested.get(line.item_id, 0) + line.quantity

    items = (
        Item.query.filter(Item.id.in_(requested))
        .order_by(Item.id)
        .with_for_update()
        .populate_existing()
        .all()
    )
    items_by_id = {item.id: item for item in items}

    direction = 1 if supply_request.is_supply_in else -1
    new_quantities: dict[int, int] = {}
    shortages: list[dict[str, object]] = []
    overflows: list[str] = []
    for item_id, quantity in requested.items():
        item = items_by_id.get(item_id)
        if item is None:
            raise NotFound(f"Item {item_id} no longer exists")
        new_quantity = item.quantity + direction * quantity
        if new_quantity < 0:
            shortages.append(
                {
                    "item_id": item.id,
                    "name": item.name,
                    "requested": quantity,
                    "available": item.quantity,
                }
            )
        elif new_quantity > MAX_INTEGER:
            overflows.append(
                f"{item.name} would exceed the maximum stock of {MAX_INTEGER}."
            )
        new_quantities[item_id] = new_quantity

    if shortages:
        raise InsufficientStock(shortages)
    if overflows:
        raise ValidationError("Stock quantity out of range", overflows)

    for item_id, new_quantity in new_quantities.items():
        # Assigning quantity rewrites the derived status as well.
        items_by_id[item_id].quantity = new_quantity


def decide(request_id: int, action: str, actor: Actor) -> DecisionResult:
    """Approve or reject a PENDING request on behalf of ``actor``."""

    action = action.strip().upper() if isinstance(action, str) else ""
    if action not in ACTIONS:
        raise ValidationError("Invalid action")
    if not actor.has_any_role(RoleName.DECIDERS):
        raise PermissionDenied("Only approvers can approve or reject requests")

    supply_request = _get_request(request_id)
    if supply_request.status != RequestStatus.PENDING:
        raise InvalidState(STALE_DECISION_MESSAGE)

    new_status = RequestStatus.APPROVED if action == APPROVE else RequestStatus.REJECTED
    try:
        if action == APPROVE:
            _apply_stock_changes(supply_request)
        _claim_pending(supply_request.id, new_status, actor)
        db.session.commit()
    except SupplyHubError:
        db.session.rollback()
        raise
    except Exception:
        db.session.rollback()
        logger.exception("Failed to record decision on request %s", request_id)
        raise

    logger.info("Request %s %s by %s", request_id, new_status.lower(), actor.email)
    return DecisionResult(id=request_id, status=new_status, approver=actor.name)


def _may_confirm_receipt(supply_request: SupplyRequest, actor: Actor) -> bool:
    if supply_request.is_supply_in:
        if supply_request.approver_id is not None:
            return supply_request.approver_id == actor.id
        return supply_request.approver_name == actor.name
    return (supply_request.user_email or "").lower() == (actor.email or "").lower()


def mark_received(request_id: int, actor: Actor) -> ReceiptResult:
    """Confirm an approved request has been physically handed over.

    Supply-out requests are confirmed by their requester, supply-in requests
    by the approver who accepted the stock. Confirming twice is a no-op.
    """

    supply_request = _get_request(request_id)
    if supply_request.status != RequestStatus.APPROVED:
        raise InvalidState("Only approved requests can be marked as received")

    if not _may_confirm_receipt(supply_request, actor):
        if supply_request.is_supply_in:
            raise PermissionDenied(
                "Only the approver of this request can mark it as received"
            )
        raise PermissionDenied(
            "Only the person who made the request can mark it as received"
        )

    if not supply_request.is_received:
        supply_request.is_received = True
        db.session.commit()
        logger.info("Request %s marked received by %s", request_id, actor.email)

    return ReceiptResult(id=supply_request.id, is_received=True)
