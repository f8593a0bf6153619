from datetime import date

from flask import Blueprint, current_app, jsonify, request
from flask_login import login_required

from supplyhub.errors import InvalidState, NotFound
from supplyhub.extensions import db
from supplyhub.models import Item, ItemStatus, SupplyRequestItem
from supplyhub.security import require_admin
from supplyhub.services import storage
from supplyhub.utils.csv_export import export_rows_to_csv
from supplyhub.utils.pagination import order_clause, pagination_payload
from supplyhub.validation import (
    clean_text,
    parse_int,
    parse_page,
    parse_sort,
    raise_for_errors,
    request_payload,
)

bp = Blueprint("items", __name__)

ITEMS_PER_PAGE = 12

SORT_FIELDS = {
    "name": Item.name,
    "quantity": Item.quantity,
    "reorder_point": Item.reorder_point,
    "status": Item.status,
    "created_at": Item.created_at,
    "updated_at": Item.updated_at,
}

# Items already referenced by requests keep their identity and stock history.
LOCKED_FIELDS = ("name", "quantity", "unit")

EXPORT_COLUMNS = (
    ("id", "Item ID"),
    ("name", "Item Name"),
    ("quantity", "Available Quantity"),
    ("unit", "Unit"),
    ("reorder_point", "Reorder Point"),
    (lambda item: ItemStatus.LABELS.get(item.status, item.status), "Status"),
    ("location", "Location"),
)


def _get_item(item_id: int) -> Item:
    item = db.session.get(Item, item_id)
    if item is None:
        raise NotFound("Item not found")
    return item


def _item_ids_with_requests(item_ids) -> set[int]:
    if not item_ids:
        return set()
    rows = (
        db.session.query(SupplyRequestItem.item_id)
        .filter(SupplyRequestItem.item_id.in_(item_ids))
        .distinct()
        .all()
    )
    return {item_id for (item_id,) in rows}


def _has_requests(item: Item) -> bool:
    return bool(_item_ids_with_requests([item.id]))


def _filtered_query():
    query = Item.query
    archived = (request.args.get("item_state") or "").lower() == "archived"
    query = query.filter(Item.is_archived.is_(archived))

    search = (request.args.get("search") or "").strip()
    if search:
        query = query.filter(Item.name.ilike(f"%{search}%"))

    status = (request.args.get("status") or "").strip().upper()
    if status in ItemStatus.ALL_STATUSES:
        query = query.filter(Item.status == status)

    field_name, direction = parse_sort(
        request.args.get("sort"), allowed=SORT_FIELDS, default=("name", "asc")
    )
    return query.order_by(*order_clause(SORT_FIELDS[field_name], direction, Item.id))


def _parse_item_fields(payload, *, fields) -> dict:
    errors = []
    values = {}

    if "name" in fields:
        values["name"] = clean_text(payload.get("name"))
        if not values["name"]:
            errors.append("Name is required.")
    if "unit" in fields:
        values["unit"] = clean_text(payload.get("unit"))
        if not values["unit"]:
            errors.append("Unit is required.")
    if "quantity" in fields:
        values["quantity"], error = parse_int(payload.get("quantity"), field_label="Quantity")
        if error:
            errors.append(error)
    if "reorder_point" in fields:
        values["reorder_point"], error = parse_int(
            payload.get("reorder_point"), field_label="Reorder point"
        )
        if error:
            errors.append(error)
    if "location" in fields:
        values["location"] = clean_text(payload.get("location"))

    raise_for_errors(errors)
    return values


@bp.route("", methods=["GET"])
@login_required
def list_items():
    page = parse_page(request.args.get("page"))
    pagination = _filtered_query().paginate(
        page=page, per_page=ITEMS_PER_PAGE, error_out=False
    )
    requested_ids = _item_ids_with_requests([item.id for item in pagination.items])
    return jsonify(
        pagination_payload(
            pagination,
            "items",
            lambda item: item.to_dict(has_requests=item.id in requested_ids),
        )
    )


@bp.route("/<int:item_id>", methods=["GET"])
@login_required
def get_item(item_id):
    item = _get_item(item_id)
    return jsonify(item.to_dict(has_requests=_has_requests(item)))


@bp.route("", methods=["POST"])
@require_admin
def create_item():
    payload = request_payload()
    values = _parse_item_fields(
        payload, fields=("name", "quantity", "unit", "reorder_point", "location")
    )

    change = storage.stage_image(None, payload.get("image") or None)
    item = Item(image=change.url, **values)
    db.session.add(item)
    storage.commit_image_change(change)
    current_app.logger.info("Item %s created (%s)", item.id, item.name)
    return jsonify(item.to_dict(has_requests=False)), 201


@bp.route("/<int:item_id>", methods=["PUT"])
@require_admin
def update_item(item_id):
    item = _get_item(item_id)
    payload = request_payload()
    has_requests = _has_requests(item)

    editable = ("reorder_point", "location")
    if not has_requests:
        editable = LOCKED_FIELDS + editable
    values = _parse_item_fields(
        payload, fields=tuple(field for field in editable if field in payload)
    )

    change = storage.stage_image(item.image, payload.get("image"))
    item.image = change.url
    for field, value in values.items():
        setattr(item, field, value)

    storage.commit_image_change(change)
    current_app.logger.info("Item %s updated", item.id)
    return jsonify(item.to_dict(has_requests=has_requests))


@bp.route("/<int:item_id>", methods=["DELETE"])
@require_admin
def delete_item(item_id):
    item = _get_item(item_id)
    if _has_requests(item):
        raise InvalidState("Cannot delete item with associated requests")

    change = storage.ImageChange(url=None, obsolete=item.image)
    db.session.delete(item)
    storage.commit_image_change(change)
    current_app.logger.info("Item %s deleted", item_id)
    return jsonify({"success": True})


@bp.route("/<int:item_id>/archive", methods=["PATCH"])
@require_admin
def toggle_archive(item_id):
    item = _get_item(item_id)
    item.is_archived = not item.is_archived
    db.session.commit()
    current_app.logger.info(
        "Item %s %s", item.id, "archived" if item.is_archived else "restored"
    )
    return jsonify(item.to_dict(has_requests=_has_requests(item)))


@bp.route("/export", methods=["GET"])
@login_required
def export_items():
    filename = f"inventory report-{date.today().isoformat()}.csv"
    return export_rows_to_csv(_filtered_query().all(), EXPORT_COLUMNS, filename)
