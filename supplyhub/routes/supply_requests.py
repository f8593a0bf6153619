from datetime import date

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from supplyhub.models import Division, RequestStatus, RoleName, Section
from supplyhub.security import current_actor, require_approved, require_roles
from supplyhub.services import request_views, workflow
from supplyhub.utils.csv_export import export_rows_to_csv
from supplyhub.validation import (
    clean_text,
    parse_bool,
    parse_date,
    parse_int,
    parse_page,
    parse_sort,
    raise_for_errors,
    request_payload,
)

bp = Blueprint("supply_requests", __name__)

REQUEST_EXPORT_COLUMNS = (
    ("id", "Transaction ID"),
    ("user_name", "User"),
    ("user_email", "Email"),
    ("division", "Division"),
    ("section", "Section"),
    ("status", "Status"),
    ("created_at", "Created At"),
    ("updated_at", "Updated At"),
    ("type_label", "Type"),
    ("approver_name", "Approver"),
    ("additional_notes", "Additional Notes"),
    ("items_text", "Items"),
    ("items_count", "Items Count"),
)

ITEM_EXPORT_COLUMNS = (
    ("request_id", "Transaction ID"),
    ("user_name", "User"),
    ("user_email", "Email"),
    ("division", "Division"),
    ("section", "Section"),
    ("status", "Status"),
    ("created_at", "Created At"),
    ("updated_at", "Updated At"),
    ("type_label", "Type"),
    ("item_name", "Item Name"),
    ("quantity", "Quantity"),
    ("unit", "Unit"),
    ("available_quantity", "Available Quantity"),
)

SUMMARY_EXPORT_COLUMNS = (
    ("item_name", "Item Name"),
    ("total_quantity", "Total Quantity"),
    ("unit", "Unit"),
    ("available_quantity", "Available Quantity"),
    ("item_status", "Status"),
    ("division", "Division"),
    ("section", "Section"),
    ("type_label", "Type"),
    ("last_transaction_at", "Last Transaction Date"),
    ("last_user_name", "Last Transaction User"),
    ("last_user_email", "Last Transaction Email"),
)


def _filters_from_args() -> request_views.RequestFilters:
    errors = []
    date_from, error = parse_date(request.args.get("date_from"), field_label="the start date")
    if error:
        errors.append(error)
    date_to, error = parse_date(request.args.get("date_to"), field_label="the end date")
    if error:
        errors.append(error)
    raise_for_errors(errors)

    def choice(name, allowed):
        value = (request.args.get(name) or "").strip().upper()
        return value if value in allowed else None

    supply_type = (request.args.get("supply_type") or "").strip().lower()
    owner_email = None
    if not current_user.has_any_role(RoleName.DECIDERS):
        owner_email = current_user.email

    return request_views.RequestFilters(
        search=clean_text(request.args.get("search")),
        status=choice("status", RequestStatus.ALL_STATUSES),
        division=choice("division", Division.ALL),
        section=choice("section", Section.ALL),
        supply_type=supply_type if supply_type in {"in", "out"} else None,
        date_from=date_from,
        date_to=date_to,
        owner_email=owner_email,
        utc_offset_hours=current_app.config.get("REPORT_UTC_OFFSET_HOURS", 8),
    )


def _view_mode() -> str:
    view = (request.args.get("view") or "request").strip().lower()
    return view if view in {"request", "item", "summary"} else "request"


def _request_sort(view: str):
    allowed = (
        request_views.ITEM_VIEW_SORT_FIELDS
        if view == "item"
        else request_views.REQUEST_SORT_FIELDS
    )
    return parse_sort(
        request.args.get("sort"), allowed=allowed, default=request_views.DEFAULT_REQUEST_SORT
    )


def _summary_sort():
    return parse_sort(
        request.args.get("sort"),
        allowed=request_views.SUMMARY_SORT_FIELDS,
        default=request_views.DEFAULT_SUMMARY_SORT,
    )


@bp.route("/requests", methods=["GET"])
@login_required
def list_requests():
    filters = _filters_from_args()
    page = parse_page(request.args.get("page"))
    view = _view_mode()
    if view == "item":
        result = request_views.list_request_items(
            filters, page=page, sort=_request_sort(view)
        )
    elif view == "summary":
        result = request_views.summarize_items(filters, page=page, sort=_summary_sort())
    else:
        result = request_views.list_requests(filters, page=page, sort=_request_sort(view))
    payload = result.to_dict("requests")
    payload["view"] = view
    return jsonify(payload)


@bp.route("/summary", methods=["GET"])
@login_required
def summary():
    filters = _filters_from_args()
    result = request_views.summarize_items(
        filters, page=parse_page(request.args.get("page")), sort=_summary_sort()
    )
    return jsonify(result.to_dict("items"))


def _parse_lines(raw_lines) -> list[workflow.RequestLine]:
    if not isinstance(raw_lines, list) or not raw_lines:
        raise_for_errors(["Select at least one item to request."])

    errors = []
    lines = []
    for index, entry in enumerate(raw_lines, start=1):
        if not isinstance(entry, dict):
            errors.append(f"Line {index} is not a valid item entry.")
            continue
        item_id, error = parse_int(entry.get("id"), field_label=f"Line {index} item", minimum=1)
        if error:
            errors.append(error)
        quantity, error = parse_int(
            entry.get("quantity"), field_label=f"Line {index} quantity", minimum=1
        )
        if error:
            errors.append(error)
        if item_id is not None and quantity is not None:
            lines.append(workflow.RequestLine(item_id=item_id, quantity=quantity))
    raise_for_errors(errors)
    return lines


@bp.route("/requests", methods=["POST"])
@require_approved
def create_request():
    payload = request_payload()
    lines = _parse_lines(payload.get("items"))
    supply_request = workflow.submit_request(
        current_user,
        lines,
        is_supply_in=parse_bool(payload.get("is_supply_in")),
        additional_notes=clean_text(payload.get("additional_notes")),
    )
    view = request_views.get_request_view(supply_request.id)
    return jsonify(view.to_dict()), 201


@bp.route("/requests/<int:request_id>", methods=["GET"])
@login_required
def get_request(request_id):
    view = request_views.get_request_view(request_id)
    if not current_user.has_any_role(RoleName.DECIDERS) and (
        view.user_email.lower() != current_user.email.lower()
    ):
        return jsonify({"error": "Request not found"}), 404
    return jsonify(view.to_dict())


@bp.route("/requests/<int:request_id>", methods=["PUT"])
@require_roles(RoleName.APPROVER, RoleName.ADMIN, approved=True)
def decide_request(request_id):
    payload = request_payload()
    result = workflow.decide(request_id, payload.get("action"), current_actor())
    return jsonify(result.to_dict())


@bp.route("/requests/<int:request_id>", methods=["PATCH"])
@require_approved
def receive_request(request_id):
    result = workflow.mark_received(request_id, current_actor())
    return jsonify(result.to_dict())


@bp.route("/requests/export", methods=["GET"])
@login_required
def export_requests():
    filters = _filters_from_args()
    view = _view_mode()
    filename = f"requests-{date.today().isoformat()}.csv"
    if view == "item":
        rows = request_views.iter_request_items(filters, sort=_request_sort(view))
        columns = ITEM_EXPORT_COLUMNS
    elif view == "summary":
        rows = request_views.iter_item_summaries(filters, sort=_summary_sort())
        columns = SUMMARY_EXPORT_COLUMNS
    else:
        rows = request_views.iter_requests(filters, sort=_request_sort(view))
        columns = REQUEST_EXPORT_COLUMNS
    return export_rows_to_csv(list(rows), columns, filename)
