from datetime import date

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user
from sqlalchemy import or_

from supplyhub.errors import NotFound, ValidationError
from supplyhub.extensions import db
from supplyhub.models import Memorandum, Section
from supplyhub.security import require_admin, require_approved
from supplyhub.utils.csv_export import export_rows_to_csv
from supplyhub.utils.pagination import order_clause, pagination_payload
from supplyhub.validation import (
    check_bounded_text,
    check_reference_text,
    check_url,
    parse_page,
    parse_sort,
    raise_for_errors,
    request_payload,
)

bp = Blueprint("memorandums", __name__)

MEMORANDUMS_PER_PAGE = 12

SORT_FIELDS = {
    "memo_number": Memorandum.memo_number,
    "subject": Memorandum.subject,
    "signatory": Memorandum.signatory,
    "issuing_office": Memorandum.issuing_office,
    "date": Memorandum.date,
    "created_at": Memorandum.created_at,
    "updated_at": Memorandum.updated_at,
}

SEARCH_COLUMNS = (
    Memorandum.memo_number,
    Memorandum.subject,
    Memorandum.signatory,
    Memorandum.issuing_office,
    Memorandum.section,
    Memorandum.encoder,
)

EXPORT_COLUMNS = (
    ("memo_number", "Memo Number"),
    ("signatory", "Signatory"),
    ("issuing_office", "Issuing Office"),
    ("subject", "Subject"),
    ("date", "Date"),
    ("keywords", "Keywords"),
    ("encoder", "Encoder"),
    ("division", "Division"),
    ("section", "Section"),
    ("pdf_url", "PDF URL"),
)

REFERENCE_FIELDS = (
    ("memo_number", "Memo number"),
    ("signatory", "Signatory"),
    ("issuing_office", "Issuing office"),
    ("subject", "Subject"),
)


def _get_memorandum(memorandum_id: int) -> Memorandum:
    memorandum = db.session.get(Memorandum, memorandum_id)
    if memorandum is None:
        raise NotFound("Memorandum not found")
    return memorandum


def _filtered_query():
    archived = (request.args.get("memorandum_state") or "").lower() == "archived"
    query = Memorandum.query.filter(Memorandum.is_archived.is_(archived))

    search = (request.args.get("search") or "").strip()
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(*(column.ilike(pattern) for column in SEARCH_COLUMNS)))

    section = (request.args.get("section") or "").strip().upper()
    if section in Section.ALL:
        query = query.filter(Memorandum.section == section)

    field_name, direction = parse_sort(
        request.args.get("sort"), allowed=SORT_FIELDS, default=("created_at", "desc")
    )
    return query.order_by(*order_clause(SORT_FIELDS[field_name], direction, Memorandum.id))


def _parse_memorandum(payload) -> dict:
    errors = []
    values = {}
    for field, label in REFERENCE_FIELDS:
        values[field], error = check_reference_text(payload.get(field), field_label=label)
        if error:
            errors.append(error)
    values["date"], error = check_reference_text(
        payload.get("date"), field_label="Date", allow_colon=True
    )
    if error:
        errors.append(error)
    values["keywords"], error = check_bounded_text(payload.get("keywords"), field_label="Keywords")
    if error:
        errors.append(error)
    values["pdf_url"], error = check_url(payload.get("pdf_url"), field_label="PDF URL")
    if error:
        errors.append(error)
    raise_for_errors(errors)
    return values


def _encoder_fields() -> dict:
    if not current_user.has_complete_profile:
        raise ValidationError("Incomplete user profile")
    return {
        "encoder": current_user.name,
        "division": current_user.division,
        "section": current_user.section,
    }


@bp.route("", methods=["GET"])
@require_approved
def list_memorandums():
    pagination = _filtered_query().paginate(
        page=parse_page(request.args.get("page")),
        per_page=MEMORANDUMS_PER_PAGE,
        error_out=False,
    )
    return jsonify(pagination_payload(pagination, "memorandums"))


@bp.route("/<int:memorandum_id>", methods=["GET"])
@require_approved
def get_memorandum(memorandum_id):
    return jsonify(_get_memorandum(memorandum_id).to_dict())


@bp.route("", methods=["POST"])
@require_admin
def create_memorandum():
    values = _parse_memorandum(request_payload())
    memorandum = Memorandum(**values, **_encoder_fields())
    db.session.add(memorandum)
    db.session.commit()
    current_app.logger.info("Memorandum %s recorded", memorandum.memo_number)
    return jsonify(memorandum.to_dict()), 201


@bp.route("/<int:memorandum_id>", methods=["PUT"])
@require_admin
def update_memorandum(memorandum_id):
    memorandum = _get_memorandum(memorandum_id)
    values = _parse_memorandum(request_payload())
    values.update(_encoder_fields())
    for field, value in values.items():
        setattr(memorandum, field, value)
    db.session.commit()
    current_app.logger.info("Memorandum %s updated", memorandum.id)
    return jsonify(memorandum.to_dict())


@bp.route("/<int:memorandum_id>", methods=["DELETE"])
@require_admin
def delete_memorandum(memorandum_id):
    memorandum = _get_memorandum(memorandum_id)
    db.session.delete(memorandum)
    db.session.commit()
    current_app.logger.info("Memorandum %s deleted", memorandum_id)
    return jsonify({"success": True})


@bp.route("/<int:memorandum_id>/archive", methods=["PATCH"])
@require_admin
def toggle_archive(memorandum_id):
    memorandum = _get_memorandum(memorandum_id)
    memorandum.is_archived = not memorandum.is_archived
    db.session.commit()
    return jsonify(memorandum.to_dict())


@bp.route("/export", methods=["GET"])
@require_approved
def export_memorandums():
    filename = f"memorandums-{date.today().isoformat()}.csv"
    return export_rows_to_csv(_filtered_query().all(), EXPORT_COLUMNS, filename)
