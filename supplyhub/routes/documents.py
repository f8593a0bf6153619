from datetime import date

from flask import Blueprint, current_app, jsonify, request
from flask_login import login_required

from supplyhub.errors import NotFound, ValidationError
from supplyhub.extensions import db
from supplyhub.models import Document
from supplyhub.security import require_approved
from supplyhub.services import storage
from supplyhub.utils.csv_export import export_rows_to_csv
from supplyhub.utils.pagination import order_clause, pagination_payload
from supplyhub.validation import (
    clean_text,
    parse_id_list,
    parse_int,
    parse_page,
    parse_sort,
    raise_for_errors,
    request_payload,
)

bp = Blueprint("documents", __name__)

DOCUMENTS_PER_PAGE = 12

SORT_FIELDS = {
    "name": Document.name,
    "quantity": Document.quantity,
    "reorder_point": Document.reorder_point,
    "created_at": Document.created_at,
    "updated_at": Document.updated_at,
}

EXPORT_COLUMNS = (
    ("id", "Document ID"),
    ("name", "Document Name"),
    ("quantity", "Quantity"),
    ("reorder_point", "Reorder Point"),
    ("is_archived", "Archived"),
)


def _get_document(document_id: int) -> Document:
    document = db.session.get(Document, document_id)
    if document is None:
        raise NotFound("Document not found")
    return document


def _filtered_query():
    archived = (request.args.get("document_state") or "").lower() == "archived"
    query = Document.query.filter(Document.is_archived.is_(archived))

    search = (request.args.get("search") or "").strip()
    if search:
        query = query.filter(Document.name.ilike(f"%{search}%"))

    field_name, direction = parse_sort(
        request.args.get("sort"), allowed=SORT_FIELDS, default=("created_at", "desc")
    )
    return query.order_by(*order_clause(SORT_FIELDS[field_name], direction, Document.id))


def _parse_document(payload) -> dict:
    errors = []
    name = clean_text(payload.get("name"))
    if not name:
        errors.append("Name is required.")
    quantity, error = parse_int(payload.get("quantity"), field_label="Quantity")
    if error:
        errors.append(error)
    reorder_point, error = parse_int(payload.get("reorder_point"), field_label="Reorder point")
    if error:
        errors.append(error)
    raise_for_errors(errors)
    return {"name": name, "quantity": quantity, "reorder_point": reorder_point}


@bp.route("", methods=["GET"])
@login_required
def list_documents():
    pagination = _filtered_query().paginate(
        page=parse_page(request.args.get("page")),
        per_page=DOCUMENTS_PER_PAGE,
        error_out=False,
    )
    return jsonify(pagination_payload(pagination, "documents"))


@bp.route("/batch", methods=["GET"])
@login_required
def batch_documents():
    ids = parse_id_list(request.args.get("ids"))
    if not ids:
        raise ValidationError("No document IDs provided")
    documents = Document.query.filter(Document.id.in_(ids)).order_by(Document.id).all()
    return jsonify({"documents": [document.to_dict() for document in documents]})


@bp.route("/<int:document_id>", methods=["GET"])
@login_required
def get_document(document_id):
    return jsonify(_get_document(document_id).to_dict())


@bp.route("", methods=["POST"])
@require_approved
def create_document():
    payload = request_payload()
    values = _parse_document(payload)
    change = storage.stage_image(None, payload.get("image") or None)
    document = Document(image=change.url, **values)
    db.session.add(document)
    storage.commit_image_change(change)
    current_app.logger.info("Document %s created (%s)", document.id, document.name)
    return jsonify(document.to_dict()), 201


@bp.route("/<int:document_id>", methods=["PUT"])
@require_approved
def update_document(document_id):
    document = _get_document(document_id)
    payload = request_payload()
    values = _parse_document(payload)
    change = storage.stage_image(document.image, payload.get("image"))
    document.image = change.url
    for field, value in values.items():
        setattr(document, field, value)
    storage.commit_image_change(change)
    current_app.logger.info("Document %s updated", document.id)
    return jsonify(document.to_dict())


@bp.route("/<int:document_id>", methods=["DELETE"])
@require_approved
def delete_document(document_id):
    document = _get_document(document_id)
    change = storage.ImageChange(url=None, obsolete=document.image)
    db.session.delete(document)
    storage.commit_image_change(change)
    current_app.logger.info("Document %s deleted", document_id)
    return jsonify({"success": True})


@bp.route("/<int:document_id>/archive", methods=["PATCH"])
@require_approved
def toggle_archive(document_id):
    document = _get_document(document_id)
    document.is_archived = not document.is_archived
    db.session.commit()
    return jsonify(document.to_dict())


@bp.route("/export", methods=["GET"])
@login_required
def export_documents():
    filename = f"documents-{date.today().isoformat()}.csv"
    return export_rows_to_csv(_filtered_query().all(), EXPORT_COLUMNS, filename)
