"""Reference lists feeding the memorandum, document and item forms."""

from __future__ import annotations

from dataclasses import dataclass

from flask import Blueprint, current_app, jsonify
from flask_login import login_required
from sqlalchemy.exc import IntegrityError

from supplyhub.errors import ValidationError
from supplyhub.extensions import db
from supplyhub.models import (
    Addressee,
    DocumentType,
    IssuingOffice,
    Keyword,
    Location,
    SenderUnit,
    Signatory,
    Unit,
)
from supplyhub.security import require_admin, require_approved
from supplyhub.validation import check_reference_text, raise_for_errors, request_payload

bp = Blueprint("lookups", __name__)

ANYONE = "authenticated"
APPROVED = "approved"
ADMIN = "admin"

_GUARDS = {
    ANYONE: login_required,
    APPROVED: require_approved,
    ADMIN: require_admin,
}


@dataclass(frozen=True)
class LookupList:
    path: str
    model: type
    fields: tuple[tuple[str, str], ...]
    read_access: str = APPROVED
    write_access: str | None = APPROVED

    @property
    def key(self) -> str:
        return self.path.replace("-", "_")

    @property
    def order_column(self):
        return getattr(self.model, self.fields[0][0])


LOOKUP_LISTS = (
    LookupList("signatories", Signatory, (("full_name", "Full name"),)),
    LookupList(
        "issuing-offices",
        IssuingOffice,
        (("unit_code", "Unit code"), ("unit", "Unit")),
        read_access=ADMIN,
        write_access=ADMIN,
    ),
    LookupList("sender-units", SenderUnit, (("unit_code", "Unit code"), ("unit", "Unit"))),
    LookupList("addressees", Addressee, (("recipient", "Recipient"),), read_access=ANYONE),
    LookupList(
        "keywords", Keyword, (("keyword", "Keyword"),), read_access=ADMIN, write_access=ADMIN
    ),
    LookupList(
        "document-types", DocumentType, (("document_type", "Document type"),), write_access=ADMIN
    ),
    LookupList("units", Unit, (("name", "Name"),), read_access=ANYONE, write_access=None),
    LookupList("locations", Location, (("name", "Name"),), read_access=ANYONE, write_access=None),
)


def _serialize(lookup: LookupList, row) -> dict:
    data = {"id": row.id}
    for field, _ in lookup.fields:
        data[field] = getattr(row, field)
    return data


def _list_entries(lookup: LookupList):
    rows = lookup.model.query.order_by(lookup.order_column.asc()).all()
    return jsonify({lookup.key: [_serialize(lookup, row) for row in rows]})


def _create_entry(lookup: LookupList):
    payload = request_payload()
    errors = []
    values = {}
    for field, label in lookup.fields:
        values[field], error = check_reference_text(payload.get(field), field_label=label)
        if error:
            errors.append(error)
    raise_for_errors(errors)

    first_field = lookup.fields[0][0]
    duplicate = lookup.model.query.filter(
        getattr(lookup.model, first_field) == values[first_field]
    ).first()
    if duplicate is not None:
        raise ValidationError(f"{lookup.fields[0][1]} already exists.")

    row = lookup.model(**values)
    db.session.add(row)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError(f"{lookup.fields[0][1]} already exists.") from None
    current_app.logger.info("Added %s entry %s", lookup.path, values[first_field])
    return jsonify(_serialize(lookup, row)), 201


def _register(lookup: LookupList) -> None:
    def list_view():
        return _list_entries(lookup)

    list_view.__name__ = f"list_{lookup.key}"
    bp.add_url_rule(
        f"/{lookup.path}",
        endpoint=f"list_{lookup.key}",
        view_func=_GUARDS[lookup.read_access](list_view),
        methods=["GET"],
    )
    if lookup.write_access is None:
        return

    def create_view():
        return _create_entry(lookup)

    create_view.__name__ = f"create_{lookup.key}"
    bp.add_url_rule(
        f"/{lookup.path}",
        endpoint=f"create_{lookup.key}",
        view_func=_GUARDS[lookup.write_access](create_view),
        methods=["POST"],
    )


for _lookup in LOOKUP_LISTS:
    _register(_lookup)
