from datetime import datetime

from flask_login import UserMixin
from sqlalchemy import inspect
from sqlalchemy.orm import validates
from sqlalchemy.orm.exc import DetachedInstanceError
from werkzeug.security import check_password_hash, generate_password_hash

from supplyhub.extensions import db


def _isoformat(value):
    return value.isoformat() if value else None


class Division:
    MANAGEMENT = "MANAGEMENT"
    RECRUITMENT = "RECRUITMENT"
    PLANNING_RESEARCH = "PLANNING_RESEARCH"
    DEVELOPMENT_BENEFITS = "DEVELOPMENT_BENEFITS"

    ALL = [MANAGEMENT, RECRUITMENT, PLANNING_RESEARCH, DEVELOPMENT_BENEFITS]


class Section:
    EXECUTIVE = "EXECUTIVE"
    ADMINISTRATIVE = "ADMINISTRATIVE"
    RECRUITMENT_SELECTION = "RECRUITMENT_SELECTION"
    APPOINTMENT = "APPOINTMENT"
    PLANNING_RESEARCH = "PLANNING_RESEARCH"
    MONITORING_EVALUATION = "MONITORING_EVALUATION"
    INFORMATION_MANAGEMENT = "INFORMATION_MANAGEMENT"
    PROJECTS = "PROJECTS"
    SCHOLARSHIP = "SCHOLARSHIP"
    TRAINING = "TRAINING"
    BENEFITS = "BENEFITS"

    ALL = [
        EXECUTIVE,
        ADMINISTRATIVE,
        RECRUITMENT_SELECTION,
        APPOINTMENT,
        PLANNING_RESEARCH,
        MONITORING_EVALUATION,
        INFORMATION_MANAGEMENT,
        PROJECTS,
        SCHOLARSHIP,
        TRAINING,
        BENEFITS,
    ]


class RoleName:
    USER = "user"
    APPROVER = "approver"
    ADMIN = "admin"

    ALL = [USER, APPROVER, ADMIN]
    DECIDERS = (APPROVER, ADMIN)
    DESCRIPTIONS = {
        USER: "Requests supplies and tracks own requests",
        APPROVER: "Approves or rejects supply requests",
        ADMIN: "Administrator",
    }


user_roles = db.Table(
    "user_role",
    db.Column("user_id", db.Integer, db.ForeignKey("user.id"), primary_key=True),
    db.Column("role_id", db.Integer, db.ForeignKey("role.id"), primary_key=True),
)


class Role(db.Model):
    __tablename__ = "role"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), unique=True, nullable=False)
    description = db.Column(db.String(255))

    users = db.relationship(
        "User",
        secondary=user_roles,
        back_populates="roles",
    )

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<Role {self.name}>"


class User(UserMixin, db.Model):
    __tablename__ = "user"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    name = db.Column(db.String(255))
    password_hash = db.Column(db.String(255), nullable=False)
    division = db.Column(db.String(64))
    section = db.Column(db.String(64))
    is_approved = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    roles = db.relationship(
        "Role",
        secondary=user_roles,
        back_populates="users",
        lazy="joined",
    )

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def has_role(self, role_name: str) -> bool:
        return self.has_any_role((role_name,))

    def has_any_role(self, role_names) -> bool:
        if not role_names:
            return False

        try:
            role_name_set = {role.name for role in self.roles}
        except DetachedInstanceError:
            identity = inspect(self).identity
            if not identity:
                return False
            refreshed = db.session.get(User, identity[0])
            if refreshed is None:
                return False
            return refreshed.has_any_role(role_names)

        return any(name in role_name_set for name in role_names)

    @property
    def role_names(self) -> list[str]:
        return sorted(role.name for role in self.roles)

    @property
    def primary_role(self) -> str:
        for role_name in (RoleName.ADMIN, RoleName.APPROVER):
            if self.has_role(role_name):
                return role_name
        return RoleName.USER

    @property
    def has_complete_profile(self) -> bool:
        return all((self.name, self.email, self.division, self.section))

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "division": self.division,
            "section": self.section,
            "is_approved": self.is_approved,
            "role": self.primary_role,
            "roles": self.role_names,
            "created_at": _isoformat(self.created_at),
        }

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<User {self.email}>"


class ItemStatus:
    AVAILABLE = "AVAILABLE"
    OUT_OF_STOCK = "OUT_OF_STOCK"
    FOR_REORDER = "FOR_REORDER"
    PHASED_OUT = "PHASED_OUT"
    DISCONTINUED = "DISCONTINUED"

    ALL_STATUSES = [AVAILABLE, OUT_OF_STOCK, FOR_REORDER, PHASED_OUT, DISCONTINUED]
    LABELS = {
        AVAILABLE: "Available",
        OUT_OF_STOCK: "Out of Stock",
        FOR_REORDER: "For Reorder",
        PHASED_OUT: "Phased Out",
        DISCONTINUED: "Discontinued",
    }


def derive_item_status(quantity: int, reorder_point: int, archived: bool) -> str:
    """Return the stock status implied by an item's quantity, reorder point and archive flag."""

    if archived:
        return ItemStatus.DISCONTINUED if quantity == 0 else ItemStatus.PHASED_OUT
    if quantity == 0:
        return ItemStatus.OUT_OF_STOCK
    if quantity <= reorder_point:
        return ItemStatus.FOR_REORDER
    return ItemStatus.AVAILABLE


class Item(db.Model):
    __tablename__ = "item"

    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_item_quantity_non_negative"),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    unit = db.Column(db.String(64), nullable=False)
    reorder_point = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(32), nullable=False, default=ItemStatus.OUT_OF_STOCK)
    location = db.Column(db.String(255))
    image = db.Column(db.String(1024))
    is_archived = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    request_lines = db.relationship("SupplyRequestItem", back_populates="item")

    def __init__(self, **kwargs):
        kwargs.setdefault("quantity", 0)
        kwargs.setdefault("reorder_point", 0)
        kwargs.setdefault("is_archived", False)
        super().__init__(**kwargs)

    @validates("quantity", "reorder_point", "is_archived")
    def _refresh_status(self, key, value):
        # Status follows its inputs on every write path.
        inputs = {
            "quantity": self.quantity,
            "reorder_point": self.reorder_point,
            "is_archived": self.is_archived,
        }
        inputs[key] = value
        self.status = derive_item_status(
            inputs["quantity"] or 0,
            inputs["reorder_point"] or 0,
            bool(inputs["is_archived"]),
        )
        return value

    def recompute_status(self) -> str:
        self.status = derive_item_status(
            self.quantity or 0, self.reorder_point or 0, bool(self.is_archived)
        )
        return self.status

    def to_dict(self, has_requests=None):
        data = {
            "id": self.id,
            "name": self.name,
            "quantity": self.quantity,
            "unit": self.unit,
            "reorder_point": self.reorder_point,
            "status": self.status,
            "location": self.location,
            "image": self.image,
            "is_archived": self.is_archived,
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
        }
        if has_requests is not None:
            data["has_requests"] = has_requests
        return data

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<Item {self.name}>"


class RequestStatus:
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"

    ALL_STATUSES = [PENDING, APPROVED, REJECTED]


class SupplyRequest(db.Model):
    __tablename__ = "supply_request"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="SET NULL"))
    user_name = db.Column(db.String(255), nullable=False)
    user_email = db.Column(db.String(255), nullable=False, index=True)
    division = db.Column(db.String(64), nullable=False)
    section = db.Column(db.String(64), nullable=False)
    is_supply_in = db.Column(db.Boolean, nullable=False, default=False)
    status = db.Column(
        db.String(16), nullable=False, default=RequestStatus.PENDING, index=True
    )
    is_received = db.Column(db.Boolean, nullable=False, default=False)
    approver_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="SET NULL"))
    approver_name = db.Column(db.String(255))
    additional_notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    items = db.relationship(
        "SupplyRequestItem",
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="SupplyRequestItem.id",
    )

    @property
    def supply_type(self) -> str:
        return "in" if self.is_supply_in else "out"

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<SupplyRequest {self.id} {self.status}>"


class SupplyRequestItem(db.Model):
    __tablename__ = "supply_request_item"

    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_request_item_quantity_positive"),
    )

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(
        db.Integer,
        db.ForeignKey("supply_request.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    item_id = db.Column(db.Integer, db.ForeignKey("item.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    request = db.relationship("SupplyRequest", back_populates="items")
    item = db.relationship("Item", back_populates="request_lines")


class Memorandum(db.Model):
    __tablename__ = "memorandum"

    id = db.Column(db.Integer, primary_key=True)
    memo_number = db.Column(db.String(100), nullable=False)
    signatory = db.Column(db.String(100), nullable=False)
    issuing_office = db.Column(db.String(100), nullable=False)
    subject = db.Column(db.String(100), nullable=False)
    date = db.Column(db.String(100), nullable=False)
    keywords = db.Column(db.String(100), nullable=False)
    pdf_url = db.Column(db.String(1024), nullable=False)
    encoder = db.Column(db.String(255), nullable=False)
    division = db.Column(db.String(64), nullable=False)
    section = db.Column(db.String(64), nullable=False)
    is_archived = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def to_dict(self):
        return {
            "id": self.id,
            "memo_number": self.memo_number,
            "signatory": self.signatory,
            "issuing_office": self.issuing_office,
            "subject": self.subject,
            "date": self.date,
            "keywords": self.keywords,
            "pdf_url": self.pdf_url,
            "encoder": self.encoder,
            "division": self.division,
            "section": self.section,
            "is_archived": self.is_archived,
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
        }


class Document(db.Model):
    __tablename__ = "document"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    reorder_point = db.Column(db.Integer, nullable=False, default=0)
    image = db.Column(db.String(1024))
    is_archived = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "quantity": self.quantity,
            "reorder_point": self.reorder_point,
            "image": self.image,
            "is_archived": self.is_archived,
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
        }


# Reference lists used by the memorandum and request forms.


class Signatory(db.Model):
    __tablename__ = "signatory"

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(100), nullable=False, unique=True)


class IssuingOffice(db.Model):
    __tablename__ = "issuing_office"

    id = db.Column(db.Integer, primary_key=True)
    unit_code = db.Column(db.String(100), nullable=False, unique=True)
    unit = db.Column(db.String(100), nullable=False)


class SenderUnit(db.Model):
    __tablename__ = "sender_unit"

    id = db.Column(db.Integer, primary_key=True)
    unit_code = db.Column(db.String(100), nullable=False, unique=True)
    unit = db.Column(db.String(100), nullable=False)


class Addressee(db.Model):
    __tablename__ = "addressee"

    id = db.Column(db.Integer, primary_key=True)
    recipient = db.Column(db.String(100), nullable=False, unique=True)


class Keyword(db.Model):
    __tablename__ = "keyword"

    id = db.Column(db.Integer, primary_key=True)
    keyword = db.Column(db.String(100), nullable=False, unique=True)


class DocumentType(db.Model):
    __tablename__ = "document_type"

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(100), nullable=False, unique=True)


class Location(db.Model):
    __tablename__ = "location"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)


class Unit(db.Model):
    __tablename__ = "unit"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
