"""initial supply hub schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2025-01-06

"""

from alembic import op
import sqlalchemy as sa


revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return (
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )


def upgrade():
    op.create_table(
        "role",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(64), nullable=False, unique=True),
        sa.Column("description", sa.String(255)),
    )
    op.create_table(
        "user",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("name", sa.String(255)),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("division", sa.String(64)),
        sa.Column("section", sa.String(64)),
        sa.Column("is_approved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "user_role",
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), primary_key=True),
        sa.Column("role_id", sa.Integer(), sa.ForeignKey("role.id"), primary_key=True),
    )

    op.create_table(
        "item",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unit", sa.String(64), nullable=False),
        sa.Column("reorder_point", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("location", sa.String(255)),
        sa.Column("image", sa.String(1024)),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.CheckConstraint("quantity >= 0", name="ck_item_quantity_non_negative"),
    )

    op.create_table(
        "supply_request",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="SET NULL")),
        sa.Column("user_name", sa.String(255), nullable=False),
        sa.Column("user_email", sa.String(255), nullable=False),
        sa.Column("division", sa.String(64), nullable=False),
        sa.Column("section", sa.String(64), nullable=False),
        sa.Column("is_supply_in", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("is_received", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("approver_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="SET NULL")),
        sa.Column("approver_name", sa.String(255)),
        sa.Column("additional_notes", sa.Text()),
        *_timestamps(),
    )
    op.create_index("ix_supply_request_user_email", "supply_request", ["user_email"])
    op.create_index("ix_supply_request_status", "supply_request", ["status"])
    op.create_index("ix_supply_request_created_at", "supply_request", ["created_at"])

    op.create_table(
        "supply_request_item",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "request_id",
            sa.Integer(),
            sa.ForeignKey("supply_request.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("item.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_request_item_quantity_positive"),
    )
    op.create_index("ix_supply_request_item_request_id", "supply_request_item", ["request_id"])
    op.create_index("ix_supply_request_item_item_id", "supply_request_item", ["item_id"])

    op.create_table(
        "memorandum",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("memo_number", sa.String(100), nullable=False),
        sa.Column("signatory", sa.String(100), nullable=False),
        sa.Column("issuing_office", sa.String(100), nullable=False),
        sa.Column("subject", sa.String(100), nullable=False),
        sa.Column("date", sa.String(100), nullable=False),
        sa.Column("keywords", sa.String(100), nullable=False),
        sa.Column("pdf_url", sa.String(1024), nullable=False),
        sa.Column("encoder", sa.String(255), nullable=False),
        sa.Column("division", sa.String(64), nullable=False),
        sa.Column("section", sa.String(64), nullable=False),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )

    op.create_table(
        "document",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reorder_point", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("image", sa.String(1024)),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )

    op.create_table(
        "signatory",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("full_name", sa.String(100), nullable=False, unique=True),
    )
    for table_name in ("issuing_office", "sender_unit"):
        op.create_table(
            table_name,
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("unit_code", sa.String(100), nullable=False, unique=True),
            sa.Column("unit", sa.String(100), nullable=False),
        )
    op.create_table(
        "addressee",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("recipient", sa.String(100), nullable=False, unique=True),
    )
    op.create_table(
        "keyword",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("keyword", sa.String(100), nullable=False, unique=True),
    )
    op.create_table(
        "document_type",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("document_type", sa.String(100), nullable=False, unique=True),
    )
    for table_name in ("location", "unit"):
        op.create_table(
            table_name,
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(100), nullable=False, unique=True),
        )


def downgrade():
    for table_name in (
        "unit",
        "location",
        "document_type",
        "keyword",
        "addressee",
        "sender_unit",
        "issuing_office",
        "signatory",
        "document",
        "memorandum",
        "supply_request_item",
        "supply_request",
        "item",
        "user_role",
        "user",
        "role",
    ):
        op.drop_table(table_name)
