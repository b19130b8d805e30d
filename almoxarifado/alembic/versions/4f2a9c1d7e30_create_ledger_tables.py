"""create products, movements and requests tables

Revision ID: 4f2a9c1d7e30
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "4f2a9c1d7e30"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PRODUCT_TYPE = sa.Enum("CONSUMABLE", "DURABLE", name="product_type")
MOVEMENT_TYPE = sa.Enum("ENTRY", "EXIT", "RETURN", "AUDIT", name="movement_type")
ENTRY_TYPE = sa.Enum("OFFICIAL", "UNOFFICIAL", name="entry_type")
REQUEST_STATUS = sa.Enum("pending", "approved", "rejected", name="request_status")


def upgrade() -> None:
    op.create_table(
        "products",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("secretaria_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("name_lowercase", sa.String(255), nullable=False),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("type", PRODUCT_TYPE, nullable=False),
        sa.Column("unit", sa.String(32), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(128), nullable=False),
        sa.Column("reference", sa.String(255), nullable=False),
        sa.Column("patrimony", sa.String(64)),
        sa.Column("is_perishable", sa.Boolean(), nullable=False),
        sa.Column("expiration_date", sa.Date()),
        sa.Column("image_url", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("quantity >= 0", name="ck_product_quantity_nonneg"),
        sa.UniqueConstraint("secretaria_id", "code", name="uq_product_secretaria_code"),
    )
    op.create_index("ix_products_secretaria_id", "products", ["secretaria_id"])
    op.create_index("ix_products_secretaria_name", "products", ["secretaria_id", "name_lowercase"])

    op.create_table(
        "movements",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("secretaria_id", sa.String(64), nullable=False),
        sa.Column("product_id", sa.String(36), nullable=False),
        sa.Column("happened_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("type", MOVEMENT_TYPE, nullable=False),
        sa.Column("entry_type", ENTRY_TYPE),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("responsible", sa.String(255), nullable=False),
        sa.Column("supplier", sa.String(255)),
        sa.Column("invoice", sa.String(128)),
        sa.Column("department", sa.String(255)),
        sa.Column("requester", sa.String(255)),
        sa.Column("reason", sa.Text()),
        sa.Column("expiration_date", sa.Date()),
        sa.Column("changes", sa.Text()),
        sa.Column("product_type", postgresql.ENUM(name="product_type", create_type=False)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("quantity >= 0", name="ck_movement_qty_nonneg"),
    )
    op.create_index("ix_movements_secretaria_id", "movements", ["secretaria_id"])
    op.create_index("ix_movements_product_id", "movements", ["product_id"])
    op.create_index(
        "ix_movements_secretaria_product_date",
        "movements",
        ["secretaria_id", "product_id", "happened_at"],
    )
    op.create_index("ix_movements_secretaria_happened_at", "movements", ["secretaria_id", "happened_at"])

    op.create_table(
        "requests",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("secretaria_id", sa.String(64), nullable=False),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("requester", sa.String(255), nullable=False),
        sa.Column("department", sa.String(255), nullable=False),
        sa.Column("purpose", sa.Text()),
        sa.Column("requested_by_uid", sa.String(128), nullable=False),
        sa.Column("status", REQUEST_STATUS, nullable=False),
        sa.Column("rejection_reason", sa.Text()),
        sa.Column("rejected_by", sa.String(255)),
        sa.Column("rejection_date", sa.DateTime(timezone=True)),
        sa.Column("approved_by", sa.String(255)),
        sa.Column("approval_date", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_requests_secretaria_id", "requests", ["secretaria_id"])
    op.create_index("ix_requests_requested_by_uid", "requests", ["requested_by_uid"])
    op.create_index(
        "ix_requests_secretaria_status_requested_at",
        "requests",
        ["secretaria_id", "status", "requested_at"],
    )

    op.create_table(
        "request_items",
        sa.Column(
            "request_id",
            sa.String(36),
            sa.ForeignKey("requests.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("position", sa.Integer(), primary_key=True),
        sa.Column("product_id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit", sa.String(32), nullable=False),
        sa.Column("is_perishable", sa.Boolean(), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_request_item_qty_pos"),
    )


def downgrade() -> None:
    op.drop_table("request_items")
    op.drop_table("requests")
    op.drop_table("movements")
    op.drop_table("products")

    bind = op.get_bind()
    for enum_type in (REQUEST_STATUS, ENTRY_TYPE, MOVEMENT_TYPE, PRODUCT_TYPE):
        enum_type.drop(bind, checkfirst=True)
