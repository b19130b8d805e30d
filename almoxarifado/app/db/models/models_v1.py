from __future__ import annotations

import uuid
from datetime import datetime, date, timezone

from sqlalchemy import (
    String,
    Integer,
    DateTime,
    Date,
    Boolean,
    ForeignKey,
    Text,
    Enum,
    UniqueConstraint,
    Index,
    CheckConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from almoxarifado.app.db.base import Base
from almoxarifado.app.db.models.core_types import (
    ProductType,
    MovementType,
    EntryType,
    RequestStatus,
)
from almoxarifado.services.errors import Forbidden


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum(enum_cls, name: str) -> Enum:
    # on persiste les valeurs ("ENTRY"), pas les noms python ("entry", "return_")
    return Enum(enum_cls, name=name, values_callable=lambda e: [m.value for m in e])


# ---------- CATALOGUE ----------
class Product(Base):
    __tablename__ = "products"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    secretaria_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    name_lowercase: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[ProductType] = mapped_column(_enum(ProductType, "product_type"), nullable=False)
    unit: Mapped[str] = mapped_column(String(32), default="unit", nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    category: Mapped[str] = mapped_column(String(128), default="", nullable=False)
    reference: Mapped[str] = mapped_column(String(255), default="", nullable=False)

    # numéro de patrimoine, seulement pour les biens durables
    patrimony: Mapped[str | None] = mapped_column(String(64))
    is_perishable: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # projection FEFO, écrite uniquement par le ledger / ExpirationResolver
    expiration_date: Mapped[date | None] = mapped_column(Date)

    image_url: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_product_quantity_nonneg"),
        UniqueConstraint("secretaria_id", "code", name="uq_product_secretaria_code"),
        Index("ix_products_secretaria_name", "secretaria_id", "name_lowercase"),
    )


# ---------- LEDGER ----------
class Movement(Base):
    __tablename__ = "movements"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    secretaria_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # pas de FK : un produit supprimé laisse son historique
    product_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    happened_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    type: Mapped[MovementType] = mapped_column(_enum(MovementType, "movement_type"), nullable=False)
    entry_type: Mapped[EntryType | None] = mapped_column(_enum(EntryType, "entry_type"))
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    responsible: Mapped[str] = mapped_column(String(255), nullable=False)

    supplier: Mapped[str | None] = mapped_column(String(255))
    invoice: Mapped[str | None] = mapped_column(String(128))
    department: Mapped[str | None] = mapped_column(String(255))
    requester: Mapped[str | None] = mapped_column(String(255))
    reason: Mapped[str | None] = mapped_column(Text)

    # date de validade du lot (ENTRY) ou snapshot du lot sorti (EXIT)
    expiration_date: Mapped[date | None] = mapped_column(Date)
    changes: Mapped[str | None] = mapped_column(Text)
    product_type: Mapped[ProductType | None] = mapped_column(_enum(ProductType, "product_type"))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_movement_qty_nonneg"),
        Index("ix_movements_secretaria_product_date", "secretaria_id", "product_id", "happened_at"),
        Index("ix_movements_secretaria_happened_at", "secretaria_id", "happened_at"),
    )


@event.listens_for(Movement, "before_update")
def _refuse_movement_update(mapper, connection, target):
    raise Forbidden(f"Movement {target.id} is append-only")


@event.listens_for(Movement, "before_delete")
def _refuse_movement_delete(mapper, connection, target):
    raise Forbidden(f"Movement {target.id} is append-only")


# ---------- REQUISITIONS ----------
class Request(Base):
    __tablename__ = "requests"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    secretaria_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    requester: Mapped[str] = mapped_column(String(255), nullable=False)
    department: Mapped[str] = mapped_column(String(255), nullable=False)
    purpose: Mapped[str | None] = mapped_column(Text)
    requested_by_uid: Mapped[str] = mapped_column(String(128), nullable=False, index=True)

    status: Mapped[RequestStatus] = mapped_column(
        _enum(RequestStatus, "request_status"),
        default=RequestStatus.pending,
        nullable=False,
    )
    rejection_reason: Mapped[str | None] = mapped_column(Text)
    rejected_by: Mapped[str | None] = mapped_column(String(255))
    rejection_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    approved_by: Mapped[str | None] = mapped_column(String(255))
    approval_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    items: Mapped[list["RequestItem"]] = relationship(
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="RequestItem.position",
    )

    __table_args__ = (Index("ix_requests_secretaria_status_requested_at", "secretaria_id", "status", "requested_at"),)


class RequestItem(Base):
    __tablename__ = "request_items"
    request_id: Mapped[str] = mapped_column(ForeignKey("requests.id", ondelete="CASCADE"), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, primary_key=True)

    product_id: Mapped[str] = mapped_column(String(36), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit: Mapped[str] = mapped_column(String(32), nullable=False)
    is_perishable: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    request: Mapped[Request] = relationship(back_populates="items")

    __table_args__ = (CheckConstraint("quantity > 0", name="ck_request_item_qty_pos"),)
