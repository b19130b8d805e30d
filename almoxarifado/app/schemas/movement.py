from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from almoxarifado.app.db.models.core_types import EntryType, MovementType, ProductType


# ---------- Lignes par type de mouvement ----------
# Variantes fermées : chaque type ne porte que ses champs, vérifiés à la construction.
class _LedgerItem(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    product_id: str = Field(min_length=1)
    quantity: int = Field(gt=0)


class EntryItem(_LedgerItem):
    expiration_date: date | None = None


class ExitItem(_LedgerItem):
    # snapshot du lot sorti ; par défaut la validade active du produit
    expiration_date: date | None = None


class ReturnItem(_LedgerItem):
    pass


# ---------- Payloads ----------
class EntryCreate(BaseModel):
    items: list[EntryItem] = Field(min_length=1)
    supplier: str = Field(min_length=1, max_length=255)
    invoice: str | None = Field(default=None, max_length=128)
    entry_type: EntryType
    happened_at: datetime | None = None

    @model_validator(mode="after")
    def _official_entry_needs_invoice(self):
        if self.entry_type == EntryType.official and not (self.invoice or "").strip():
            raise ValueError("An official entry requires an invoice number")
        return self


class ExitCreate(BaseModel):
    items: list[ExitItem] = Field(min_length=1)
    requester: str = Field(min_length=1, max_length=255)
    department: str = Field(min_length=1, max_length=255)
    happened_at: datetime | None = None
    request_id: str | None = None


class ReturnCreate(BaseModel):
    items: list[ReturnItem] = Field(min_length=1)
    department: str = Field(min_length=1, max_length=255)
    reason: str = Field(min_length=1)
    happened_at: datetime | None = None


class AuditCreate(BaseModel):
    product_id: str = Field(min_length=1)
    description: str = Field(min_length=1)
    product_type: ProductType | None = None


class MovementFilters(BaseModel):
    start_date: date | None = None
    end_date: date | None = None
    movement_type: MovementType | None = None
    product_type: ProductType | None = None
    department: str | None = None

    @field_validator("movement_type", "product_type", "department", mode="before")
    @classmethod
    def _all_means_no_filter(cls, value):
        if value in ("", "all"):
            return None
        return value


class MovementRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    product_id: str
    happened_at: datetime
    type: MovementType
    entry_type: EntryType | None = None
    quantity: int
    responsible: str
    supplier: str | None = None
    invoice: str | None = None
    department: str | None = None
    requester: str | None = None
    reason: str | None = None
    expiration_date: date | None = None
    changes: str | None = None
    product_type: ProductType | None = None


class MovementPage(BaseModel):
    items: list[MovementRead]
    next_cursor: str | None = None
