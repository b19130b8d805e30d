from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from almoxarifado.app.db.models.core_types import ProductType


class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    category: str = Field(min_length=1, max_length=128)
    type: ProductType
    unit: str = Field(default="unit", min_length=1, max_length=32)
    initial_quantity: int = Field(default=0, ge=0)
    reference: str = Field(default="", max_length=255)
    patrimony: str | None = Field(default=None, max_length=64)
    is_perishable: bool = False
    # validade du lot initial (si périssable et initial_quantity > 0)
    expiration_date: date | None = None
    image_url: str | None = None


class ProductUpdate(BaseModel):
    """Édition directe. quantity et expiration_date ne sont PAS éditables ici."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=255)
    code: str | None = Field(default=None, min_length=1, max_length=64)
    category: str | None = Field(default=None, min_length=1, max_length=128)
    type: ProductType | None = None
    unit: str | None = Field(default=None, min_length=1, max_length=32)
    reference: str | None = Field(default=None, max_length=255)
    patrimony: str | None = Field(default=None, max_length=64)
    is_perishable: bool | None = None
    image_url: str | None = None


class ProductRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    code: str
    type: ProductType
    unit: str
    quantity: int
    category: str
    reference: str
    patrimony: str | None = None
    is_perishable: bool
    expiration_date: date | None = None  # lecture seule, projection FEFO
    image_url: str | None = None
    created_at: datetime


class ProductPage(BaseModel):
    items: list[ProductRead]
    next_cursor: str | None = None
