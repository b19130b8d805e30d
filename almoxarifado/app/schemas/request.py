from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from almoxarifado.app.db.models.core_types import RequestStatus


class RequestItemCreate(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    product_id: str = Field(min_length=1)
    quantity: int = Field(gt=0)


class RequestCreate(BaseModel):
    items: list[RequestItemCreate] = Field(min_length=1)
    requester: str = Field(min_length=1, max_length=255)
    department: str = Field(min_length=1, max_length=255)
    purpose: str | None = None


class RequestReject(BaseModel):
    reason: str = Field(min_length=1)


class RequestItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: str
    name: str
    quantity: int
    unit: str
    is_perishable: bool


class RequestRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    requested_at: datetime
    requester: str
    department: str
    purpose: str | None = None
    status: RequestStatus
    requested_by_uid: str
    rejection_reason: str | None = None
    rejected_by: str | None = None
    rejection_date: datetime | None = None
    approved_by: str | None = None
    approval_date: datetime | None = None
    items: list[RequestItemRead]


class RequestPage(BaseModel):
    items: list[RequestRead]
    next_cursor: str | None = None
