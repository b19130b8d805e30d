"""
Cycle de vie des requisitions.

pending -> rejected  (reject_request)
pending -> approved  (UNIQUEMENT via StockLedger.post_exit(request_id=...))
pending -> supprimée (delete_request, par son auteur)

Pas de méthode "approve" ici : approuver et sortir le stock est une seule
opération atomique.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Sequence

from almoxarifado.app.db.models.core_types import RequestStatus
from almoxarifado.app.db.models.models_v1 import Product, Request, RequestItem
from almoxarifado.app.schemas.request import RequestItemCreate
from almoxarifado.services.errors import Forbidden, InvalidRequestState, ValidationError
from almoxarifado.services.tenancy import Page, TenantScopedStore

NEWEST_FIRST = (Request.requested_at.desc(), Request.id.desc())


def _require(value: str | None, field: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{field} is required")
    return value.strip()


def create_request(
    store: TenantScopedStore,
    *,
    requested_by_uid: str,
    items: Sequence[RequestItemCreate],
    requester: str,
    department: str,
    purpose: str | None = None,
) -> Request:
    if not items:
        raise ValidationError("At least one item is required")

    request = Request(
        requested_by_uid=_require(requested_by_uid, "requested_by_uid"),
        requester=_require(requester, "requester"),
        department=_require(department, "department"),
        purpose=purpose,
        status=RequestStatus.pending,
        requested_at=datetime.now(timezone.utc),
    )
    for position, item in enumerate(items):
        if item.quantity <= 0:
            raise ValidationError(f"Quantity must be positive (product {item.product_id})")
        # snapshot du produit au moment de la demande (et contrôle secretaria)
        product = store.get(Product, item.product_id)
        request.items.append(
            RequestItem(
                position=position,
                product_id=product.id,
                name=product.name,
                quantity=item.quantity,
                unit=product.unit,
                is_perishable=product.is_perishable,
            )
        )

    return store.create(request)


def get_request(store: TenantScopedStore, request_id: str) -> Request:
    return store.get(Request, request_id)


def list_pending_requests(store: TenantScopedStore) -> list[Request]:
    return store.query(Request, Request.status == RequestStatus.pending, order_by=NEWEST_FIRST)


def list_requests_for_user(
    store: TenantScopedStore,
    uid: str,
    *,
    page_size: int,
    cursor: str | None = None,
) -> Page:
    return store.page(
        Request,
        Request.requested_by_uid == uid,
        sort_column=Request.requested_at,
        descending=True,
        page_size=page_size,
        cursor=cursor,
    )


def reject_request(
    store: TenantScopedStore,
    request_id: str,
    *,
    responsible: str,
    reason: str,
) -> Request:
    reason = _require(reason, "reason")
    responsible = _require(responsible, "responsible")

    request = store.get(Request, request_id, for_update=True)
    if request.status != RequestStatus.pending:
        raise InvalidRequestState(f"Request {request_id} is {request.status.value}, expected pending")

    return store.update(
        Request,
        request_id,
        {
            "status": RequestStatus.rejected,
            "rejection_reason": reason,
            "rejected_by": responsible,
            "rejection_date": datetime.now(timezone.utc),
        },
    )


def delete_request(store: TenantScopedStore, request_id: str, *, requester_uid: str) -> None:
    request = store.get(Request, request_id, for_update=True)
    if request.requested_by_uid != requester_uid:
        raise Forbidden("Only the author of a request can delete it")
    if request.status != RequestStatus.pending:
        raise InvalidRequestState("A request that was already processed cannot be deleted")
    store.delete(Request, request_id)
