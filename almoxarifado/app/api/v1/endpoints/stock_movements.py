from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query
from pydantic import ValidationError as SchemaError

from almoxarifado.app.api.deps import get_ledger, get_store, require_stock_manager
from almoxarifado.app.core.config import settings
from almoxarifado.app.schemas.movement import (
    AuditCreate,
    EntryCreate,
    ExitCreate,
    MovementFilters,
    MovementPage,
    MovementRead,
    ReturnCreate,
)
from almoxarifado.services import history
from almoxarifado.services.errors import ValidationError
from almoxarifado.services.ledger import StockLedger
from almoxarifado.services.tenancy import TenantContext, TenantScopedStore

router = APIRouter(prefix="/stock-movements")


@router.get("", response_model=MovementPage)
def list_movements(
    start_date: date | None = None,
    end_date: date | None = None,
    movement_type: str | None = None,
    product_type: str | None = None,
    department: str | None = None,
    page_size: int = Query(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=500),
    cursor: str | None = None,
    store: TenantScopedStore = Depends(get_store),
):
    # "all" = pas de filtre (convention des écrans de rapport)
    try:
        filters = MovementFilters(
            start_date=start_date,
            end_date=end_date,
            movement_type=movement_type,
            product_type=product_type,
            department=department,
        )
    except SchemaError as exc:
        raise ValidationError(f"Invalid movement filter: {exc.errors()[0]['msg']}") from None
    page = history.page_movements(store, filters, page_size=page_size, cursor=cursor)
    return MovementPage(
        items=[MovementRead.model_validate(m) for m in page.items],
        next_cursor=page.next_cursor,
    )


@router.post("/entry", response_model=list[MovementRead], status_code=201)
def post_entry(
    payload: EntryCreate,
    ctx: TenantContext = Depends(require_stock_manager),
    ledger: StockLedger = Depends(get_ledger),
):
    movements = ledger.post_entry(
        ctx,
        items=payload.items,
        supplier=payload.supplier,
        invoice=payload.invoice,
        entry_type=payload.entry_type,
        responsible=ctx.actor,
        happened_at=payload.happened_at,
    )
    return [MovementRead.model_validate(m) for m in movements]


@router.post("/exit", response_model=list[MovementRead], status_code=201)
def post_exit(
    payload: ExitCreate,
    ctx: TenantContext = Depends(require_stock_manager),
    ledger: StockLedger = Depends(get_ledger),
):
    movements = ledger.post_exit(
        ctx,
        items=payload.items,
        requester=payload.requester,
        department=payload.department,
        responsible=ctx.actor,
        happened_at=payload.happened_at,
        request_id=payload.request_id,
    )
    return [MovementRead.model_validate(m) for m in movements]


@router.post("/return", response_model=list[MovementRead], status_code=201)
def post_return(
    payload: ReturnCreate,
    ctx: TenantContext = Depends(require_stock_manager),
    ledger: StockLedger = Depends(get_ledger),
):
    movements = ledger.post_return(
        ctx,
        items=payload.items,
        department=payload.department,
        reason=payload.reason,
        responsible=ctx.actor,
        happened_at=payload.happened_at,
    )
    return [MovementRead.model_validate(m) for m in movements]


@router.post("/audit", response_model=MovementRead, status_code=201)
def post_audit(
    payload: AuditCreate,
    ctx: TenantContext = Depends(require_stock_manager),
    ledger: StockLedger = Depends(get_ledger),
):
    movement = ledger.record_audit(
        ctx,
        product_id=payload.product_id,
        responsible=ctx.actor,
        description=payload.description,
        product_type=payload.product_type,
    )
    return MovementRead.model_validate(movement)
