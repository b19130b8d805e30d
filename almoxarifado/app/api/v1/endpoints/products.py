from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from almoxarifado.app.api.deps import get_db, get_ledger, get_store, require_stock_manager
from almoxarifado.app.core.config import settings
from almoxarifado.app.db.models.core_types import ProductType
from almoxarifado.app.schemas.movement import MovementRead
from almoxarifado.app.schemas.product import ProductCreate, ProductPage, ProductRead, ProductUpdate
from almoxarifado.services import catalog, history
from almoxarifado.services.ledger import StockLedger
from almoxarifado.services.tenancy import TenantContext, TenantScopedStore

router = APIRouter(prefix="/products")


@router.get("", response_model=ProductPage)
def list_products(
    search: str | None = None,
    type: ProductType | None = None,
    page_size: int = Query(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=100),
    cursor: str | None = None,
    store: TenantScopedStore = Depends(get_store),
):
    page = catalog.list_products(
        store,
        search_term=search,
        product_type=type,
        page_size=page_size,
        cursor=cursor,
    )
    return ProductPage(
        items=[ProductRead.model_validate(p) for p in page.items],
        next_cursor=page.next_cursor,
    )


@router.get("/all", response_model=list[ProductRead])
def list_all_products(
    type: ProductType | None = None,
    store: TenantScopedStore = Depends(get_store),
):
    return [ProductRead.model_validate(p) for p in catalog.list_all_products(store, product_type=type)]


@router.get("/search", response_model=list[ProductRead])
def search_products(
    q: str = "",
    type: ProductType | None = None,
    store: TenantScopedStore = Depends(get_store),
):
    return [ProductRead.model_validate(p) for p in catalog.search_products(store, q, product_type=type)]


@router.get("/{product_id}", response_model=ProductRead)
def get_product(product_id: str, store: TenantScopedStore = Depends(get_store)):
    return ProductRead.model_validate(catalog.get_product(store, product_id))


@router.get("/{product_id}/movements", response_model=list[MovementRead])
def get_product_movements(product_id: str, store: TenantScopedStore = Depends(get_store)):
    return [MovementRead.model_validate(m) for m in history.get_movements_for_product(store, product_id)]


@router.post("", response_model=ProductRead, status_code=201)
def create_product(
    payload: ProductCreate,
    ctx: TenantContext = Depends(require_stock_manager),
    ledger: StockLedger = Depends(get_ledger),
):
    product = ledger.onboard_product(ctx, payload, responsible=ctx.actor)
    return ProductRead.model_validate(product)


@router.patch("/{product_id}", response_model=ProductRead)
def update_product(
    product_id: str,
    payload: ProductUpdate,
    ctx: TenantContext = Depends(require_stock_manager),
    store: TenantScopedStore = Depends(get_store),
    db: Session = Depends(get_db),
):
    product = catalog.update_product(store, product_id, payload, responsible=ctx.actor)
    db.commit()
    return ProductRead.model_validate(product)


@router.delete("/{product_id}", status_code=204)
def delete_product(
    product_id: str,
    ctx: TenantContext = Depends(require_stock_manager),
    store: TenantScopedStore = Depends(get_store),
    db: Session = Depends(get_db),
):
    catalog.delete_product(store, product_id)
    db.commit()
    return Response(status_code=204)
