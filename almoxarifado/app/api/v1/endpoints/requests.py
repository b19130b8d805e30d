from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from almoxarifado.app.api.deps import get_db, get_store, require_stock_manager
from almoxarifado.app.core.config import settings
from almoxarifado.app.db.models.core_types import STOCK_MANAGER_ROLES
from almoxarifado.app.schemas.request import RequestCreate, RequestPage, RequestRead, RequestReject
from almoxarifado.services import requests as workflow
from almoxarifado.services.errors import Forbidden
from almoxarifado.services.tenancy import TenantContext, TenantScopedStore

router = APIRouter(prefix="/requests")


@router.post("", response_model=RequestRead, status_code=201)
def create_request(
    payload: RequestCreate,
    store: TenantScopedStore = Depends(get_store),
    db: Session = Depends(get_db),
):
    request = workflow.create_request(
        store,
        requested_by_uid=store.ctx.principal_id,
        items=payload.items,
        requester=payload.requester,
        department=payload.department,
        purpose=payload.purpose,
    )
    db.commit()
    return RequestRead.model_validate(request)


@router.get("/pending", response_model=list[RequestRead])
def list_pending(
    ctx: TenantContext = Depends(require_stock_manager),
    store: TenantScopedStore = Depends(get_store),
):
    return [RequestRead.model_validate(r) for r in workflow.list_pending_requests(store)]


@router.get("/mine", response_model=RequestPage)
def list_mine(
    page_size: int = Query(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=100),
    cursor: str | None = None,
    store: TenantScopedStore = Depends(get_store),
):
    page = workflow.list_requests_for_user(
        store,
        store.ctx.principal_id,
        page_size=page_size,
        cursor=cursor,
    )
    return RequestPage(
        items=[RequestRead.model_validate(r) for r in page.items],
        next_cursor=page.next_cursor,
    )


@router.get("/{request_id}", response_model=RequestRead)
def get_request(request_id: str, store: TenantScopedStore = Depends(get_store)):
    request = workflow.get_request(store, request_id)
    # un demandeur ne voit que ses propres requisitions
    ctx = store.ctx
    if ctx.role not in STOCK_MANAGER_ROLES and request.requested_by_uid != ctx.principal_id:
        raise Forbidden("Only the author or a stock manager can read this request")
    return RequestRead.model_validate(request)


@router.post("/{request_id}/reject", response_model=RequestRead)
def reject_request(
    request_id: str,
    payload: RequestReject,
    ctx: TenantContext = Depends(require_stock_manager),
    store: TenantScopedStore = Depends(get_store),
    db: Session = Depends(get_db),
):
    request = workflow.reject_request(store, request_id, responsible=ctx.actor, reason=payload.reason)
    db.commit()
    return RequestRead.model_validate(request)


@router.delete("/{request_id}", status_code=204)
def delete_request(
    request_id: str,
    store: TenantScopedStore = Depends(get_store),
    db: Session = Depends(get_db),
):
    workflow.delete_request(store, request_id, requester_uid=store.ctx.principal_id)
    db.commit()
    return Response(status_code=204)
