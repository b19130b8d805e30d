from __future__ import annotations

from typing import Generator

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session, sessionmaker

from almoxarifado.app.db.models.core_types import Role, STOCK_MANAGER_ROLES
from almoxarifado.app.db.session import SessionLocal
from almoxarifado.services.errors import Forbidden
from almoxarifado.services.ledger import StockLedger
from almoxarifado.services.tenancy import TenantContext, TenantScopedStore
from almoxarifado.services.transaction import TransactionRunner


def get_session_factory() -> sessionmaker:
    return SessionLocal


def get_db(session_factory: sessionmaker = Depends(get_session_factory)) -> Generator:
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


def get_tenant(
    secretaria_id: str | None = Header(default=None, alias="X-Secretaria-Id"),
    principal_id: str | None = Header(default=None, alias="X-Principal-Id"),
    principal_email: str | None = Header(default=None, alias="X-Principal-Email"),
    principal_role: str | None = Header(default=None, alias="X-Principal-Role"),
) -> TenantContext:
    """
    Contexte fourni par la couche d'authentification (externe).
    On lui fait confiance ; on vérifie seulement qu'il est complet.
    """
    if not secretaria_id or not secretaria_id.strip():
        raise HTTPException(status_code=400, detail="Missing X-Secretaria-Id header")
    if not principal_id or not principal_id.strip():
        raise HTTPException(status_code=400, detail="Missing X-Principal-Id header")

    role = None
    if principal_role:
        try:
            role = Role(principal_role)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown role {principal_role}") from None

    return TenantContext(
        secretaria_id=secretaria_id.strip(),
        principal_id=principal_id.strip(),
        principal_email=principal_email,
        role=role,
    )


def require_stock_manager(ctx: TenantContext = Depends(get_tenant)) -> TenantContext:
    if ctx.role not in STOCK_MANAGER_ROLES:
        raise Forbidden("Only Admin or Operador can manage stock")
    return ctx


def get_store(
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant),
) -> TenantScopedStore:
    return TenantScopedStore(db, ctx)


def get_ledger(session_factory: sessionmaker = Depends(get_session_factory)) -> StockLedger:
    return StockLedger(TransactionRunner(session_factory))
