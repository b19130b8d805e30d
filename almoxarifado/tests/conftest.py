import os

# avant tout import de l'app : pas de Postgres pour les tests
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from almoxarifado.app.api.deps import get_session_factory
from almoxarifado.app.db.base import Base
from almoxarifado.app.db.models import models_v1  # noqa: F401
from almoxarifado.app.db.models.core_types import ProductType, Role
from almoxarifado.app.main import app
from almoxarifado.app.schemas.product import ProductCreate
from almoxarifado.services.ledger import StockLedger
from almoxarifado.services.tenancy import TenantContext, TenantScopedStore
from almoxarifado.services.transaction import TransactionRunner


@pytest.fixture(scope="function")
def engine():
    """
    Base SQLite en mémoire, neuve pour chaque test.

    StaticPool : toutes les sessions partagent la même connexion,
    sinon chaque session verrait une base vide.
    """
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def ledger(session_factory):
    return StockLedger(TransactionRunner(session_factory))


@pytest.fixture
def ctx():
    return TenantContext(
        secretaria_id="sec-educacao",
        principal_id="uid-operador",
        principal_email="operador@educacao.gov",
        role=Role.operator,
    )


@pytest.fixture
def other_ctx():
    return TenantContext(
        secretaria_id="sec-saude",
        principal_id="uid-saude",
        principal_email="operador@saude.gov",
        role=Role.operator,
    )


@pytest.fixture
def make_product(ledger, ctx):
    def _make(name="Caderno", category="Escolar", quantity=0, *, tenant=None, **fields):
        data = ProductCreate(
            name=name,
            category=category,
            type=fields.pop("type", ProductType.consumable),
            initial_quantity=quantity,
            **fields,
        )
        return ledger.onboard_product(tenant or ctx, data, responsible="operador@educacao.gov")

    return _make


@pytest.fixture
def read(session_factory):
    """Relit une entité dans une session neuve (état réellement commité)."""

    def _read(tenant, model, entity_id):
        with session_factory() as session:
            return TenantScopedStore(session, tenant).get(model, entity_id)

    return _read


@pytest.fixture
def client(session_factory):
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def headers():
    def _headers(tenant: TenantContext) -> dict:
        h = {
            "X-Secretaria-Id": tenant.secretaria_id,
            "X-Principal-Id": tenant.principal_id,
        }
        if tenant.principal_email:
            h["X-Principal-Email"] = tenant.principal_email
        if tenant.role:
            h["X-Principal-Role"] = tenant.role.value
        return h

    return _headers
