from datetime import date, datetime, timezone

import pytest
from sqlalchemy import select

from almoxarifado.app.db.models.core_types import (
    EntryType,
    MovementType,
    ProductType,
    RequestStatus,
)
from almoxarifado.app.db.models.models_v1 import Movement, Product, Request
from almoxarifado.app.schemas.movement import EntryItem, ExitItem, ReturnItem
from almoxarifado.app.schemas.request import RequestItemCreate
from almoxarifado.services import requests as workflow
from almoxarifado.services.errors import (
    Forbidden,
    InsufficientStock,
    InvalidRequestState,
    NotFound,
    ValidationError,
)
from almoxarifado.services.ledger import INITIAL_ENTRY_SUPPLIER
from almoxarifado.services.tenancy import TenantScopedStore


def _movements(session_factory, product_id, movement_type=None):
    with session_factory() as session:
        stmt = select(Movement).where(Movement.product_id == product_id)
        if movement_type:
            stmt = stmt.where(Movement.type == movement_type)
        return list(session.execute(stmt).scalars().all())


def _pending_request(session_factory, ctx, product, quantity=2):
    with session_factory() as session:
        store = TenantScopedStore(session, ctx)
        request = workflow.create_request(
            store,
            requested_by_uid="uid-professora",
            items=[RequestItemCreate(product_id=product.id, quantity=quantity)],
            requester="Professora Ana",
            department="Escola Municipal A",
        )
        session.commit()
        return request.id


# ---------- ENTRÉE ----------
def test_entry_increments_stock_and_stores_empty_invoice(ledger, ctx, make_product, read, session_factory):
    p = make_product(quantity=3)

    movements = ledger.post_entry(
        ctx,
        items=[EntryItem(product_id=p.id, quantity=7)],
        supplier="Papelaria Central",
        entry_type=EntryType.unofficial,
        responsible="operador@educacao.gov",
    )

    assert len(movements) == 1
    assert read(ctx, Product, p.id).quantity == 10

    entry = _movements(session_factory, p.id, MovementType.entry)
    entry = [m for m in entry if m.supplier == "Papelaria Central"][0]
    assert entry.invoice == ""
    assert entry.entry_type == EntryType.unofficial
    assert entry.secretaria_id == ctx.secretaria_id


def test_entry_requires_supplier(ledger, ctx, make_product):
    p = make_product()
    with pytest.raises(ValidationError):
        ledger.post_entry(
            ctx,
            items=[EntryItem(product_id=p.id, quantity=1)],
            supplier="  ",
            entry_type=EntryType.unofficial,
            responsible="operador@educacao.gov",
        )


def test_entry_for_unknown_product_writes_nothing(ledger, ctx, make_product, read, session_factory):
    p = make_product(quantity=1)

    with pytest.raises(NotFound):
        ledger.post_entry(
            ctx,
            items=[
                EntryItem(product_id=p.id, quantity=5),
                EntryItem(product_id="missing", quantity=5),
            ],
            supplier="Papelaria Central",
            entry_type=EntryType.unofficial,
            responsible="operador@educacao.gov",
        )

    assert read(ctx, Product, p.id).quantity == 1
    assert len(_movements(session_factory, p.id)) == 1  # seulement l'entrée initiale


# ---------- SORTIE ----------
def test_exit_is_all_or_nothing(ledger, ctx, make_product, read, session_factory):
    a = make_product(name="Caderno", quantity=10)
    b = make_product(name="Lapis", quantity=1)
    c = make_product(name="Borracha", quantity=10)

    with pytest.raises(InsufficientStock) as excinfo:
        ledger.post_exit(
            ctx,
            items=[
                ExitItem(product_id=a.id, quantity=5),
                ExitItem(product_id=b.id, quantity=3),
                ExitItem(product_id=c.id, quantity=2),
            ],
            requester="Diretora",
            department="Escola Municipal A",
            responsible="operador@educacao.gov",
        )

    err = excinfo.value
    assert err.product_id == b.id
    assert err.available == 1
    assert err.requested == 3

    assert read(ctx, Product, a.id).quantity == 10
    assert read(ctx, Product, b.id).quantity == 1
    assert read(ctx, Product, c.id).quantity == 10
    for p in (a, b, c):
        assert _movements(session_factory, p.id, MovementType.exit) == []


def test_exit_checks_repeated_product_lines_cumulatively(ledger, ctx, make_product, read):
    p = make_product(quantity=10)

    with pytest.raises(InsufficientStock):
        ledger.post_exit(
            ctx,
            items=[ExitItem(product_id=p.id, quantity=6), ExitItem(product_id=p.id, quantity=6)],
            requester="Diretora",
            department="Escola Municipal A",
            responsible="operador@educacao.gov",
        )

    assert read(ctx, Product, p.id).quantity == 10


def test_exit_can_empty_the_stock(ledger, ctx, make_product, read, session_factory):
    p = make_product(quantity=4)

    ledger.post_exit(
        ctx,
        items=[ExitItem(product_id=p.id, quantity=4)],
        requester="Diretora",
        department="Escola Municipal A",
        responsible="operador@educacao.gov",
    )

    assert read(ctx, Product, p.id).quantity == 0
    (exit_movement,) = _movements(session_factory, p.id, MovementType.exit)
    assert exit_movement.department == "Escola Municipal A"
    assert exit_movement.requester == "Diretora"
    assert exit_movement.quantity == 4


def test_exit_on_another_secretaria_product_is_not_found(ledger, ctx, other_ctx, make_product, read):
    p = make_product(quantity=10)

    with pytest.raises(NotFound):
        ledger.post_exit(
            other_ctx,
            items=[ExitItem(product_id=p.id, quantity=1)],
            requester="Enfermeira",
            department="UBS Centro",
            responsible="operador@saude.gov",
        )

    assert read(ctx, Product, p.id).quantity == 10


def test_exit_snapshots_active_expiration(ledger, ctx, make_product, session_factory):
    p = make_product(quantity=0, is_perishable=True)
    ledger.post_entry(
        ctx,
        items=[EntryItem(product_id=p.id, quantity=5, expiration_date=date(2025, 6, 30))],
        supplier="Distribuidora",
        entry_type=EntryType.official,
        invoice="NF-100",
        responsible="operador@educacao.gov",
    )

    ledger.post_exit(
        ctx,
        items=[ExitItem(product_id=p.id, quantity=1)],
        requester="Cozinha",
        department="Merenda",
        responsible="operador@educacao.gov",
    )

    (exit_movement,) = _movements(session_factory, p.id, MovementType.exit)
    assert exit_movement.expiration_date == date(2025, 6, 30)


# ---------- REQUISITION ----------
def test_exit_approves_pending_request(ledger, ctx, make_product, read):
    p = make_product(quantity=10)
    request_id = _pending_request(ledger.runner.session_factory, ctx, p)

    ledger.post_exit(
        ctx,
        items=[ExitItem(product_id=p.id, quantity=2)],
        requester="Professora Ana",
        department="Escola Municipal A",
        responsible="operador@educacao.gov",
        request_id=request_id,
    )

    request = read(ctx, Request, request_id)
    assert request.status == RequestStatus.approved
    assert request.approved_by == "operador@educacao.gov"
    assert request.approval_date is not None
    assert read(ctx, Product, p.id).quantity == 8


def test_exit_for_rejected_request_changes_nothing(ledger, ctx, make_product, read, session_factory):
    p = make_product(quantity=10)
    request_id = _pending_request(session_factory, ctx, p)
    with session_factory() as session:
        workflow.reject_request(
            TenantScopedStore(session, ctx),
            request_id,
            responsible="operador@educacao.gov",
            reason="Sem orçamento",
        )
        session.commit()

    with pytest.raises(InvalidRequestState):
        ledger.post_exit(
            ctx,
            items=[ExitItem(product_id=p.id, quantity=2)],
            requester="Professora Ana",
            department="Escola Municipal A",
            responsible="operador@educacao.gov",
            request_id=request_id,
        )

    assert read(ctx, Product, p.id).quantity == 10
    assert read(ctx, Request, request_id).status == RequestStatus.rejected
    assert _movements(session_factory, p.id, MovementType.exit) == []


def test_exit_with_unknown_request_is_invalid_state(ledger, ctx, make_product, read):
    p = make_product(quantity=10)

    with pytest.raises(InvalidRequestState):
        ledger.post_exit(
            ctx,
            items=[ExitItem(product_id=p.id, quantity=2)],
            requester="Professora Ana",
            department="Escola Municipal A",
            responsible="operador@educacao.gov",
            request_id="does-not-exist",
        )

    assert read(ctx, Product, p.id).quantity == 10


def test_insufficient_stock_leaves_request_pending(ledger, ctx, make_product, read, session_factory):
    p = make_product(quantity=1)
    request_id = _pending_request(session_factory, ctx, p, quantity=5)

    with pytest.raises(InsufficientStock):
        ledger.post_exit(
            ctx,
            items=[ExitItem(product_id=p.id, quantity=5)],
            requester="Professora Ana",
            department="Escola Municipal A",
            responsible="operador@educacao.gov",
            request_id=request_id,
        )

    assert read(ctx, Request, request_id).status == RequestStatus.pending


# ---------- RETOUR / AUDIT ----------
def test_return_increments_stock_and_keeps_reason(ledger, ctx, make_product, read, session_factory):
    p = make_product(quantity=2)

    ledger.post_return(
        ctx,
        items=[ReturnItem(product_id=p.id, quantity=3)],
        department="Escola Municipal A",
        reason="Sobra do semestre",
        responsible="operador@educacao.gov",
    )

    assert read(ctx, Product, p.id).quantity == 5
    (ret,) = _movements(session_factory, p.id, MovementType.return_)
    assert ret.reason == "Sobra do semestre"
    assert ret.department == "Escola Municipal A"


def test_audit_movement_has_zero_quantity(ledger, ctx, make_product, read):
    p = make_product(quantity=4)

    movement = ledger.record_audit(
        ctx,
        product_id=p.id,
        responsible="operador@educacao.gov",
        description="Contagem física conferida",
    )

    assert movement.type == MovementType.audit
    assert movement.quantity == 0
    assert movement.changes == "Contagem física conferida"
    assert read(ctx, Product, p.id).quantity == 4


def test_movements_are_append_only(ledger, ctx, make_product, session_factory):
    p = make_product(quantity=4)
    (entry,) = _movements(session_factory, p.id)

    with session_factory() as session:
        movement = session.get(Movement, entry.id)
        movement.quantity = 99
        with pytest.raises(Forbidden):
            session.flush()

    with session_factory() as session:
        movement = session.get(Movement, entry.id)
        session.delete(movement)
        with pytest.raises(Forbidden):
            session.flush()


# ---------- CADASTRO ----------
def test_onboarding_allocates_sequential_codes(make_product):
    first = make_product(name="Caderno", category="Escolar")
    second = make_product(name="Caderno brochura", category="Escolar")

    assert first.code == "ESC-CAD-001"
    assert second.code == "ESC-CAD-002"


def test_onboarding_codes_are_per_secretaria(make_product, other_ctx):
    make_product(name="Caderno", category="Escolar")
    other = make_product(name="Caderno", category="Escolar", tenant=other_ctx)

    assert other.code == "ESC-CAD-001"


def test_onboarding_with_initial_quantity_writes_unofficial_entry(make_product, session_factory):
    p = make_product(quantity=12)

    (entry,) = _movements(session_factory, p.id)
    assert entry.type == MovementType.entry
    assert entry.entry_type == EntryType.unofficial
    assert entry.supplier == INITIAL_ENTRY_SUPPLIER
    assert entry.quantity == 12
    assert p.quantity == 12


def test_onboarding_without_quantity_writes_no_movement(make_product, session_factory):
    p = make_product(quantity=0)
    assert _movements(session_factory, p.id) == []


def test_durable_product_is_never_perishable(make_product):
    p = make_product(
        name="Cadeira",
        category="Mobiliario",
        type=ProductType.durable,
        is_perishable=True,
        patrimony="PAT-0042",
        quantity=1,
        expiration_date=date(2030, 1, 1),
    )

    assert p.is_perishable is False
    assert p.expiration_date is None
    assert p.patrimony == "PAT-0042"


def test_happened_at_is_kept(ledger, ctx, make_product, session_factory):
    p = make_product()
    when = datetime(2024, 3, 10, 9, 30, tzinfo=timezone.utc)

    ledger.post_entry(
        ctx,
        items=[EntryItem(product_id=p.id, quantity=1)],
        supplier="Papelaria Central",
        entry_type=EntryType.unofficial,
        responsible="operador@educacao.gov",
        happened_at=when,
    )

    (entry,) = _movements(session_factory, p.id)
    assert entry.happened_at.replace(tzinfo=None) == when.replace(tzinfo=None)


# ---------- ISOLATION ENTRE SECRETARIAS ----------
def test_exit_cannot_approve_another_secretaria_request(ledger, ctx, other_ctx, make_product, read, session_factory):
    mine = make_product(quantity=10)
    theirs = make_product(name="Seringa", category="Medico", quantity=10, tenant=other_ctx)
    request_id = _pending_request(session_factory, ctx, mine)

    with pytest.raises(InvalidRequestState):
        ledger.post_exit(
            other_ctx,
            items=[ExitItem(product_id=theirs.id, quantity=2)],
            requester="Enfermeira",
            department="UBS Centro",
            responsible="operador@saude.gov",
            request_id=request_id,
        )

    assert read(ctx, Request, request_id).status == RequestStatus.pending
    assert read(other_ctx, Product, theirs.id).quantity == 10
    assert _movements(session_factory, theirs.id, MovementType.exit) == []


def test_entry_on_another_secretaria_product_writes_nothing(ledger, ctx, other_ctx, make_product, read, session_factory):
    p = make_product(quantity=3)

    with pytest.raises(NotFound):
        ledger.post_entry(
            other_ctx,
            items=[EntryItem(product_id=p.id, quantity=5)],
            supplier="Distribuidora",
            entry_type=EntryType.unofficial,
            responsible="operador@saude.gov",
        )

    assert read(ctx, Product, p.id).quantity == 3
    assert len(_movements(session_factory, p.id)) == 1


def test_return_on_another_secretaria_product_writes_nothing(ledger, ctx, other_ctx, make_product, read, session_factory):
    p = make_product(quantity=3)

    with pytest.raises(NotFound):
        ledger.post_return(
            other_ctx,
            items=[ReturnItem(product_id=p.id, quantity=5)],
            department="UBS Centro",
            reason="Sobra",
            responsible="operador@saude.gov",
        )

    assert read(ctx, Product, p.id).quantity == 3
    assert _movements(session_factory, p.id, MovementType.return_) == []
