"""
Ledger de stock.

Chaque opération publique (entrée, sortie, retour, audit, cadastro) :
- tourne dans UNE transaction (TransactionRunner),
- relit et verrouille (FOR UPDATE) chaque produit référencé au moment de l'exécution,
- applique toutes les lignes ou aucune,
- ajoute exactement un Movement par ligne.

Après commit, la projection FEFO des produits touchés est recalculée
(ExpirationResolver, best-effort, hors transaction).
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Sequence

from sqlalchemy.exc import IntegrityError, OperationalError

from almoxarifado.app.db.models.core_types import (
    EntryType,
    MovementType,
    ProductType,
    RequestStatus,
)
from almoxarifado.app.db.models.models_v1 import Movement, Product, Request
from almoxarifado.app.schemas.movement import EntryItem, ExitItem, ReturnItem
from almoxarifado.app.schemas.product import ProductCreate
from almoxarifado.services.codes import code_prefix, next_item_code
from almoxarifado.services.errors import (
    InsufficientStock,
    InvalidRequestState,
    NotFound,
    ValidationError,
)
from almoxarifado.services.expiration import ExpirationResolver
from almoxarifado.services.tenancy import TenantContext, TenantScopedStore
from almoxarifado.services.transaction import TransactionRunner

logger = logging.getLogger(__name__)

INITIAL_ENTRY_SUPPLIER = "Cadastro inicial"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _require(value: str | None, field: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{field} is required")
    return value.strip()


def _require_items(items: Sequence) -> None:
    if not items:
        raise ValidationError("At least one item is required")
    for item in items:
        if item.quantity <= 0:
            raise ValidationError(f"Quantity must be positive (product {item.product_id})")


def append_audit(
    store: TenantScopedStore,
    product: Product,
    *,
    responsible: str,
    description: str,
    product_type: ProductType | None = None,
    happened_at: datetime | None = None,
) -> Movement:
    """Mouvement AUDIT à quantité 0 : trace d'une modification hors stock."""
    return store.create(
        Movement(
            product_id=product.id,
            happened_at=happened_at or _now(),
            type=MovementType.audit,
            quantity=0,
            responsible=_require(responsible, "responsible"),
            changes=_require(description, "description"),
            product_type=product_type or product.type,
        )
    )


class StockLedger:
    def __init__(self, runner: TransactionRunner, resolver: ExpirationResolver | None = None):
        self.runner = runner
        self.resolver = resolver or ExpirationResolver(runner)

    # ---------- ENTRÉE ----------
    def post_entry(
        self,
        ctx: TenantContext,
        *,
        items: Sequence[EntryItem],
        supplier: str,
        entry_type: EntryType,
        responsible: str,
        invoice: str | None = None,
        happened_at: datetime | None = None,
    ) -> list[Movement]:
        _require_items(items)
        supplier = _require(supplier, "supplier")
        responsible = _require(responsible, "responsible")
        happened_at = happened_at or _now()

        def work(store: TenantScopedStore) -> list[Movement]:
            products = store.get_many_for_update(Product, [i.product_id for i in items])

            movements = []
            for item in items:
                product = products[item.product_id]
                product.quantity += item.quantity

                # approximation dans la transaction ; le recalcul FEFO fait foi après commit
                if product.is_perishable and item.expiration_date:
                    if product.expiration_date is None or item.expiration_date < product.expiration_date:
                        product.expiration_date = item.expiration_date

                movements.append(
                    store.create(
                        Movement(
                            product_id=product.id,
                            happened_at=happened_at,
                            type=MovementType.entry,
                            entry_type=entry_type,
                            quantity=item.quantity,
                            responsible=responsible,
                            supplier=supplier,
                            # chaîne vide plutôt que NULL : schéma stable
                            invoice=invoice or "",
                            expiration_date=item.expiration_date,
                            product_type=product.type,
                        )
                    )
                )
            return movements

        movements = self.runner.run(ctx, work)
        logger.info(
            "Entry posted secretaria=%s items=%s entry_type=%s responsible=%s",
            ctx.secretaria_id,
            len(movements),
            entry_type.value,
            responsible,
        )
        self.resolver.refresh_many(ctx, [i.product_id for i in items])
        return movements

    # ---------- SORTIE ----------
    def post_exit(
        self,
        ctx: TenantContext,
        *,
        items: Sequence[ExitItem],
        requester: str,
        department: str,
        responsible: str,
        happened_at: datetime | None = None,
        request_id: str | None = None,
    ) -> list[Movement]:
        """
        Sortie multi-lignes.

        Le stock est vérifié sur la lecture verrouillée de la transaction,
        jamais sur un cache : deux sorties concurrentes se sérialisent et
        aucune ne peut rendre la quantité négative.

        Si ``request_id`` est fourni, la requisition passe de pending à
        approved dans la MÊME transaction (sinon tout est annulé).
        """
        _require_items(items)
        requester = _require(requester, "requester")
        department = _require(department, "department")
        responsible = _require(responsible, "responsible")
        happened_at = happened_at or _now()

        def work(store: TenantScopedStore) -> list[Movement]:
            products = store.get_many_for_update(Product, [i.product_id for i in items])

            request = None
            if request_id:
                try:
                    request = store.get(Request, request_id, for_update=True)
                except NotFound:
                    raise InvalidRequestState(f"Request {request_id} not found") from None
                if request.status != RequestStatus.pending:
                    raise InvalidRequestState(
                        f"Request {request_id} is {request.status.value}, expected pending"
                    )

            movements = []
            for item in items:
                product = products[item.product_id]
                # quantité courante de la transaction (cumule les lignes d'un même produit)
                if product.quantity < item.quantity:
                    raise InsufficientStock(
                        product_id=product.id,
                        product_name=product.name,
                        available=product.quantity,
                        requested=item.quantity,
                    )
                product.quantity -= item.quantity

                movements.append(
                    store.create(
                        Movement(
                            product_id=product.id,
                            happened_at=happened_at,
                            type=MovementType.exit,
                            quantity=item.quantity,
                            responsible=responsible,
                            department=department,
                            requester=requester,
                            expiration_date=item.expiration_date or product.expiration_date,
                            product_type=product.type,
                        )
                    )
                )

            if request is not None:
                request.status = RequestStatus.approved
                request.approved_by = responsible
                request.approval_date = _now()

            return movements

        movements = self.runner.run(ctx, work)
        logger.info(
            "Exit posted secretaria=%s items=%s department=%s request=%s responsible=%s",
            ctx.secretaria_id,
            len(movements),
            department,
            request_id,
            responsible,
        )
        self.resolver.refresh_many(ctx, [i.product_id for i in items])
        return movements

    # ---------- RETOUR ----------
    def post_return(
        self,
        ctx: TenantContext,
        *,
        items: Sequence[ReturnItem],
        department: str,
        reason: str,
        responsible: str,
        happened_at: datetime | None = None,
    ) -> list[Movement]:
        _require_items(items)
        department = _require(department, "department")
        reason = _require(reason, "reason")
        responsible = _require(responsible, "responsible")
        happened_at = happened_at or _now()

        def work(store: TenantScopedStore) -> list[Movement]:
            products = store.get_many_for_update(Product, [i.product_id for i in items])

            movements = []
            for item in items:
                product = products[item.product_id]
                product.quantity += item.quantity
                movements.append(
                    store.create(
                        Movement(
                            product_id=product.id,
                            happened_at=happened_at,
                            type=MovementType.return_,
                            quantity=item.quantity,
                            responsible=responsible,
                            department=department,
                            reason=reason,
                            product_type=product.type,
                        )
                    )
                )
            return movements

        movements = self.runner.run(ctx, work)
        logger.info(
            "Return posted secretaria=%s items=%s department=%s responsible=%s",
            ctx.secretaria_id,
            len(movements),
            department,
            responsible,
        )
        # les retours n'alimentent aucun lot, mais la projection est recalculée quand même
        self.resolver.refresh_many(ctx, [i.product_id for i in items])
        return movements

    # ---------- AUDIT ----------
    def record_audit(
        self,
        ctx: TenantContext,
        *,
        product_id: str,
        responsible: str,
        description: str,
        product_type: ProductType | None = None,
        happened_at: datetime | None = None,
    ) -> Movement:
        def work(store: TenantScopedStore) -> Movement:
            product = store.get(Product, product_id)
            return append_audit(
                store,
                product,
                responsible=responsible,
                description=description,
                product_type=product_type,
                happened_at=happened_at,
            )

        return self.runner.run(ctx, work)

    # ---------- CADASTRO ----------
    def onboard_product(
        self,
        ctx: TenantContext,
        data: ProductCreate,
        *,
        responsible: str,
    ) -> Product:
        """
        Crée un produit avec le prochain code ``CAT-NOM-NNN``.

        Le code est alloué dans la même transaction que l'insertion ; une
        collision sur (secretaria_id, code) fait rejouer la transaction.
        """
        responsible = _require(responsible, "responsible")
        durable = data.type == ProductType.durable
        # un bien durable n'est jamais périssable
        perishable = data.is_perishable and not durable
        initial_expiration: date | None = data.expiration_date if perishable else None

        def work(store: TenantScopedStore) -> Product:
            code = next_item_code(store, code_prefix(data.category, data.name))
            product = store.create(
                Product(
                    name=data.name.strip(),
                    name_lowercase=data.name.strip().lower(),
                    code=code,
                    type=data.type,
                    unit=data.unit,
                    quantity=data.initial_quantity,
                    category=data.category.strip(),
                    reference=data.reference,
                    patrimony=(data.patrimony or "") if durable else None,
                    is_perishable=perishable,
                    expiration_date=initial_expiration if data.initial_quantity > 0 else None,
                    image_url=data.image_url,
                )
            )

            if data.initial_quantity > 0:
                store.create(
                    Movement(
                        product_id=product.id,
                        happened_at=_now(),
                        type=MovementType.entry,
                        entry_type=EntryType.unofficial,
                        quantity=data.initial_quantity,
                        responsible=responsible,
                        supplier=INITIAL_ENTRY_SUPPLIER,
                        invoice="",
                        expiration_date=initial_expiration,
                        product_type=product.type,
                    )
                )
            return product

        product = self.runner.run(ctx, work, retry_on=(OperationalError, IntegrityError))
        logger.info(
            "Product onboarded secretaria=%s code=%s initial_quantity=%s",
            ctx.secretaria_id,
            product.code,
            product.quantity,
        )
        return product
