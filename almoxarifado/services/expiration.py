"""
Projection FEFO de la date de validade.

Règle :
    lots = ENTRY avec date de validade, triés par validade croissante
    consommé = SUM(quantité des EXIT)
    la date active = validade du premier lot pas entièrement consommé

Les RETURN sont ignorés (ils ne réattribuent rien à un lot précis).
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError

from almoxarifado.app.db.models.core_types import MovementType
from almoxarifado.app.db.models.models_v1 import Movement, Product
from almoxarifado.services.errors import NotFound, TransientFailure
from almoxarifado.services.tenancy import TenantContext, TenantScopedStore
from almoxarifado.services.transaction import TransactionRunner

logger = logging.getLogger(__name__)


def resolve_active_expiration(movements: Iterable[Movement]) -> date | None:
    movements = list(movements)

    batches = sorted(
        (m for m in movements if m.type == MovementType.entry and m.expiration_date),
        key=lambda m: m.expiration_date,
    )
    consumed = sum(m.quantity for m in movements if m.type == MovementType.exit)

    for batch in batches:
        if consumed < batch.quantity:
            return batch.expiration_date
        consumed -= batch.quantity

    return None


def refresh_expiration_date(store: TenantScopedStore, product_id: str) -> date | None:
    product = store.get(Product, product_id)

    # non périssable (ou durable) : jamais de validade en cache, même si un lot en porte une
    resolved = None
    if product.is_perishable:
        movements = store.query(
            Movement,
            Movement.product_id == product_id,
            order_by=(Movement.happened_at, Movement.id),
        )
        resolved = resolve_active_expiration(movements)
    store.update(Product, product_id, {"expiration_date": resolved})
    return resolved


class ExpirationResolver:
    """Recalcule la projection APRÈS commit, hors de la transaction du mouvement."""

    def __init__(self, runner: TransactionRunner):
        self.runner = runner

    def refresh(self, ctx: TenantContext, product_id: str) -> date | None:
        return self.runner.run(ctx, lambda store: refresh_expiration_date(store, product_id))

    def refresh_many(self, ctx: TenantContext, product_ids: Iterable[str]) -> dict[str, date | None]:
        """
        Best-effort : un échec ici ne doit jamais annuler le mouvement déjà
        commité. La date en cache reste alors périmée mais sans danger.
        """
        resolved: dict[str, date | None] = {}
        for product_id in dict.fromkeys(product_ids):
            try:
                resolved[product_id] = self.refresh(ctx, product_id)
            except (NotFound, TransientFailure, SQLAlchemyError):
                logger.exception(
                    "Expiration refresh failed product=%s secretaria=%s",
                    product_id,
                    ctx.secretaria_id,
                )
        return resolved
