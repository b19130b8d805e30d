from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from typing import Sequence

from almoxarifado.app.db.models.models_v1 import Movement
from almoxarifado.app.schemas.movement import MovementFilters
from almoxarifado.services.tenancy import Page, TenantScopedStore

# plus récent d'abord, id pour départager (ordre stable => lecture idempotente)
NEWEST_FIRST = (Movement.happened_at.desc(), Movement.id.desc())


def get_movements_for_product(store: TenantScopedStore, product_id: str) -> list[Movement]:
    return store.query(Movement, Movement.product_id == product_id, order_by=NEWEST_FIRST)


def get_movements_for_products(store: TenantScopedStore, product_ids: Sequence[str]) -> list[Movement]:
    if not product_ids:
        return []
    return store.query(Movement, Movement.product_id.in_(list(product_ids)), order_by=NEWEST_FIRST)


def _filter_criteria(filters: MovementFilters) -> list:
    criteria = []
    if filters.start_date:
        start = datetime.combine(filters.start_date, time.min, tzinfo=timezone.utc)
        criteria.append(Movement.happened_at >= start)
    if filters.end_date:
        # borne de fin inclusive : toute la journée
        end = datetime.combine(filters.end_date + timedelta(days=1), time.min, tzinfo=timezone.utc)
        criteria.append(Movement.happened_at < end)
    if filters.movement_type:
        criteria.append(Movement.type == filters.movement_type)
    if filters.department:
        criteria.append(Movement.department == filters.department)
    if filters.product_type:
        criteria.append(Movement.product_type == filters.product_type)
    return criteria


def get_movements(store: TenantScopedStore, filters: MovementFilters | None = None) -> list[Movement]:
    criteria = _filter_criteria(filters or MovementFilters())
    return store.query(Movement, *criteria, order_by=NEWEST_FIRST)


def page_movements(
    store: TenantScopedStore,
    filters: MovementFilters | None = None,
    *,
    page_size: int,
    cursor: str | None = None,
) -> Page:
    criteria = _filter_criteria(filters or MovementFilters())
    return store.page(
        Movement,
        *criteria,
        sort_column=Movement.happened_at,
        descending=True,
        page_size=page_size,
        cursor=cursor,
    )
