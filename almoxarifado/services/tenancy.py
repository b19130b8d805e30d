"""
Accès aux données toujours filtré par secretaria.

``TenantScopedStore`` est le seul point d'accès aux tables : chaque lecture
est ANDée avec ``secretaria_id == ctx.secretaria_id`` et chaque écriture
vérifie le propriétaire avant d'agir. Aucun appelant ne peut oublier le filtre.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from almoxarifado.app.db.models.core_types import Role
from almoxarifado.services.errors import Forbidden, NotFound, ValidationError


@dataclass(frozen=True)
class TenantContext:
    secretaria_id: str
    principal_id: str
    principal_email: str | None = None
    role: Role | None = None

    def __post_init__(self) -> None:
        if not self.secretaria_id or not self.secretaria_id.strip():
            raise ValidationError("secretaria_id is required")
        if not self.principal_id or not self.principal_id.strip():
            raise ValidationError("principal_id is required")

    @property
    def actor(self) -> str:
        return self.principal_email or self.principal_id


@dataclass
class Page:
    items: list[Any] = field(default_factory=list)
    next_cursor: str | None = None


# ---------- Curseurs opaques ----------
def encode_cursor(sort_value: Any, entity_id: str) -> str:
    if isinstance(sort_value, datetime):
        payload = {"t": "dt", "v": sort_value.isoformat(), "id": entity_id}
    else:
        payload = {"t": "s", "v": sort_value, "id": entity_id}
    raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_cursor(cursor: str) -> tuple[Any, str]:
    try:
        payload = json.loads(base64.urlsafe_b64decode(cursor.encode("ascii")))
        value = payload["v"]
        if payload["t"] == "dt":
            value = datetime.fromisoformat(value)
        return value, str(payload["id"])
    except (ValueError, KeyError, TypeError, binascii.Error):
        raise ValidationError("Invalid pagination cursor") from None


class TenantScopedStore:
    def __init__(self, session: Session, ctx: TenantContext):
        self.session = session
        self.ctx = ctx

    @property
    def secretaria_id(self) -> str:
        return self.ctx.secretaria_id

    def _scoped(self, model):
        return select(model).where(model.secretaria_id == self.ctx.secretaria_id)

    # ---------- Lectures ----------
    def get(self, model, entity_id: str, *, for_update: bool = False):
        """
        Retourne l'entité ou lève NotFound.

        Absent et "appartient à une autre secretaria" donnent la même erreur,
        pour ne rien révéler des autres tenants.
        """
        stmt = self._scoped(model).where(model.id == entity_id)
        if for_update:
            stmt = stmt.with_for_update()
        row = self.session.execute(stmt).scalar_one_or_none()
        if row is None:
            raise NotFound(f"{model.__name__} {entity_id} not found")
        return row

    def get_many_for_update(self, model, entity_ids: Iterable[str]) -> dict[str, Any]:
        # verrous pris dans un ordre stable (évite les deadlocks entre sorties concurrentes)
        rows = {}
        for entity_id in sorted(set(entity_ids)):
            rows[entity_id] = self.get(model, entity_id, for_update=True)
        return rows

    def query(self, model, *criteria, order_by: Iterable[Any] = (), limit: int | None = None) -> list[Any]:
        stmt = self._scoped(model).where(*criteria).order_by(*order_by)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.session.execute(stmt).scalars().all())

    def page(
        self,
        model,
        *criteria,
        sort_column,
        descending: bool = False,
        page_size: int,
        cursor: str | None = None,
    ) -> Page:
        """Pagination keyset sur (sort_column, id)."""
        if page_size < 1:
            raise ValidationError("page_size must be >= 1")

        stmt = self._scoped(model).where(*criteria)
        if cursor:
            last_value, last_id = decode_cursor(cursor)
            if descending:
                stmt = stmt.where(
                    or_(sort_column < last_value, and_(sort_column == last_value, model.id < last_id))
                )
            else:
                stmt = stmt.where(
                    or_(sort_column > last_value, and_(sort_column == last_value, model.id > last_id))
                )

        if descending:
            stmt = stmt.order_by(sort_column.desc(), model.id.desc())
        else:
            stmt = stmt.order_by(sort_column.asc(), model.id.asc())

        rows = list(self.session.execute(stmt.limit(page_size + 1)).scalars().all())
        next_cursor = None
        if len(rows) > page_size:
            rows = rows[:page_size]
            last = rows[-1]
            next_cursor = encode_cursor(getattr(last, sort_column.key), last.id)
        return Page(items=rows, next_cursor=next_cursor)

    # ---------- Écritures ----------
    def create(self, entity):
        owner = getattr(entity, "secretaria_id", None)
        if owner is None:
            entity.secretaria_id = self.ctx.secretaria_id
        elif owner != self.ctx.secretaria_id:
            raise Forbidden(f"Cannot create {type(entity).__name__} for another secretaria")
        self.session.add(entity)
        self.session.flush()
        return entity

    def _owned(self, model, entity_id: str):
        row = self.session.get(model, entity_id)
        if row is None:
            raise NotFound(f"{model.__name__} {entity_id} not found")
        if row.secretaria_id != self.ctx.secretaria_id:
            raise Forbidden(f"{model.__name__} {entity_id} belongs to another secretaria")
        return row

    def update(self, model, entity_id: str, patch: dict[str, Any]):
        row = self._owned(model, entity_id)
        for key, value in patch.items():
            if key in ("id", "secretaria_id"):
                if getattr(row, key) != value:
                    raise Forbidden(f"Cannot change {key} of {model.__name__}")
                continue
            if not hasattr(model, key):
                raise ValidationError(f"Unknown field {key} for {model.__name__}")
            setattr(row, key, value)
        self.session.flush()
        return row

    def delete(self, model, entity_id: str) -> None:
        row = self._owned(model, entity_id)
        self.session.delete(row)
        self.session.flush()
