from __future__ import annotations

import logging
from typing import Callable, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from almoxarifado.app.core.config import settings
from almoxarifado.services.errors import TransientFailure
from almoxarifado.services.tenancy import TenantContext, TenantScopedStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

# conflits côté base : serialization failure, deadlock, connexion perdue
RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (OperationalError,)


class TransactionRunner:
    """
    Unité de travail transactionnelle.

    Chaque appel ouvre une session neuve, exécute ``work`` dans une
    transaction et commit. Les erreurs métier font rollback et remontent
    telles quelles ; les conflits de la base sont rejoués jusqu'à
    ``max_attempts`` puis remontent en ``TransientFailure``.
    """

    def __init__(self, session_factory: sessionmaker, *, max_attempts: int | None = None):
        self.session_factory = session_factory
        self.max_attempts = max_attempts or settings.TX_MAX_ATTEMPTS

    def run(
        self,
        ctx: TenantContext,
        work: Callable[[TenantScopedStore], T],
        *,
        retry_on: tuple[type[BaseException], ...] = RETRYABLE_ERRORS,
    ) -> T:
        last_error: BaseException | None = None

        for attempt in range(1, self.max_attempts + 1):
            session = self.session_factory()
            try:
                with session.begin():
                    return work(TenantScopedStore(session, ctx))
            except retry_on as exc:
                last_error = exc
                logger.warning(
                    "Transaction conflict secretaria=%s attempt=%s/%s: %s",
                    ctx.secretaria_id,
                    attempt,
                    self.max_attempts,
                    exc,
                )
            finally:
                session.close()

        raise TransientFailure(
            f"Transaction aborted after {self.max_attempts} attempts"
        ) from last_error
