"""
Erreurs métier du ledger.

Les services lèvent ces exceptions telles quelles ; seule la couche API
les traduit en réponses HTTP (voir ``status_code``).
"""

from __future__ import annotations


class LedgerError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(LedgerError):
    """Entité absente OU appartenant à une autre secretaria (indiscernable)."""

    status_code = 404


class Forbidden(LedgerError):
    status_code = 403


class InsufficientStock(LedgerError):
    status_code = 409

    def __init__(self, *, product_id: str, product_name: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for {product_name} (available={available}, requested={requested})"
        )
        self.product_id = product_id
        self.product_name = product_name
        self.available = available
        self.requested = requested


class InvalidRequestState(LedgerError):
    status_code = 409


class ValidationError(LedgerError):
    status_code = 422


class TransientFailure(LedgerError):
    """Conflits de transaction non résolus après toutes les tentatives."""

    status_code = 503
