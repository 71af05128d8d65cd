"""Repository implementations."""

from gateway_service.infrastructure.repositories.ledger import LedgerRepository
from gateway_service.infrastructure.repositories.transaction import TransactionRepository


__all__ = [
    "LedgerRepository",
    "TransactionRepository",
]
