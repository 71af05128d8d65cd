"""Domain layer - business entities and rules."""

from gateway_service.domain.exceptions import (
    DomainError,
    InvalidOperationError,
    OptimisticLockError,
    TransactionNotFoundError,
    ValidationError,
)
from gateway_service.domain.models import (
    AuthorizeResult,
    CardDetails,
    IdempotencyRecord,
    LedgerEntry,
    PaymentResult,
    Transaction,
    TransactionStatus,
    TransactionType,
    aggregate_amount,
)


__all__ = [
    "AuthorizeResult",
    "CardDetails",
    "DomainError",
    "IdempotencyRecord",
    "InvalidOperationError",
    "LedgerEntry",
    "OptimisticLockError",
    "PaymentResult",
    "Transaction",
    "TransactionNotFoundError",
    "TransactionStatus",
    "TransactionType",
    "ValidationError",
    "aggregate_amount",
]
