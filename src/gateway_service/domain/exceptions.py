class DomainError(Exception):
    """Base exception for domain errors."""


class ValidationError(DomainError):
    """Raised when a request breaks a business rule (blacklisted card, forbidden status, over-refund)."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidOperationError(DomainError):
    """Raised when an operation makes no sense for the transaction, e.g. voiding it twice."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class TransactionNotFoundError(DomainError):
    """Raised when a transaction cannot be found."""

    def __init__(self, transaction_id: str) -> None:
        self.transaction_id = transaction_id
        super().__init__(f"Transaction {transaction_id} not found")


class OptimisticLockError(DomainError):
    """Raised when optimistic locking conflict occurs."""

    def __init__(self, entity: str, entity_id: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"Optimistic lock failed for {entity} {entity_id}")
