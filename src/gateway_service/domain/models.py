from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from ulid import ULID


class TransactionStatus(Enum):
    CAN_CAPTURE = "CAN_CAPTURE"
    CAN_REFUND = "CAN_REFUND"
    REFUNDED = "REFUNDED"
    VOID = "VOID"


class TransactionType(Enum):
    AUTHORIZE = "AUTHORIZE"
    CAPTURE = "CAPTURE"
    REFUND = "REFUND"
    VOID = "VOID"


@dataclass(frozen=True)
class CardDetails:
    card_number: str
    expiry_month: str
    expiry_year: str
    cvv: str


@dataclass(frozen=True)
class LedgerEntry:
    id: str
    transaction_id: str
    entry_type: TransactionType
    amount: int
    sequence: int
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def create(
        cls,
        transaction_id: str,
        entry_type: TransactionType,
        amount: int,
        sequence: int,
    ) -> "LedgerEntry":
        return cls(
            id=str(ULID()),
            transaction_id=transaction_id,
            entry_type=entry_type,
            amount=amount,
            sequence=sequence,
        )


@dataclass
class Transaction:
    id: str
    card_number: str
    expiry_month: str
    expiry_year: str
    cvv: str
    currency: str
    current_amount: int
    status: TransactionStatus
    ledger: list[LedgerEntry] = field(default_factory=list)
    version: int = 1
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def create(cls, card: CardDetails, amount: int, currency: str) -> "Transaction":
        transaction = cls(
            id=str(ULID()),
            card_number=card.card_number,
            expiry_month=card.expiry_month,
            expiry_year=card.expiry_year,
            cvv=card.cvv,
            currency=currency,
            current_amount=amount,
            status=TransactionStatus.CAN_CAPTURE,
        )
        transaction.append(TransactionType.AUTHORIZE, amount)
        return transaction

    def append(self, entry_type: TransactionType, amount: int) -> LedgerEntry:
        """Record a movement at the end of the ledger and return it."""
        entry = LedgerEntry.create(
            transaction_id=self.id,
            entry_type=entry_type,
            amount=amount,
            sequence=len(self.ledger) + 1,
        )
        self.ledger.append(entry)
        self.updated_at = entry.created_at
        return entry


def aggregate_amount(transaction: Transaction, entry_type: TransactionType) -> int:
    """Sum the amounts of every ledger entry of ``entry_type``."""
    return sum(entry.amount for entry in transaction.ledger if entry.entry_type == entry_type)


@dataclass(frozen=True)
class PaymentResult:
    amount: int
    currency: str


@dataclass(frozen=True)
class AuthorizeResult:
    transaction_id: str
    amount: int
    currency: str

    @property
    def payment(self) -> PaymentResult:
        return PaymentResult(amount=self.amount, currency=self.currency)


@dataclass
class IdempotencyRecord:
    key: str
    status: str
    response_data: dict[str, Any] | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
