import asyncio
from collections.abc import Iterable
from dataclasses import dataclass

import structlog

from gateway_service.application.unit_of_work import UnitOfWork
from gateway_service.config import settings
from gateway_service.domain.exceptions import (
    InvalidOperationError,
    TransactionNotFoundError,
    ValidationError,
)
from gateway_service.domain.models import (
    AuthorizeResult,
    CardDetails,
    LedgerEntry,
    PaymentResult,
    Transaction,
    TransactionStatus,
    TransactionType,
    aggregate_amount,
)
from gateway_service.infrastructure.metrics import track_operation


logger = structlog.get_logger()

CLOSED_STATUSES = frozenset({TransactionStatus.REFUNDED, TransactionStatus.VOID})


@dataclass
class AuthorizeCommand:
    card: CardDetails
    amount: int
    currency: str


@dataclass
class TransactionCommand:
    transaction_id: str
    amount: int = 0


def normalize_card_number(card_number: str) -> str:
    return "".join(ch for ch in card_number if ch not in " -")


class GatewayService:
    """Authorize, capture, refund and void card transactions.

    Every operation is a single read-modify-write on one transaction inside one
    unit of work. Nothing is committed unless the whole operation succeeds, so
    a rejected, failed, timed out or cancelled call leaves the stored record
    untouched.

    ``current_amount`` is always recomputed from the ledger aggregates rather
    than adjusted by deltas.
    """

    def __init__(self, uow: UnitOfWork, blacklist: Iterable[str] | None = None) -> None:
        self.uow = uow
        entries = settings.card_blacklist if blacklist is None else blacklist
        self._blacklist = frozenset(number for number in map(normalize_card_number, entries) if number)

    def is_blacklisted(self, card_number: str) -> bool:
        candidate = normalize_card_number(card_number)
        return any(number in candidate for number in self._blacklist)

    @track_operation("authorize")
    async def authorize(self, cmd: AuthorizeCommand, timeout: float | None = None) -> AuthorizeResult:
        log = logger.bind(
            operation="authorize",
            card_last4=cmd.card.card_number[-4:],
            amount=cmd.amount,
            currency=cmd.currency,
        )
        _check_amount(cmd.amount)

        if self.is_blacklisted(cmd.card.card_number):
            log.info("authorize_rejected", reason="CARD_BLACKLISTED")
            raise ValidationError("Authorization failed, card is blacklisted")

        async with asyncio.timeout(timeout), self.uow:
            transaction = Transaction.create(cmd.card, cmd.amount, cmd.currency)
            await self.uow.transactions.add(transaction)
            await self.uow.commit()

        log.info(
            "transaction_authorized",
            transaction_id=transaction.id,
            status=transaction.status.value,
        )
        return AuthorizeResult(
            transaction_id=transaction.id,
            amount=cmd.amount,
            currency=transaction.currency,
        )

    @track_operation("capture")
    async def capture(self, cmd: TransactionCommand, timeout: float | None = None) -> PaymentResult:
        log = logger.bind(operation="capture", transaction_id=cmd.transaction_id, amount=cmd.amount)
        _check_amount(cmd.amount)

        async with asyncio.timeout(timeout), self.uow:
            transaction = await self._load(cmd.transaction_id)

            if transaction.status in CLOSED_STATUSES:
                log.info("capture_rejected", status=transaction.status.value)
                raise ValidationError("transaction cannot be captured anymore")

            authorized = aggregate_amount(transaction, TransactionType.AUTHORIZE)
            prior_captured = aggregate_amount(transaction, TransactionType.CAPTURE)

            # Over-capture is not rejected here; the status gate is the only guard.
            transaction.status = TransactionStatus.CAN_REFUND
            transaction.current_amount = authorized - (prior_captured + cmd.amount)
            entry = transaction.append(TransactionType.CAPTURE, cmd.amount)

            await self._persist(transaction, entry)

        log.info(
            "transaction_captured",
            authorized=authorized,
            captured=prior_captured + cmd.amount,
            current_amount=transaction.current_amount,
        )
        return PaymentResult(amount=transaction.current_amount, currency=transaction.currency)

    @track_operation("refund")
    async def refund(self, cmd: TransactionCommand, timeout: float | None = None) -> PaymentResult:
        log = logger.bind(operation="refund", transaction_id=cmd.transaction_id, amount=cmd.amount)
        _check_amount(cmd.amount)

        async with asyncio.timeout(timeout), self.uow:
            transaction = await self._load(cmd.transaction_id)

            if transaction.status in CLOSED_STATUSES:
                log.info("refund_rejected", status=transaction.status.value)
                raise ValidationError("cannot refund anymore")

            authorized = aggregate_amount(transaction, TransactionType.AUTHORIZE)
            captured = aggregate_amount(transaction, TransactionType.CAPTURE)
            prior_refunded = aggregate_amount(transaction, TransactionType.REFUND)
            refunded = prior_refunded + cmd.amount

            if refunded > captured:
                log.info("refund_rejected", captured=captured, refunded=refunded)
                raise ValidationError("Invalid refund request, refund amount exceeds capture amount")

            if refunded == captured:
                transaction.status = TransactionStatus.REFUNDED

            transaction.current_amount = (authorized - captured) + prior_refunded + cmd.amount
            entry = transaction.append(TransactionType.REFUND, cmd.amount)

            await self._persist(transaction, entry)

        log.info(
            "transaction_refunded",
            captured=captured,
            refunded=refunded,
            status=transaction.status.value,
            current_amount=transaction.current_amount,
        )
        return PaymentResult(amount=transaction.current_amount, currency=transaction.currency)

    @track_operation("cancel")
    async def cancel(self, cmd: TransactionCommand, timeout: float | None = None) -> PaymentResult:
        log = logger.bind(operation="cancel", transaction_id=cmd.transaction_id)

        async with asyncio.timeout(timeout), self.uow:
            transaction = await self._load(cmd.transaction_id)

            if transaction.status == TransactionStatus.VOID:
                log.info("cancel_rejected", status=transaction.status.value)
                raise InvalidOperationError("cannot cancel a cancelled transaction")

            # Full rollback to the authorized amount, whatever happened before.
            transaction.current_amount = aggregate_amount(transaction, TransactionType.AUTHORIZE)
            transaction.status = TransactionStatus.VOID
            entry = transaction.append(TransactionType.VOID, transaction.current_amount)

            await self._persist(transaction, entry)

        log.info("transaction_voided", current_amount=transaction.current_amount)
        return PaymentResult(amount=transaction.current_amount, currency=transaction.currency)

    async def get_transaction(
        self,
        transaction_id: str,
        include_ledger: bool = True,
        timeout: float | None = None,
    ) -> Transaction:
        async with asyncio.timeout(timeout), self.uow:
            transaction = await self.uow.transactions.get(transaction_id, include_ledger=include_ledger)
        if transaction is None:
            raise TransactionNotFoundError(transaction_id)
        logger.info(
            "get_transaction",
            transaction_id=transaction.id,
            status=transaction.status.value,
            entries=len(transaction.ledger),
        )
        return transaction

    async def _load(self, transaction_id: str) -> Transaction:
        transaction = await self.uow.transactions.get(transaction_id, include_ledger=True)
        if transaction is None:
            logger.info("transaction_not_found", transaction_id=transaction_id)
            raise TransactionNotFoundError(transaction_id)
        return transaction

    async def _persist(self, transaction: Transaction, entry: LedgerEntry) -> None:
        await self.uow.transactions.update(transaction, expected_version=transaction.version)
        await self.uow.ledger.add(entry)
        await self.uow.commit()


def _check_amount(amount: int) -> None:
    if amount < 0:
        raise ValidationError("Amount cannot be negative")
