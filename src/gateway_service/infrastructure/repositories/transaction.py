from datetime import UTC, datetime
from typing import Any, cast

from sqlalchemy import CursorResult, text
from sqlalchemy.ext.asyncio import AsyncSession

from gateway_service.domain.exceptions import OptimisticLockError
from gateway_service.domain.models import Transaction, TransactionStatus
from gateway_service.infrastructure.repositories.ledger import LedgerRepository


class TransactionRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._ledger = LedgerRepository(session)

    async def get(self, transaction_id: str, include_ledger: bool = False) -> Transaction | None:
        result = await self._session.execute(
            text("""
                SELECT id, card_number, expiry_month, expiry_year, cvv, currency,
                       current_amount, status, version, created_at, updated_at
                FROM transactions
                WHERE id = :id
            """),
            {"id": transaction_id},
        )
        row = result.fetchone()
        if not row:
            return None
        transaction = Transaction(
            id=row.id,
            card_number=row.card_number,
            expiry_month=row.expiry_month,
            expiry_year=row.expiry_year,
            cvv=row.cvv,
            currency=row.currency,
            current_amount=row.current_amount,
            status=TransactionStatus(row.status),
            version=row.version,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
        if include_ledger:
            transaction.ledger = await self._ledger.get_by_transaction_id(transaction.id)
        return transaction

    async def add(self, transaction: Transaction) -> Transaction:
        await self._session.execute(
            text("""
                INSERT INTO transactions
                    (id, card_number, expiry_month, expiry_year, cvv, currency,
                     current_amount, status, version, created_at, updated_at)
                VALUES
                    (:id, :card_number, :expiry_month, :expiry_year, :cvv, :currency,
                     :current_amount, :status, :version, :created_at, :updated_at)
            """),
            {
                "id": transaction.id,
                "card_number": transaction.card_number,
                "expiry_month": transaction.expiry_month,
                "expiry_year": transaction.expiry_year,
                "cvv": transaction.cvv,
                "currency": transaction.currency,
                "current_amount": transaction.current_amount,
                "status": transaction.status.value,
                "version": transaction.version,
                "created_at": transaction.created_at,
                "updated_at": transaction.updated_at,
            },
        )
        for entry in transaction.ledger:
            await self._ledger.add(entry)
        return transaction

    async def update(self, transaction: Transaction, expected_version: int) -> None:
        """Persist status and amount. Ledger entries are written through LedgerRepository."""
        result = cast(
            "CursorResult[Any]",
            await self._session.execute(
                text("""
                    UPDATE transactions
                    SET current_amount = :current_amount,
                        status = :status,
                        version = version + 1,
                        updated_at = :updated_at
                    WHERE id = :id AND version = :expected_version
                """),
                {
                    "id": transaction.id,
                    "current_amount": transaction.current_amount,
                    "status": transaction.status.value,
                    "expected_version": expected_version,
                    "updated_at": datetime.now(UTC),
                },
            ),
        )
        if (result.rowcount or 0) == 0:
            raise OptimisticLockError("Transaction", transaction.id)
        transaction.version = expected_version + 1

    async def delete(self, transaction_id: str) -> bool:
        await self._session.execute(
            text("DELETE FROM ledger_entries WHERE transaction_id = :id"),
            {"id": transaction_id},
        )
        result = cast(
            "CursorResult[Any]",
            await self._session.execute(
                text("DELETE FROM transactions WHERE id = :id"),
                {"id": transaction_id},
            ),
        )
        return (result.rowcount or 0) > 0
