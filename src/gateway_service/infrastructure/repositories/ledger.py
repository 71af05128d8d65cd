from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from gateway_service.domain.models import LedgerEntry, TransactionType


class LedgerRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, entry: LedgerEntry) -> None:
        await self._session.execute(
            text("""
                INSERT INTO ledger_entries
                    (id, transaction_id, entry_type, amount, sequence, created_at)
                VALUES
                    (:id, :transaction_id, :entry_type, :amount, :sequence, :created_at)
            """),
            {
                "id": entry.id,
                "transaction_id": entry.transaction_id,
                "entry_type": entry.entry_type.value,
                "amount": entry.amount,
                "sequence": entry.sequence,
                "created_at": entry.created_at,
            },
        )

    async def get_by_transaction_id(self, transaction_id: str) -> list[LedgerEntry]:
        result = await self._session.execute(
            text("""
                SELECT id, transaction_id, entry_type, amount, sequence, created_at
                FROM ledger_entries
                WHERE transaction_id = :transaction_id
                ORDER BY sequence
            """),
            {"transaction_id": transaction_id},
        )
        return [
            LedgerEntry(
                id=row.id,
                transaction_id=row.transaction_id,
                entry_type=TransactionType(row.entry_type),
                amount=row.amount,
                sequence=row.sequence,
                created_at=row.created_at,
            )
            for row in result.fetchall()
        ]
