from types import TracebackType
from typing import Self

from sqlalchemy.ext.asyncio import AsyncSession

from gateway_service.infrastructure.repositories import LedgerRepository, TransactionRepository


class UnitOfWork:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self.transactions = TransactionRepository(session)
        self.ledger = LedgerRepository(session)

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        # Covers cancellation too: nothing reaches the database unless commit() ran.
        if exc_type is not None:
            await self.rollback()

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()
