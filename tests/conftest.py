"""Shared pytest fixtures for gateway service tests."""

import copy
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from types import TracebackType
from typing import Self
from unittest.mock import AsyncMock, MagicMock

import grpc
import pytest

from gateway_service.application.unit_of_work import UnitOfWork
from gateway_service.domain.exceptions import OptimisticLockError
from gateway_service.domain.models import (
    CardDetails,
    LedgerEntry,
    Transaction,
    TransactionStatus,
    TransactionType,
)


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption("--integration", action="store_true", default=False, help="run tests that need Docker")
    parser.addoption("--e2e", action="store_true", default=False, help="run tests against a live server")


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    for marker in ("integration", "e2e"):
        if config.getoption(f"--{marker}"):
            continue
        skip = pytest.mark.skip(reason=f"needs --{marker} option to run")
        for item in items:
            if marker in item.keywords:
                item.add_marker(skip)


@pytest.fixture
def mock_transaction_repository() -> AsyncMock:
    """Create mock TransactionRepository."""
    repo = AsyncMock()
    repo.get = AsyncMock(return_value=None)
    repo.add = AsyncMock(side_effect=lambda transaction: transaction)
    repo.update = AsyncMock(return_value=None)
    repo.delete = AsyncMock(return_value=True)
    return repo


@pytest.fixture
def mock_ledger_repository() -> AsyncMock:
    """Create mock LedgerRepository."""
    repo = AsyncMock()
    repo.add = AsyncMock(return_value=None)
    repo.get_by_transaction_id = AsyncMock(return_value=[])
    return repo


@pytest.fixture
def mock_uow(
    mock_transaction_repository: AsyncMock,
    mock_ledger_repository: AsyncMock,
) -> AsyncMock:
    """Create mock Unit of Work with all repositories."""
    uow = AsyncMock(spec=UnitOfWork)
    uow.transactions = mock_transaction_repository
    uow.ledger = mock_ledger_repository
    uow.commit = AsyncMock(return_value=None)
    uow.rollback = AsyncMock(return_value=None)

    # Configure async context manager
    uow.__aenter__ = AsyncMock(return_value=uow)
    uow.__aexit__ = AsyncMock(return_value=None)

    return uow


@pytest.fixture
def sample_card() -> CardDetails:
    """Card that is not on the blacklist."""
    return CardDetails(
        card_number="6331 1019 9999 0016",
        expiry_month="12",
        expiry_year="2030",
        cvv="123",
    )


@pytest.fixture
def grpc_context() -> MagicMock:
    """Servicer context whose abort() raises like the real one."""
    context = MagicMock()
    context.abort = AsyncMock(side_effect=grpc.aio.AbortError())
    context.invocation_metadata = MagicMock(return_value=())
    context.time_remaining = MagicMock(return_value=None)
    return context


def create_transaction(
    authorized: int,
    status: TransactionStatus = TransactionStatus.CAN_CAPTURE,
    entries: list[tuple[TransactionType, int]] | None = None,
    current_amount: int | None = None,
    currency: str = "gbp",
    transaction_id: str = "01HTRANSACTION000000000001",
) -> Transaction:
    """Helper to build a Transaction with an Authorize entry followed by ``entries``."""
    transaction = Transaction(
        id=transaction_id,
        card_number="1234567898765432",
        expiry_month="12",
        expiry_year="2030",
        cvv="123",
        currency=currency,
        current_amount=authorized if current_amount is None else current_amount,
        status=status,
        created_at=datetime.now(UTC),
        updated_at=datetime.now(UTC),
    )
    transaction.append(TransactionType.AUTHORIZE, authorized)
    for entry_type, amount in entries or []:
        transaction.append(entry_type, amount)
    return transaction


class InMemoryStore:
    """Committed state shared by every FakeUnitOfWork built on it."""

    def __init__(self) -> None:
        self.records: dict[str, Transaction] = {}
        self.ledger_writes: list[LedgerEntry] = []


class FakeTransactionRepository:
    def __init__(self, uow: "FakeUnitOfWork") -> None:
        self._uow = uow

    async def get(self, transaction_id: str, include_ledger: bool = False) -> Transaction | None:
        record = self._uow.store.records.get(transaction_id)
        if record is None:
            return None
        loaded = copy.deepcopy(record)
        if not include_ledger:
            loaded.ledger = []
        return loaded

    async def add(self, transaction: Transaction) -> Transaction:
        self._uow.staged[transaction.id] = copy.deepcopy(transaction)
        return transaction

    async def update(self, transaction: Transaction, expected_version: int) -> None:
        current = self._uow.store.records.get(transaction.id)
        if current is None or current.version != expected_version:
            raise OptimisticLockError("Transaction", transaction.id)
        transaction.version = expected_version + 1
        self._uow.staged[transaction.id] = copy.deepcopy(transaction)

    async def delete(self, transaction_id: str) -> bool:
        return self._uow.store.records.pop(transaction_id, None) is not None


class FakeLedgerRepository:
    def __init__(self, uow: "FakeUnitOfWork") -> None:
        self._uow = uow

    async def add(self, entry: LedgerEntry) -> None:
        self._uow.staged_entries.append(entry)

    async def get_by_transaction_id(self, transaction_id: str) -> list[LedgerEntry]:
        record = self._uow.store.records.get(transaction_id)
        return list(record.ledger) if record else []


class FakeUnitOfWork:
    """Unit of work over an InMemoryStore; nothing is visible before commit()."""

    def __init__(self, store: InMemoryStore) -> None:
        self.store = store
        self.staged: dict[str, Transaction] = {}
        self.staged_entries: list[LedgerEntry] = []
        self.transactions = FakeTransactionRepository(self)
        self.ledger = FakeLedgerRepository(self)
        self.commits = 0
        self.rollbacks = 0

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            await self.rollback()

    async def commit(self) -> None:
        self.store.records.update(self.staged)
        self.store.ledger_writes.extend(self.staged_entries)
        self.staged = {}
        self.staged_entries = []
        self.commits += 1

    async def rollback(self) -> None:
        self.staged = {}
        self.staged_entries = []
        self.rollbacks += 1


class FakeDatabase:
    """Stands in for Database; sessions are plain mocks."""

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[MagicMock, None]:
        yield MagicMock()

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        return None


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def fake_uow(store: InMemoryStore) -> FakeUnitOfWork:
    return FakeUnitOfWork(store)
