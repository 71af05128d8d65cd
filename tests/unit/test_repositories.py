"""Unit tests for repositories and UnitOfWork with a mocked AsyncSession."""

import asyncio
from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from gateway_service.application.unit_of_work import UnitOfWork
from gateway_service.domain.exceptions import OptimisticLockError
from gateway_service.domain.models import TransactionStatus, TransactionType
from gateway_service.infrastructure.repositories import LedgerRepository, TransactionRepository
from tests.conftest import create_transaction


def make_result(rows: list[SimpleNamespace] | None = None, rowcount: int = 1) -> MagicMock:
    result = MagicMock()
    rows = rows or []
    result.fetchone.return_value = rows[0] if rows else None
    result.fetchall.return_value = rows
    result.rowcount = rowcount
    return result


def transaction_row(**overrides: object) -> SimpleNamespace:
    row = {
        "id": "01HTRANSACTION000000000001",
        "card_number": "1234567898765432",
        "expiry_month": "12",
        "expiry_year": "2030",
        "cvv": "123",
        "currency": "gbp",
        "current_amount": 7,
        "status": "CAN_REFUND",
        "version": 3,
        "created_at": datetime.now(UTC),
        "updated_at": datetime.now(UTC),
    }
    row.update(overrides)
    return SimpleNamespace(**row)


def ledger_row(sequence: int, entry_type: str, amount: int) -> SimpleNamespace:
    return SimpleNamespace(
        id=f"01HENTRY00000000000000000{sequence}",
        transaction_id="01HTRANSACTION000000000001",
        entry_type=entry_type,
        amount=amount,
        sequence=sequence,
        created_at=datetime.now(UTC),
    )


@pytest.fixture
def session() -> AsyncMock:
    session = AsyncMock()
    session.execute = AsyncMock(return_value=make_result())
    return session


class TestTransactionRepository:
    @pytest.mark.asyncio
    async def test_get_returns_none_when_missing(self, session: AsyncMock) -> None:
        session.execute.return_value = make_result([])

        assert await TransactionRepository(session).get("missing") is None

    @pytest.mark.asyncio
    async def test_get_maps_row_without_ledger(self, session: AsyncMock) -> None:
        session.execute.return_value = make_result([transaction_row()])

        transaction = await TransactionRepository(session).get("01HTRANSACTION000000000001")

        assert transaction is not None
        assert transaction.status == TransactionStatus.CAN_REFUND
        assert transaction.current_amount == 7
        assert transaction.version == 3
        assert transaction.ledger == []
        session.execute.assert_called_once()

    @pytest.mark.asyncio
    async def test_get_with_ledger_loads_entries_in_order(self, session: AsyncMock) -> None:
        session.execute.side_effect = [
            make_result([transaction_row()]),
            make_result([ledger_row(1, "AUTHORIZE", 15), ledger_row(2, "CAPTURE", 8)]),
        ]

        transaction = await TransactionRepository(session).get("01HTRANSACTION000000000001", include_ledger=True)

        assert transaction is not None
        assert [(e.entry_type, e.amount, e.sequence) for e in transaction.ledger] == [
            (TransactionType.AUTHORIZE, 15, 1),
            (TransactionType.CAPTURE, 8, 2),
        ]
        ledger_sql = str(session.execute.call_args_list[1][0][0])
        assert "ORDER BY sequence" in ledger_sql

    @pytest.mark.asyncio
    async def test_add_inserts_transaction_and_ledger(self, session: AsyncMock) -> None:
        transaction = create_transaction(15, entries=[(TransactionType.CAPTURE, 5)])

        returned = await TransactionRepository(session).add(transaction)

        assert returned is transaction
        assert session.execute.call_count == 3
        params = session.execute.call_args_list[0][0][1]
        assert params["id"] == transaction.id
        assert params["status"] == "CAN_CAPTURE"
        assert params["current_amount"] == 15
        entry_params = [call[0][1] for call in session.execute.call_args_list[1:]]
        assert [p["entry_type"] for p in entry_params] == ["AUTHORIZE", "CAPTURE"]
        assert [p["sequence"] for p in entry_params] == [1, 2]

    @pytest.mark.asyncio
    async def test_update_checks_version_and_bumps_it(self, session: AsyncMock) -> None:
        transaction = create_transaction(15, status=TransactionStatus.CAN_REFUND, current_amount=7)
        session.execute.return_value = make_result(rowcount=1)

        await TransactionRepository(session).update(transaction, expected_version=1)

        params = session.execute.call_args[0][1]
        assert params["expected_version"] == 1
        assert params["status"] == "CAN_REFUND"
        assert params["current_amount"] == 7
        assert transaction.version == 2

    @pytest.mark.asyncio
    async def test_update_raises_on_version_conflict(self, session: AsyncMock) -> None:
        transaction = create_transaction(15)
        session.execute.return_value = make_result(rowcount=0)

        with pytest.raises(OptimisticLockError):
            await TransactionRepository(session).update(transaction, expected_version=1)

        assert transaction.version == 1

    @pytest.mark.asyncio
    async def test_delete_removes_ledger_then_transaction(self, session: AsyncMock) -> None:
        session.execute.side_effect = [make_result(rowcount=2), make_result(rowcount=1)]

        deleted = await TransactionRepository(session).delete("tx-1")

        assert deleted is True
        statements = [str(call[0][0]) for call in session.execute.call_args_list]
        assert "ledger_entries" in statements[0]
        assert "transactions" in statements[1]

    @pytest.mark.asyncio
    async def test_delete_missing_returns_false(self, session: AsyncMock) -> None:
        session.execute.side_effect = [make_result(rowcount=0), make_result(rowcount=0)]

        assert await TransactionRepository(session).delete("missing") is False


class TestLedgerRepository:
    @pytest.mark.asyncio
    async def test_add_passes_entry_fields(self, session: AsyncMock) -> None:
        entry = create_transaction(15).ledger[0]

        await LedgerRepository(session).add(entry)

        params = session.execute.call_args[0][1]
        assert params == {
            "id": entry.id,
            "transaction_id": entry.transaction_id,
            "entry_type": "AUTHORIZE",
            "amount": 15,
            "sequence": 1,
            "created_at": entry.created_at,
        }

    @pytest.mark.asyncio
    async def test_get_by_transaction_id_empty(self, session: AsyncMock) -> None:
        session.execute.return_value = make_result([])

        assert await LedgerRepository(session).get_by_transaction_id("tx-1") == []


class TestUnitOfWork:
    @pytest.mark.asyncio
    async def test_exposes_repositories(self, session: AsyncMock) -> None:
        uow = UnitOfWork(session)

        assert isinstance(uow.transactions, TransactionRepository)
        assert isinstance(uow.ledger, LedgerRepository)

    @pytest.mark.asyncio
    async def test_commit_delegates_to_session(self, session: AsyncMock) -> None:
        async with UnitOfWork(session) as uow:
            await uow.commit()

        session.commit.assert_awaited_once()
        session.rollback.assert_not_called()

    @pytest.mark.asyncio
    async def test_rolls_back_on_error(self, session: AsyncMock) -> None:
        with pytest.raises(ValueError):
            async with UnitOfWork(session):
                raise ValueError("boom")

        session.rollback.assert_awaited_once()
        session.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_rolls_back_on_cancellation(self, session: AsyncMock) -> None:
        with pytest.raises(asyncio.CancelledError):
            async with UnitOfWork(session):
                raise asyncio.CancelledError

        session.rollback.assert_awaited_once()
