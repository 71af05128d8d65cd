#!/usr/bin/env python3
"""Seed two closed sample transactions for manual testing.

One is fully refunded and one is voided, so capture/refund/void calls
against them exercise the rejection paths. Existing records are left alone.
"""
import asyncio
import sys
from datetime import UTC, datetime
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import structlog

from gateway_service.application.unit_of_work import UnitOfWork
from gateway_service.config import settings
from gateway_service.domain.models import Transaction, TransactionStatus, TransactionType
from gateway_service.infrastructure.database import Database
from gateway_service.logging import configure_logging


logger = structlog.get_logger()

REFUNDED_TRANSACTION_ID = "01HZZSEED000000000000REFND"
VOIDED_TRANSACTION_ID = "01HZZSEED0000000000000VD01"


def build_sample_transactions() -> list[Transaction]:
    now = datetime.now(UTC)
    refunded = Transaction(
        id=REFUNDED_TRANSACTION_ID,
        card_number="4000 0000 0000 0259",
        expiry_month=f"{now.month:02d}",
        expiry_year=str(now.year),
        cvv="123",
        currency="gbp",
        current_amount=10,
        status=TransactionStatus.REFUNDED,
    )
    refunded.append(TransactionType.AUTHORIZE, 10)
    refunded.append(TransactionType.CAPTURE, 10)
    refunded.append(TransactionType.REFUND, 10)

    voided = Transaction(
        id=VOIDED_TRANSACTION_ID,
        card_number="4000 0000 0000 3238",
        expiry_month=f"{now.month:02d}",
        expiry_year=str(now.year),
        cvv="123",
        currency="gbp",
        current_amount=10,
        status=TransactionStatus.VOID,
    )
    voided.append(TransactionType.AUTHORIZE, 10)
    voided.append(TransactionType.VOID, 10)

    return [refunded, voided]


async def main() -> None:
    configure_logging(level=settings.log_level, log_format="console")
    database = Database(settings.database_url)

    try:
        async with database.session() as session, UnitOfWork(session) as uow:
            for transaction in build_sample_transactions():
                if await uow.transactions.get(transaction.id) is not None:
                    logger.info("sample_transaction_exists", transaction_id=transaction.id)
                    continue
                await uow.transactions.add(transaction)
                logger.info(
                    "sample_transaction_seeded",
                    transaction_id=transaction.id,
                    status=transaction.status.value,
                )
            await uow.commit()
    finally:
        await database.close()


if __name__ == "__main__":
    asyncio.run(main())
