#!/usr/bin/env python3
"""Walk one card through authorize, capture, refund and void against a running server."""
import asyncio
import sys
from pathlib import Path
from uuid import uuid4

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import grpc
import structlog

from gateway_service.api.client import GatewayClient
from gateway_service.logging import configure_logging


logger = structlog.get_logger()


async def main(target: str = "localhost:50051") -> None:
    configure_logging(log_format="console")

    async with grpc.aio.insecure_channel(target) as channel:
        client = GatewayClient(channel)

        authorized = await client.authorize(
            card_number="4111 1111 1111 1111",
            expiry_month="12",
            expiry_year="2030",
            cvv="123",
            amount=15,
            currency="gbp",
        )
        transaction_id = authorized["transaction_id"]
        logger.info("authorized", **authorized)

        captured = await client.capture(transaction_id, 8, idempotency_key=str(uuid4()))
        logger.info("captured", transaction_id=transaction_id, **captured)

        refunded = await client.refund(transaction_id, 3, idempotency_key=str(uuid4()))
        logger.info("refunded", transaction_id=transaction_id, **refunded)

        voided = await client.void(transaction_id)
        logger.info("voided", transaction_id=transaction_id, **voided)

        try:
            await client.void(transaction_id)
        except grpc.aio.AioRpcError as e:
            logger.info("second_void_rejected", code=e.code().name, details=e.details())

        details = await client.get_transaction(transaction_id)
        logger.info("ledger", transaction_id=transaction_id, entries=details["ledger"])


if __name__ == "__main__":
    asyncio.run(main(*sys.argv[1:2]))
