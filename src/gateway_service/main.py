import asyncio
import signal

import structlog

from gateway_service.api.metrics_server import MetricsServer
from gateway_service.config import settings
from gateway_service.grpc_server import GrpcServer
from gateway_service.infrastructure.database import Database
from gateway_service.infrastructure.redis_client import RedisClient
from gateway_service.logging import configure_logging


logger = structlog.get_logger()


async def serve() -> None:
    configure_logging(
        level=settings.log_level,
        log_format=settings.log_format,
    )

    logger.info(
        "starting_gateway_service",
        grpc_port=settings.grpc_port,
        metrics_port=settings.metrics_port,
        log_level=settings.log_level,
        idempotency_enabled=settings.idempotency_enabled,
        metrics_enabled=settings.metrics_enabled,
    )

    database = Database(settings.database_url)

    redis_client: RedisClient | None = None
    if settings.idempotency_enabled:
        redis_client = RedisClient(settings.redis_url)
        await redis_client.connect()

    metrics_server: MetricsServer | None = None
    if settings.metrics_enabled:
        metrics_server = MetricsServer(
            host=settings.metrics_host,
            port=settings.metrics_port,
            database=database,
        )
        await metrics_server.start()

    server = GrpcServer(
        database=database,
        redis_client=redis_client,
        idempotency_ttl_seconds=settings.idempotency_ttl_seconds,
        operation_timeout=settings.operation_timeout_seconds,
        blacklist=settings.card_blacklist,
    )

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown_event.set)

    await server.start(port=settings.grpc_port)
    try:
        await shutdown_event.wait()
    finally:
        logger.info("shutting_down")
        await server.stop()
        if metrics_server:
            await metrics_server.stop()
        if redis_client:
            await redis_client.close()
        await database.close()


def main() -> None:
    asyncio.run(serve())


if __name__ == "__main__":
    main()
