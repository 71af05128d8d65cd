import grpc
import structlog
from grpc_health.v1 import health, health_pb2, health_pb2_grpc
from grpc_reflection.v1alpha import reflection

from gateway_service.api.grpc_handlers import (
    SERVICE_NAME,
    GatewayServiceHandler,
    create_rpc_handler,
)
from gateway_service.api.interceptors import MetricsInterceptor
from gateway_service.infrastructure.database import Database
from gateway_service.infrastructure.idempotency import IdempotencyStore
from gateway_service.infrastructure.redis_client import RedisClient


logger = structlog.get_logger()


class GrpcServer:
    def __init__(
        self,
        database: Database,
        redis_client: RedisClient | None = None,
        idempotency_ttl_seconds: int = 86400,
        operation_timeout: float | None = None,
        blacklist: tuple[str, ...] | None = None,
    ) -> None:
        self._database = database
        self._redis_client = redis_client
        self._idempotency_ttl_seconds = idempotency_ttl_seconds
        self._operation_timeout = operation_timeout
        self._blacklist = blacklist
        self._server: grpc.aio.Server | None = None
        self._health_servicer = health.aio.HealthServicer()

    def _build_handler(self) -> GatewayServiceHandler:
        idempotency_store: IdempotencyStore | None = None
        if self._redis_client is not None:
            idempotency_store = IdempotencyStore(
                self._redis_client.client,
                ttl_seconds=self._idempotency_ttl_seconds,
            )
            logger.info("idempotency_keys_enabled", ttl_seconds=self._idempotency_ttl_seconds)

        return GatewayServiceHandler(
            self._database,
            idempotency_store=idempotency_store,
            operation_timeout=self._operation_timeout,
            blacklist=self._blacklist,
        )

    async def start(self, port: int = 50051) -> int:
        self._server = grpc.aio.server(interceptors=[MetricsInterceptor()])
        self._server.add_generic_rpc_handlers((create_rpc_handler(self._build_handler()),))

        health_pb2_grpc.add_HealthServicer_to_server(self._health_servicer, self._server)

        service_names = (
            SERVICE_NAME,
            health_pb2.DESCRIPTOR.services_by_name["Health"].full_name,
            reflection.SERVICE_NAME,
        )
        reflection.enable_server_reflection(service_names, self._server)

        bound_port = self._server.add_insecure_port(f"[::]:{port}")

        await self._server.start()
        await self._health_servicer.set("", health_pb2.HealthCheckResponse.SERVING)
        await self._health_servicer.set(SERVICE_NAME, health_pb2.HealthCheckResponse.SERVING)

        logger.info("grpc_server_started", port=bound_port)
        return bound_port

    async def wait_for_termination(self) -> None:
        if self._server:
            await self._server.wait_for_termination()

    async def stop(self, grace: float = 10.0) -> None:
        if self._server:
            await self._health_servicer.set("", health_pb2.HealthCheckResponse.NOT_SERVING)
            await self._server.stop(grace)
            logger.info("grpc_server_stopped")
