from collections.abc import Awaitable, Callable
from typing import Any, NoReturn, TypeAlias, TypeVar

import grpc
import pydantic
import structlog
from google.protobuf import json_format, struct_pb2
from redis.exceptions import RedisError

from gateway_service.api.schemas import (
    AuthorizeRequest,
    GetTransactionRequest,
    TransactionRequest,
    VoidRequest,
)
from gateway_service.application.services import (
    AuthorizeCommand,
    GatewayService,
    TransactionCommand,
)
from gateway_service.application.unit_of_work import UnitOfWork
from gateway_service.domain.exceptions import (
    InvalidOperationError,
    OptimisticLockError,
    TransactionNotFoundError,
    ValidationError,
)
from gateway_service.domain.models import CardDetails, Transaction
from gateway_service.infrastructure.database import Database
from gateway_service.infrastructure.idempotency import COMPLETED, IdempotencyStore
from gateway_service.infrastructure.metrics import IDEMPOTENT_REPLAYS_TOTAL


logger = structlog.get_logger()

SERVICE_NAME = "gateway.v1.GatewayService"
IDEMPOTENCY_METADATA_KEY = "idempotency-key"

ERROR_STATUS_MAP: tuple[tuple[type[Exception], grpc.StatusCode], ...] = (
    (ValidationError, grpc.StatusCode.INVALID_ARGUMENT),
    (InvalidOperationError, grpc.StatusCode.FAILED_PRECONDITION),
    (TransactionNotFoundError, grpc.StatusCode.NOT_FOUND),
    (OptimisticLockError, grpc.StatusCode.ABORTED),
    (TimeoutError, grpc.StatusCode.DEADLINE_EXCEEDED),
)

Operation: TypeAlias = Callable[[GatewayService, float | None], Awaitable[dict[str, Any]]]

M = TypeVar("M", bound=pydantic.BaseModel)


def status_for(exc: Exception) -> grpc.StatusCode | None:
    for error_type, code in ERROR_STATUS_MAP:
        if isinstance(exc, error_type):
            return code
    return None


def to_struct(data: dict[str, Any]) -> struct_pb2.Struct:
    message = struct_pb2.Struct()
    message.update(data)
    return message


def transaction_to_dict(transaction: Transaction) -> dict[str, Any]:
    return {
        "transaction_id": transaction.id,
        "status": transaction.status.value,
        "amount": transaction.current_amount,
        "currency": transaction.currency,
        "ledger": [
            {
                "sequence": entry.sequence,
                "type": entry.entry_type.value,
                "amount": entry.amount,
                "created_at": entry.created_at.isoformat(),
            }
            for entry in transaction.ledger
        ],
    }


async def _abort(context: grpc.aio.ServicerContext, code: grpc.StatusCode, details: str) -> NoReturn:
    await context.abort(code, details)
    raise AssertionError("unreachable")


class GatewayServiceHandler:
    """gRPC servicer for ``gateway.v1.GatewayService``.

    Bodies travel as ``google.protobuf.Struct`` messages and are validated with
    pydantic before reaching the gateway.
    """

    def __init__(
        self,
        database: Database,
        idempotency_store: IdempotencyStore | None = None,
        operation_timeout: float | None = None,
        blacklist: tuple[str, ...] | None = None,
    ) -> None:
        self._database = database
        self._idempotency_store = idempotency_store
        self._operation_timeout = operation_timeout
        self._blacklist = blacklist

    async def Authorize(
        self,
        request: struct_pb2.Struct,
        context: grpc.aio.ServicerContext,
    ) -> struct_pb2.Struct:
        payload = await self._parse(AuthorizeRequest, request, context)

        async def operation(service: GatewayService, timeout: float | None) -> dict[str, Any]:
            result = await service.authorize(
                AuthorizeCommand(
                    card=CardDetails(
                        card_number=payload.card_number,
                        expiry_month=payload.expiry_month,
                        expiry_year=payload.expiry_year,
                        cvv=payload.cvv,
                    ),
                    amount=payload.amount,
                    currency=payload.currency,
                ),
                timeout=timeout,
            )
            return {
                "transaction_id": result.transaction_id,
                "amount": result.amount,
                "currency": result.currency,
            }

        return await self._execute("Authorize", context, operation)

    async def Capture(
        self,
        request: struct_pb2.Struct,
        context: grpc.aio.ServicerContext,
    ) -> struct_pb2.Struct:
        payload = await self._parse(TransactionRequest, request, context)

        async def operation(service: GatewayService, timeout: float | None) -> dict[str, Any]:
            result = await service.capture(
                TransactionCommand(transaction_id=payload.transaction_id, amount=payload.amount),
                timeout=timeout,
            )
            return {"amount": result.amount, "currency": result.currency}

        return await self._execute("Capture", context, operation)

    async def Refund(
        self,
        request: struct_pb2.Struct,
        context: grpc.aio.ServicerContext,
    ) -> struct_pb2.Struct:
        payload = await self._parse(TransactionRequest, request, context)

        async def operation(service: GatewayService, timeout: float | None) -> dict[str, Any]:
            result = await service.refund(
                TransactionCommand(transaction_id=payload.transaction_id, amount=payload.amount),
                timeout=timeout,
            )
            return {"amount": result.amount, "currency": result.currency}

        return await self._execute("Refund", context, operation)

    async def Void(
        self,
        request: struct_pb2.Struct,
        context: grpc.aio.ServicerContext,
    ) -> struct_pb2.Struct:
        payload = await self._parse(VoidRequest, request, context)

        async def operation(service: GatewayService, timeout: float | None) -> dict[str, Any]:
            result = await service.cancel(
                TransactionCommand(transaction_id=payload.transaction_id),
                timeout=timeout,
            )
            return {"amount": result.amount, "currency": result.currency}

        return await self._execute("Void", context, operation)

    async def GetTransaction(
        self,
        request: struct_pb2.Struct,
        context: grpc.aio.ServicerContext,
    ) -> struct_pb2.Struct:
        payload = await self._parse(GetTransactionRequest, request, context)

        async def operation(service: GatewayService, timeout: float | None) -> dict[str, Any]:
            transaction = await service.get_transaction(payload.transaction_id, timeout=timeout)
            return transaction_to_dict(transaction)

        return await self._execute("GetTransaction", context, operation, idempotent=False)

    async def _parse(
        self,
        model: type[M],
        request: struct_pb2.Struct,
        context: grpc.aio.ServicerContext,
    ) -> M:
        try:
            return model.model_validate(json_format.MessageToDict(request))
        except pydantic.ValidationError as e:
            fields = ", ".join(".".join(str(part) for part in error["loc"]) for error in e.errors())
            await _abort(context, grpc.StatusCode.INVALID_ARGUMENT, f"Invalid request: {fields}")

    async def _execute(
        self,
        method: str,
        context: grpc.aio.ServicerContext,
        operation: Operation,
        idempotent: bool = True,
    ) -> struct_pb2.Struct:
        log = logger.bind(method=method)
        log.info("request_received")

        store = self._idempotency_store if idempotent else None
        key = self._idempotency_key(context) if store is not None else None
        if store is not None and key is not None:
            replay = await self._reserve_or_replay(store, method, key, context)
            if replay is not None:
                IDEMPOTENT_REPLAYS_TOTAL.labels(method=method).inc()
                log.info("idempotent_replay", idempotency_key=key)
                return to_struct(replay)

        committed = False
        try:
            async with self._database.session() as session:
                service = GatewayService(UnitOfWork(session), blacklist=self._blacklist)
                response = await operation(service, self._timeout_for(context))
            committed = True
        except Exception as e:
            code = status_for(e)
            if code is None:
                log.exception("request_failed")
                await _abort(context, grpc.StatusCode.INTERNAL, "Internal error")
            log.info("request_rejected", status_code=code.name, reason=str(e))
            await _abort(context, code, str(e) or "Operation timed out")
        finally:
            # Only an operation that never committed may be retried under the same key.
            if store is not None and key is not None and not committed:
                await store.release(method, key)

        if store is not None and key is not None:
            try:
                await store.complete(method, key, response)
            except (RedisError, OSError):
                log.exception("idempotency_complete_failed", idempotency_key=key)

        return to_struct(response)

    async def _reserve_or_replay(
        self,
        store: IdempotencyStore,
        method: str,
        key: str,
        context: grpc.aio.ServicerContext,
    ) -> dict[str, Any] | None:
        if await store.reserve(method, key):
            return None

        record = await store.get(method, key)
        if record is not None and record.status == COMPLETED and record.response_data is not None:
            return record.response_data

        await _abort(
            context,
            grpc.StatusCode.ABORTED,
            f"A request with idempotency key {key} is already in progress",
        )

    def _idempotency_key(self, context: grpc.aio.ServicerContext) -> str | None:
        if self._idempotency_store is None:
            return None
        for item in context.invocation_metadata() or ():
            if item.key == IDEMPOTENCY_METADATA_KEY and item.value:
                return str(item.value)
        return None

    def _timeout_for(self, context: grpc.aio.ServicerContext) -> float | None:
        remaining = context.time_remaining()
        if remaining is not None:
            return max(remaining, 0.0)
        return self._operation_timeout


def create_rpc_handler(handler: GatewayServiceHandler) -> grpc.GenericRpcHandler:
    methods = {
        "Authorize": handler.Authorize,
        "Capture": handler.Capture,
        "Refund": handler.Refund,
        "Void": handler.Void,
        "GetTransaction": handler.GetTransaction,
    }
    return grpc.method_handlers_generic_handler(
        SERVICE_NAME,
        {
            name: grpc.unary_unary_rpc_method_handler(
                behavior,
                request_deserializer=struct_pb2.Struct.FromString,
                response_serializer=struct_pb2.Struct.SerializeToString,
            )
            for name, behavior in methods.items()
        },
    )
