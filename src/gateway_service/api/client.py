from typing import Any

import grpc
from google.protobuf import json_format, struct_pb2

from gateway_service.api.grpc_handlers import IDEMPOTENCY_METADATA_KEY, SERVICE_NAME, to_struct


class GatewayClient:
    """Thin async client for ``gateway.v1.GatewayService``.

    Numbers come back as floats because the bodies are protobuf ``Struct``
    messages; ``amount`` is converted back to ``int``.
    """

    def __init__(self, channel: grpc.aio.Channel) -> None:
        self._channel = channel

    async def _call(
        self,
        method: str,
        payload: dict[str, Any],
        idempotency_key: str | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        callable_ = self._channel.unary_unary(
            f"/{SERVICE_NAME}/{method}",
            request_serializer=struct_pb2.Struct.SerializeToString,
            response_deserializer=struct_pb2.Struct.FromString,
        )
        metadata = ((IDEMPOTENCY_METADATA_KEY, idempotency_key),) if idempotency_key else None
        response = await callable_(to_struct(payload), metadata=metadata, timeout=timeout)
        data = json_format.MessageToDict(response)
        if "amount" in data:
            data["amount"] = int(data["amount"])
        return data

    async def authorize(
        self,
        card_number: str,
        expiry_month: str,
        expiry_year: str,
        cvv: str,
        amount: int,
        currency: str,
        **kwargs: Any,
    ) -> dict[str, Any]:
        return await self._call(
            "Authorize",
            {
                "card_number": card_number,
                "expiry_month": expiry_month,
                "expiry_year": expiry_year,
                "cvv": cvv,
                "amount": amount,
                "currency": currency,
            },
            **kwargs,
        )

    async def capture(self, transaction_id: str, amount: int, **kwargs: Any) -> dict[str, Any]:
        return await self._call("Capture", {"transaction_id": transaction_id, "amount": amount}, **kwargs)

    async def refund(self, transaction_id: str, amount: int, **kwargs: Any) -> dict[str, Any]:
        return await self._call("Refund", {"transaction_id": transaction_id, "amount": amount}, **kwargs)

    async def void(self, transaction_id: str, **kwargs: Any) -> dict[str, Any]:
        return await self._call("Void", {"transaction_id": transaction_id}, **kwargs)

    async def get_transaction(self, transaction_id: str, **kwargs: Any) -> dict[str, Any]:
        return await self._call("GetTransaction", {"transaction_id": transaction_id}, **kwargs)
