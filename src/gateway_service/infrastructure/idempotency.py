"""Idempotency keys for retried gRPC calls.

Capture, refund and void append a ledger entry on every call, so a blind retry
would apply the movement twice. Clients that need safe retries send an
``idempotency-key`` metadata entry; the transport reserves the key before
calling the gateway and replays the stored response for later duplicates.
The gateway itself never sees the key.
"""

import json
from datetime import UTC, datetime
from typing import Any

import redis.asyncio as redis
import structlog

from gateway_service.domain.models import IdempotencyRecord


logger = structlog.get_logger()

PENDING = "PENDING"
COMPLETED = "COMPLETED"


class IdempotencyStore:
    def __init__(
        self,
        redis_client: redis.Redis,
        ttl_seconds: int = 86400,
        key_prefix: str = "idempotency",
    ) -> None:
        self._redis = redis_client
        self._ttl_seconds = ttl_seconds
        self._key_prefix = key_prefix

    def _key(self, scope: str, key: str) -> str:
        return f"{self._key_prefix}:{scope}:{key}"

    async def get(self, scope: str, key: str) -> IdempotencyRecord | None:
        raw = await self._redis.get(self._key(scope, key))
        if raw is None:
            return None
        data = json.loads(raw)
        return IdempotencyRecord(
            key=key,
            status=data["status"],
            response_data=data.get("response"),
            created_at=datetime.fromisoformat(data["created_at"]),
        )

    async def reserve(self, scope: str, key: str) -> bool:
        """Claim ``key`` for an in-flight request. False if it is already taken."""
        payload = json.dumps({"status": PENDING, "created_at": datetime.now(UTC).isoformat()})
        reserved = await self._redis.set(self._key(scope, key), payload, ex=self._ttl_seconds, nx=True)
        return bool(reserved)

    async def complete(self, scope: str, key: str, response: dict[str, Any]) -> None:
        payload = json.dumps(
            {
                "status": COMPLETED,
                "response": response,
                "created_at": datetime.now(UTC).isoformat(),
            }
        )
        await self._redis.set(self._key(scope, key), payload, ex=self._ttl_seconds)
        logger.debug("idempotency_key_completed", scope=scope, key=key)

    async def release(self, scope: str, key: str) -> None:
        await self._redis.delete(self._key(scope, key))
