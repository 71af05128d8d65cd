import time
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from prometheus_client import Counter, Histogram

from gateway_service.domain.exceptions import DomainError


P = ParamSpec("P")
R = TypeVar("R")

GATEWAY_OPERATIONS_TOTAL = Counter(
    "gateway_operations_total",
    "Total number of gateway operations by outcome",
    ["operation", "outcome"],
)

GATEWAY_OPERATION_DURATION = Histogram(
    "gateway_operation_duration_seconds",
    "Gateway operation processing duration",
    ["operation"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

GRPC_REQUEST_DURATION = Histogram(
    "grpc_request_duration_seconds",
    "gRPC request duration",
    ["method", "status_code"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

GRPC_REQUESTS_TOTAL = Counter(
    "grpc_requests_total",
    "Total number of gRPC requests",
    ["method", "status_code"],
)

IDEMPOTENT_REPLAYS_TOTAL = Counter(
    "idempotent_replays_total",
    "Responses served from the idempotency cache",
    ["method"],
)


def track_operation(
    operation: str,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Record duration and outcome (success, rejected, error) of a gateway operation."""

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            start = time.perf_counter()
            outcome = "error"
            try:
                result = await func(*args, **kwargs)
                outcome = "success"
                return result
            except DomainError:
                outcome = "rejected"
                raise
            finally:
                GATEWAY_OPERATION_DURATION.labels(operation=operation).observe(time.perf_counter() - start)
                GATEWAY_OPERATIONS_TOTAL.labels(operation=operation, outcome=outcome).inc()

        return wrapper

    return decorator
