import time
from collections.abc import Awaitable, Callable
from typing import Any

import grpc

from gateway_service.infrastructure.metrics import (
    GRPC_REQUEST_DURATION,
    GRPC_REQUESTS_TOTAL,
)


class MetricsInterceptor(grpc.aio.ServerInterceptor):
    """gRPC interceptor that collects Prometheus metrics for unary calls."""

    async def intercept_service(
        self,
        continuation: Callable[[grpc.HandlerCallDetails], Awaitable[grpc.RpcMethodHandler]],
        handler_call_details: grpc.HandlerCallDetails,
    ) -> grpc.RpcMethodHandler:
        handler = await continuation(handler_call_details)
        if handler is None or handler.unary_unary is None:
            return handler

        method = handler_call_details.method
        behavior = handler.unary_unary

        async def observed(request: Any, context: grpc.aio.ServicerContext) -> Any:
            start_time = time.perf_counter()
            status_code = "OK"
            try:
                return await behavior(request, context)
            except grpc.aio.AbortError:
                code = context.code()
                status_code = code.name if isinstance(code, grpc.StatusCode) else "UNKNOWN"
                raise
            except BaseException:
                status_code = "UNKNOWN"
                raise
            finally:
                duration = time.perf_counter() - start_time
                GRPC_REQUEST_DURATION.labels(method=method, status_code=status_code).observe(duration)
                GRPC_REQUESTS_TOTAL.labels(method=method, status_code=status_code).inc()

        return handler._replace(unary_unary=observed)
