import asyncio
import contextlib

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from gateway_service.infrastructure.database import Database


logger = structlog.get_logger()


def create_metrics_app(database: Database | None = None) -> FastAPI:
    """Create the FastAPI application serving /metrics and /health."""
    app = FastAPI(
        title="Gateway Service Metrics",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    @app.get("/metrics", response_class=PlainTextResponse)
    async def metrics() -> PlainTextResponse:
        return PlainTextResponse(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/health")
    async def health() -> JSONResponse:
        if database is None:
            return JSONResponse({"status": "healthy"})
        if await database.health_check():
            return JSONResponse({"status": "healthy", "database": "up"})
        return JSONResponse({"status": "unhealthy", "database": "down"}, status_code=503)

    return app


class MetricsServer:
    """Runs the metrics app with uvicorn as a background task."""

    def __init__(self, host: str = "0.0.0.0", port: int = 9090, database: Database | None = None) -> None:
        self._host = host
        self._port = port
        self._database = database
        self._server: uvicorn.Server | None = None
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        config = uvicorn.Config(
            create_metrics_app(self._database),
            host=self._host,
            port=self._port,
            log_level="warning",
            access_log=False,
        )
        self._server = uvicorn.Server(config)
        self._task = asyncio.create_task(self._server.serve())
        logger.info("metrics_server_started", host=self._host, port=self._port)

    async def stop(self) -> None:
        if self._server:
            self._server.should_exit = True

        if self._task:
            try:
                await asyncio.wait_for(self._task, timeout=5.0)
            except TimeoutError:
                self._task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._task

        logger.info("metrics_server_stopped")
