"""
Base service class for OAuth gate services.

Provides the FastAPI application, request timing and metrics, the /health and
/metrics endpoints, error translation and a shutdown hook.
"""

import os
import time
from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST

from shared.config import ServiceConfig, get_config
from shared.errors import GateException
from shared.logging import configure_logging, get_logger
from shared.metrics import get_metrics_collector

VERSION = "1.0.0"

# HTTP status for gate errors that escape a route handler
ERROR_STATUS = {
    "CONFIGURATION_ERROR": 500,
    "TOKEN_EXCHANGE_ERROR": 504,
    "DECODE_ERROR": 504,
    "VALIDATION_ERROR": 401,
}


class BaseService:
    """Base service class with common functionality."""

    def __init__(self, service_name: str, port: int, config: Optional[ServiceConfig] = None):
        self.service_name = service_name
        self.port = port
        self.config = config or get_config(service_name, port)
        configure_logging(service_name, self.config.log_level)

        self.logger = get_logger(service_name)
        self.metrics = get_metrics_collector(service_name)
        self._started = time.monotonic()

        self.app = FastAPI(
            title=f"{service_name.title()} Service",
            description=f"OAuth gate - {service_name.title()} Service",
            version=VERSION,
            docs_url="/docs" if self.config.env == "local" else None,
            redoc_url="/redoc" if self.config.env == "local" else None,
            lifespan=self._lifespan,
        )
        self._setup_middleware()
        self._setup_routes()
        self._setup_exception_handlers()

    def _setup_middleware(self):
        """Time every request and record it under its route template."""

        @self.app.middleware("http")
        async def record_request(request: Request, call_next):
            started = time.perf_counter()
            response = await call_next(request)
            duration = time.perf_counter() - started

            route = request.scope.get("route")
            endpoint = getattr(route, "path", request.url.path)
            self.metrics.record_http_request(request.method, endpoint, response.status_code, duration)
            self.logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2),
            )
            return response

    def _setup_routes(self):
        """Set up common routes."""

        @self.app.get("/health")
        async def health_check():
            """Liveness plus a summary of configured dependencies."""
            try:
                dependencies = await self._check_dependencies()
            except Exception as e:
                self.logger.error("Health check failed", error=str(e))
                self.metrics.record_health_check("error")
                return JSONResponse(
                    status_code=503,
                    content={"service": self.service_name, "status": "error", "error": str(e)},
                )

            self.metrics.record_health_check("ok")
            return {
                "service": self.service_name,
                "status": "ok",
                "uptime_seconds": round(time.monotonic() - self._started, 3),
                "dependencies": dependencies,
                "version": VERSION,
                "commit": os.getenv("GIT_COMMIT", "unknown"),
            }

        @self.app.get("/metrics")
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            return Response(content=self.metrics.export(), media_type=CONTENT_TYPE_LATEST)

    def _setup_exception_handlers(self):

        @self.app.exception_handler(GateException)
        async def gate_exception_handler(request: Request, exc: GateException):
            status_code = ERROR_STATUS.get(exc.code, 400)
            self.logger.error("Gate error", code=exc.code, message=exc.message, status_code=status_code)
            return JSONResponse(status_code=status_code, content=exc.to_response().model_dump())

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            self.logger.error("Unhandled exception", error=str(exc), exc_info=True)
            return JSONResponse(
                status_code=500,
                content={"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}},
            )

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        yield
        await self._shutdown()

    async def _shutdown(self) -> None:
        """Release service resources. Override in subclasses."""

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check service dependencies. Override in subclasses."""
        return {}

    @property
    def asgi_app(self):
        """ASGI application served by `run`."""
        return self.app

    def run(self):
        """Run the service."""
        import uvicorn
        uvicorn.run(
            self.asgi_app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower(),
        )
