"""
FastAPI service skeleton shared by Ascent access layer services.
"""

import os
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .config import ServiceConfig, get_config
from .errors import AscentException
from .logging import clear_context, configure_logging, get_logger, set_request_id
from .metrics import get_metrics_collector

VERSION = "1.0.0"
REQUEST_ID_HEADER = "X-Request-ID"


class BaseService:
    """Common wiring: config, logging, metrics, lifespan hooks, health and error handling.

    Subclasses add their routes after calling ``super().__init__`` and may
    override ``startup``, ``shutdown`` and ``_check_dependencies``.
    """

    def __init__(self, service_name: str, port: int, config: Optional[ServiceConfig] = None):
        self.service_name = service_name
        self.port = port
        self.config = config or get_config(service_name, port)

        configure_logging(service_name, self.config.log_level)
        self.logger = get_logger(service_name)
        self.metrics = get_metrics_collector(service_name)
        self._start_time = time.time()

        self.app = FastAPI(
            title=f"{service_name.title()} Service",
            description=f"Ascent Access Layer - {service_name.title()} Service",
            version=VERSION,
            lifespan=self._lifespan,
            docs_url="/docs" if self._is_local else None,
            redoc_url="/redoc" if self._is_local else None,
        )
        self._setup_middleware()
        self._setup_exception_handlers()
        self._setup_routes()

    @property
    def _is_local(self) -> bool:
        return self.config.env == "local"

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        await self.startup()
        self.logger.info("Service started", port=self.port, env=self.config.env)
        try:
            yield
        finally:
            await self.shutdown()
            self.logger.info("Service stopped")

    async def startup(self) -> None:
        """Startup hook. Override in subclasses."""

    async def shutdown(self) -> None:
        """Shutdown hook. Override in subclasses."""

    def _setup_middleware(self):
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"] if self._is_local else [],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        @self.app.middleware("http")
        async def request_context(request: Request, call_next):
            request_id = set_request_id(request.headers.get(REQUEST_ID_HEADER))
            started = time.perf_counter()

            response = await call_next(request)

            elapsed = time.perf_counter() - started
            response.headers[REQUEST_ID_HEADER] = request_id
            self.metrics.record_http_request(request.method, request.url.path, response.status_code, elapsed)
            # Path only; query strings may carry credentials.
            self.logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(elapsed * 1000, 2),
            )
            clear_context()
            return response

    def _setup_exception_handlers(self):
        @self.app.exception_handler(AscentException)
        async def ascent_exception_handler(request: Request, exc: AscentException):
            self.logger.warning("Request rejected", code=exc.code, status_code=exc.status_code, path=request.url.path)
            self.metrics.record_error(exc.code)
            return JSONResponse(status_code=exc.status_code, content=exc.to_response().model_dump())

        @self.app.exception_handler(Exception)
        async def unhandled_exception_handler(request: Request, exc: Exception):
            # Type only: exception text from parsers can echo request content.
            self.logger.error("Unhandled exception", error_type=type(exc).__name__, path=request.url.path)
            self.metrics.record_error("INTERNAL_ERROR")
            return JSONResponse(
                status_code=500,
                content={"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}},
            )

    def _setup_routes(self):
        @self.app.get("/health")
        async def health_check():
            """Health check endpoint."""
            try:
                payload = await self._health_payload()
            except Exception as exc:
                self.logger.error("Health check failed", error_type=type(exc).__name__)
                self.metrics.record_health_check("error")
                return JSONResponse(status_code=503, content={"service": self.service_name, "status": "error"})

            self.metrics.record_health_check(payload["status"])
            return payload

        @self.app.get("/metrics")
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            return Response(content=generate_latest(self.metrics.registry), media_type=CONTENT_TYPE_LATEST)

    async def _health_payload(self) -> Dict[str, Any]:
        dependencies = await self._check_dependencies()
        healthy = all(state == "ok" for state in dependencies.values())
        return {
            "service": self.service_name,
            "status": "ok" if healthy else "degraded",
            "uptime_seconds": round(time.time() - self._start_time, 3),
            "dependencies": dependencies,
            "version": VERSION,
            "commit": os.getenv("GIT_COMMIT", "unknown"),
        }

    async def _check_dependencies(self) -> Dict[str, str]:
        """Map of dependency name to 'ok' or a failure state. Override in subclasses."""
        return {}

    def run(self):
        """Run the service with uvicorn."""
        import uvicorn

        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower(),
        )
