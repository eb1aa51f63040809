"""
FastAPI service skeleton for the business rules service.

Provides the app lifecycle, request correlation and timing, the /health and
/metrics endpoints, and the mapping from ServiceException to JSON errors.
Subclasses add routes and override start, stop and _check_dependencies.
"""

import os
import time
from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST

from shared.config import ServiceConfig, get_config
from shared.errors import ErrorResponse, ServiceException
from shared.logging import clear_context, configure_logging, get_logger, set_request_id
from shared.metrics import get_metrics_collector

VERSION = "1.0.0"
REQUEST_ID_HEADER = "X-Request-ID"


class BaseService:
    """Base service class with common functionality."""

    def __init__(self, service_name: str, port: int, config: Optional[ServiceConfig] = None):
        self.service_name = service_name
        self.port = port
        self.config = config or get_config(service_name, port)
        self.logger = get_logger(f"{service_name}.service")
        self.metrics = get_metrics_collector(service_name)
        self._start_time = time.time()

        configure_logging(service_name, self.config.log_level, json_output=self.config.env != "local")

        self.app = self._create_app()
        self._setup_middleware()
        self._setup_routes()
        self._setup_exception_handlers()

    def _create_app(self) -> FastAPI:
        @asynccontextmanager
        async def lifespan(app: FastAPI):
            await self.start()
            try:
                yield
            finally:
                await self.stop()

        title = self.service_name.replace("_", " ").title()
        local = self.config.env == "local"
        return FastAPI(
            title=f"{title} Service",
            description=f"Coffee Shop - {title} Service",
            version=VERSION,
            docs_url="/docs" if local else None,
            redoc_url="/redoc" if local else None,
            lifespan=lifespan,
        )

    def _setup_middleware(self):
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"] if self.config.env == "local" else [],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        @self.app.middleware("http")
        async def correlate_and_time(request: Request, call_next):
            request_id = set_request_id(request.headers.get(REQUEST_ID_HEADER))
            started = time.perf_counter()
            try:
                response = await call_next(request)
            finally:
                clear_context()
            duration = time.perf_counter() - started

            self.metrics.record_http_request(request.method, request.url.path, response.status_code, duration)
            self.logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2),
                request_id=request_id
            )

            response.headers[REQUEST_ID_HEADER] = request_id
            return response

    def _setup_routes(self):
        @self.app.get("/health")
        async def health_check():
            """Liveness plus dependency status; 503 when a dependency is down."""
            dependencies = await self._check_dependencies()
            status = "ok" if all(value == "ok" for value in dependencies.values()) else "error"
            self.metrics.record_health_check(status)

            body = {
                "service": self.service_name,
                "status": status,
                "uptime_seconds": time.time() - self._start_time,
                "dependencies": dependencies,
                "version": VERSION,
                "commit": os.getenv("GIT_COMMIT", "unknown")
            }
            return JSONResponse(status_code=200 if status == "ok" else 503, content=body)

        @self.app.get("/metrics")
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            return Response(content=self.metrics.export(), media_type=CONTENT_TYPE_LATEST)

    def _setup_exception_handlers(self):
        @self.app.exception_handler(ServiceException)
        async def service_exception_handler(request: Request, exc: ServiceException):
            log = self.logger.error if exc.status_code >= 500 else self.logger.warning
            log("Service error", code=exc.code, message=exc.message, details=exc.details, path=request.url.path)
            self.metrics.record_error(exc.code)
            return JSONResponse(status_code=exc.status_code, content=exc.to_response().model_dump())

        @self.app.exception_handler(RequestValidationError)
        async def request_validation_handler(request: Request, exc: RequestValidationError):
            self.metrics.record_error("VALIDATION_ERROR")
            errors = [
                {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg")}
                for error in exc.errors()
            ]
            response = ErrorResponse(
                code="VALIDATION_ERROR",
                message="Validation failed: invalid request",
                details={"errors": errors}
            )
            return JSONResponse(status_code=400, content=response.model_dump())

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            self.logger.error("Unhandled exception", error=str(exc), path=request.url.path, exc_info=True)
            self.metrics.record_error("INTERNAL_ERROR")
            response = ErrorResponse(code="INTERNAL_ERROR", message="Internal server error")
            return JSONResponse(status_code=500, content=response.model_dump())

    async def _check_dependencies(self) -> Dict[str, str]:
        """Map of dependency name to "ok" or "error". Override in subclasses."""
        return {}

    async def start(self):
        """Start service components. Override in subclasses."""

    async def stop(self):
        """Stop service components. Override in subclasses."""

    def run(self):
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )
