"""
Base service class for Performance Optimization services.
"""

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Dict, Optional
import time
import os

from shared.config import ServiceConfig, get_config
from shared.logging import clear_context, configure_logging, get_logger, set_client_context, set_request_id
from shared.metrics import get_metrics_collector
from shared.errors import PerformanceServiceException


SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
}


def get_client_ip(request: Request) -> str:
    """Extract the caller IP from standard headers."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip
    if request.client:
        return request.client.host
    return "unknown"


class BaseService:
    """Base service class with common functionality."""

    def __init__(self, service_name: str, config: Optional[ServiceConfig] = None):
        self.service_name = service_name
        self.config = config or get_config(service_name)
        self.port = self.config.port

        # Configure logging
        configure_logging(service_name, self.config.log_level)
        self.logger = get_logger(f"{service_name}.service")
        self.metrics = get_metrics_collector(service_name)
        self._start_time = time.time()

        # Create FastAPI app
        self.app = self._create_app()

        # Set up middleware
        self._setup_middleware()

        # Set up routes
        self._setup_routes()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application."""

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            await self.on_startup()
            self.logger.info("Service started", port=self.port, env=self.config.env)
            try:
                yield
            finally:
                await self.on_shutdown()
                self.logger.info("Service stopped")

        return FastAPI(
            title=f"{self.service_name.title()} Service",
            description=f"Performance Optimization - {self.service_name.title()} Service",
            version="1.0.0",
            docs_url="/docs" if self.config.env == "local" else None,
            redoc_url="/redoc" if self.config.env == "local" else None,
            lifespan=lifespan,
        )

    def _setup_middleware(self):
        """Set up middleware."""

        # CORS middleware
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"] if self.config.env == "local" else [],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        # Compression
        self.app.add_middleware(GZipMiddleware, minimum_size=1000)

        # Request timing middleware
        @self.app.middleware("http")
        async def add_request_timing(request: Request, call_next):
            start_time = time.perf_counter()
            request_id = set_request_id(request.headers.get("X-Request-ID"))
            set_client_context(get_client_ip(request))

            try:
                # Process request
                response = await call_next(request)

                # Calculate duration
                duration = time.perf_counter() - start_time

                # Record metrics
                self.metrics.record_http_request(
                    method=request.method,
                    endpoint=request.url.path,
                    status_code=response.status_code,
                    duration=duration
                )

                # Log request
                self.logger.info(
                    "HTTP request",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=round(duration * 1000, 2)
                )

                response.headers["X-Request-ID"] = request_id
                response.headers["X-Response-Time"] = f"{duration * 1000:.2f}ms"
                for header, value in SECURITY_HEADERS.items():
                    response.headers.setdefault(header, value)
                return response
            finally:
                clear_context()

    def _setup_routes(self):
        """Set up common routes."""

        @self.app.get("/health")
        async def health_check():
            """Health check endpoint."""
            try:
                # Check dependencies
                dependencies = await self._check_dependencies()

                # Record health check
                self.metrics.record_health_check("ok")

                return {
                    "service": self.service_name,
                    "status": "OK",
                    "uptimeSeconds": round(self._get_uptime(), 3),
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    "dependencies": dependencies,
                    "version": "1.0.0",
                    "commit": os.getenv("GIT_COMMIT", "unknown")
                }
            except Exception as e:
                self.logger.error("Health check failed", error=str(e))
                self.metrics.record_health_check("error")
                return JSONResponse(
                    status_code=503,
                    content={
                        "service": self.service_name,
                        "status": "ERROR",
                        "error": str(e)
                    }
                )

        @self.app.get("/metrics/prometheus")
        async def prometheus_metrics():
            """Prometheus metrics endpoint."""
            return Response(
                content=self.metrics.render(),
                media_type=self.metrics.content_type
            )

        # Error handlers
        @self.app.exception_handler(PerformanceServiceException)
        async def service_exception_handler(request: Request, exc: PerformanceServiceException):
            """Handle PerformanceServiceException."""
            self.logger.error(
                "Service error",
                code=exc.code,
                message=exc.message,
                details=exc.details,
                path=request.url.path
            )
            self.metrics.record_error(exc.code)
            return JSONResponse(
                status_code=exc.status_code,
                content=exc.to_response().model_dump(),
                headers=exc.headers()
            )

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            """Handle general exceptions."""
            self.logger.error("Unhandled exception", error=str(exc), exc_info=True)
            self.metrics.record_error("INTERNAL_ERROR")
            return JSONResponse(
                status_code=500,
                content={
                    "success": False,
                    "code": "INTERNAL_ERROR",
                    "error": "Internal server error",
                    "details": {}
                }
            )

    async def on_startup(self) -> None:
        """Start background components. Override in subclasses."""

    async def on_shutdown(self) -> None:
        """Release background components. Override in subclasses."""

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check service dependencies. Override in subclasses."""
        return {}

    def _get_uptime(self) -> float:
        """Get service uptime in seconds."""
        return time.time() - self._start_time

    def run(self):
        """Run the service."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )
