"""Wallet Ledger Service.

This service applies deposits and withdrawals to per-user balances, flags
suspicious activity and serves history and balance queries. Uses PostgreSQL
with the wallet schema, or an in-memory store for local runs.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from wallet.api.middleware import log_requests
from wallet.api.routes import api_router
from wallet.core.config import AppEnvironment, Settings, get_settings
from wallet.core.database import open_ledger_storage
from wallet.core.errors import InvalidRequest, WalletError, get_status_code
from wallet.core.logging import setup_logging

logger = logging.getLogger(__name__)

# API version prefix
API_V1_PREFIX = "/api/v1"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan context manager."""
    settings = get_settings()
    setup_logging(settings)

    logger.info(
        "Starting Wallet Ledger Service",
        extra={
            "app": settings.app.name,
            "env": settings.app.env.value,
            "version": settings.app.version,
            "ledger_backend": settings.ledger.backend.value,
        },
    )

    storage = open_ledger_storage(settings)
    app.state.ledger_store = storage.store
    app.state.settings = settings
    app.state.engine = storage.engine
    # Read once; request handlers never consult the environment
    app.state.fraud_config = settings.fraud

    yield

    await storage.close()

    logger.info("Wallet Ledger Service stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Wallet Ledger API",
        description=(
            "API for idempotent deposits and withdrawals against per-user balances, "
            "with trailing-window fraud alerts."
        ),
        version=settings.app.version,
        lifespan=lifespan,
        docs_url="/docs" if settings.app.env != AppEnvironment.PROD else None,
        redoc_url="/redoc" if settings.app.env != AppEnvironment.PROD else None,
        openapi_url="/openapi.json" if settings.app.env != AppEnvironment.PROD else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.cors_allowed_origins,
        allow_credentials=settings.security.cors_allow_credentials,
        allow_methods=settings.security.cors_allow_methods,
        allow_headers=settings.security.cors_allow_headers,
    )
    app.middleware("http")(log_requests)

    app.include_router(api_router, prefix=API_V1_PREFIX)

    setup_telemetry(app, settings)

    @app.exception_handler(WalletError)
    async def domain_error_handler(  # type: ignore[reportUnusedFunction]
        request: Request, exc: WalletError
    ) -> JSONResponse:
        """Handle domain-specific errors and return appropriate HTTP responses."""
        status_code = get_status_code(exc)
        return JSONResponse(
            status_code=status_code,
            content={
                "detail": exc.message,
                "code": exc.code,
                **({"errors": exc.details} if exc.details else {}),
            },
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(  # type: ignore[reportUnusedFunction]
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Report malformed request bodies and parameters as 400 invalid_request."""
        errors = [
            {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")}
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content={
                "detail": "Request validation failed",
                "code": InvalidRequest.code,
                "errors": {"fields": errors},
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(  # type: ignore[reportUnusedFunction]
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions and return 500 error responses."""
        logger.exception(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "code": "internal_error"},
        )

    return app


def setup_telemetry(app: FastAPI, settings: Settings) -> None:
    """Setup OpenTelemetry instrumentation."""
    if not settings.observability.otlp_endpoint:
        return

    resource = Resource(
        attributes={
            SERVICE_NAME: settings.observability.service_name,
        }
    )

    provider = TracerProvider(resource=resource)
    exporter = OTLPSpanExporter(
        endpoint=settings.observability.otlp_endpoint,
        insecure=settings.observability.otlp_insecure,
    )
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    FastAPIInstrumentor.instrument_app(app)


def run() -> None:
    """Run the application using uvicorn."""
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "wallet.main:create_app",
        factory=True,
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.app.env == AppEnvironment.LOCAL,
        workers=1 if settings.app.env == AppEnvironment.LOCAL else settings.server.workers,
        log_level=settings.app.log_level.value.lower(),
    )


if __name__ == "__main__":
    run()
