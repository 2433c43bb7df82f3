from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.routers import billing, catalog, health, payment_methods, sessions, stripe_connect, webhooks
from app.core.database import init_db, close_db
from app.core.structured_logging import APP_VERSION, setup_logging
from app.core.errors import CoachbillError
from app.core.errors.registry import error_registry
from app.core.errors.middleware import coachbill_error_handler
from app.core.log_middleware import CorrelationMiddleware
from app.models.responses import ErrorResponse
from app.services.stripe_gateway import ProcessorError, ProcessorNotConfiguredError

# Initialize structured logging before any logger calls
setup_logging(log_dir=settings.log_dir)

logger = logging.getLogger(__name__)

API_TITLE = "coachbill API"
API_DESCRIPTION = """
Billing backend for multi-tenant coaching companies.

Each company charges its own clients through its own Stripe sub-account,
in a test and a live environment kept strictly apart.
"""

ERROR_RESPONSES = {
    status: {"model": ErrorResponse}
    for status in (400, 401, 403, 404, 409, 422, 500, 502, 503)
}

TAGS_METADATA = [
    {"name": "health", "description": "Liveness"},
    {"name": "sessions", "description": "Session logging, review and lifecycle actions"},
    {"name": "billing", "description": "Charging sessions and billing history"},
    {"name": "stripe", "description": "Stripe Connect onboarding and account readiness"},
    {"name": "catalog", "description": "Per-tenant products and prices"},
    {"name": "payment methods", "description": "Client payment method setup"},
    {"name": "webhooks", "description": "Stripe webhook receiver"},
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    logger.info("Starting coachbill API v%s...", APP_VERSION)

    error_registry.load()
    init_db()

    configured = [env.value for env, _ in settings.webhook_secrets()]
    logger.info("Stripe webhook secrets configured for: %s", ", ".join(configured) or "none")

    yield

    close_db()
    logger.info("Database connection closed")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=APP_VERSION,
        openapi_tags=TAGS_METADATA,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # request_id + correlation_id in every log
    app.add_middleware(CorrelationMiddleware)

    # Structured error handler for CoachbillError
    app.add_exception_handler(CoachbillError, coachbill_error_handler)

    @app.exception_handler(ProcessorError)
    async def _processor_error_handler(request: Request, exc: ProcessorError):
        code = "CBL-CFG-001" if isinstance(exc, ProcessorNotConfiguredError) else "CBL-PRC-001"
        return await coachbill_error_handler(
            request,
            CoachbillError(code, detail=exc.message, context={"processor_code": exc.code}),
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(request: Request, exc: RequestValidationError):
        return await coachbill_error_handler(
            request,
            CoachbillError("CBL-API-001", detail=str(exc.errors())),
        )

    # Catch-all handler so unhandled exceptions return JSON (not bare text)
    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        logger.error("Unhandled exception on %s %s: %s", request.method, request.url.path, exc, exc_info=True)
        return await coachbill_error_handler(request, CoachbillError("CBL-SYS-001", detail=str(exc)))

    app.include_router(health.router, prefix="/api", tags=["health"])
    app.include_router(sessions.router, prefix="/api", tags=["sessions"], responses=ERROR_RESPONSES)
    app.include_router(billing.router, prefix="/api", tags=["billing"], responses=ERROR_RESPONSES)
    app.include_router(stripe_connect.router, prefix="/api", tags=["stripe"], responses=ERROR_RESPONSES)
    app.include_router(catalog.router, prefix="/api", tags=["catalog"], responses=ERROR_RESPONSES)
    app.include_router(payment_methods.router, prefix="/api", tags=["payment methods"], responses=ERROR_RESPONSES)
    app.include_router(webhooks.router, prefix="/api", tags=["webhooks"], responses=ERROR_RESPONSES)

    @app.get("/", tags=["health"], summary="API Root")
    async def root():
        return {
            "name": API_TITLE,
            "version": APP_VERSION,
            "status": "running",
            "docs": {"swagger": "/docs", "redoc": "/redoc", "openapi": "/openapi.json"},
        }

    return app


# Create the app instance
app = create_app()
