"""
FastAPI application factory and configuration.

This module creates the FastAPI application instance,
configures exception handlers, and lifespan events.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from psycopg_pool import ConnectionPool

from registrar_checkout.adapters.gateway.razorpay import RazorpayGateway
from registrar_checkout.adapters.registrar.resellerclub import ResellerClubRegistrar
from registrar_checkout.adapters.repository.postgres import run_migrations
from registrar_checkout.api.models import ErrorResponse, RestrictedDomainResponse
from registrar_checkout.api.v1 import router as v1_router
from registrar_checkout.config.settings import get_settings
from registrar_checkout.domain.exceptions import CheckoutError, RestrictedDomainsRejected
from registrar_checkout.domain.ports import ErrorKind

logger = logging.getLogger(__name__)

# OpenAPI tags for documentation grouping
tags_metadata = [
    {
        "name": "v1",
        "description": "Registrar Checkout API v1 - Verify payments, register domains, "
        "manage the pending domain queue",
    },
]

# Every domain error kind and the HTTP status it is reported with.
ERROR_STATUS: dict[ErrorKind, int] = {
    ErrorKind.INVALID_CART: status.HTTP_400_BAD_REQUEST,
    ErrorKind.SIGNATURE_INVALID: status.HTTP_400_BAD_REQUEST,
    ErrorKind.CHARGE_NOT_CAPTURED: status.HTTP_400_BAD_REQUEST,
    ErrorKind.AMOUNT_MISMATCH: status.HTTP_400_BAD_REQUEST,
    ErrorKind.ORDER_ID_MISMATCH: status.HTTP_400_BAD_REQUEST,
    ErrorKind.RESTRICTED_DOMAIN: status.HTTP_400_BAD_REQUEST,
    ErrorKind.CHARGE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.GATEWAY_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.DUPLICATE_CHARGE: status.HTTP_409_CONFLICT,
    ErrorKind.PERSISTENCE_FAILURE: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.PENDING_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.PENDING_ALREADY_RESOLVED: status.HTTP_409_CONFLICT,
    ErrorKind.PENDING_NOT_RETRYABLE: status.HTTP_400_BAD_REQUEST,
    ErrorKind.PENDING_IN_PROGRESS: status.HTTP_409_CONFLICT,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI lifespan context manager.

    Manages application startup and shutdown:
    - Creates database connection pool on startup
    - Runs migrations on startup
    - Creates the gateway and registrar HTTP clients
    - Closes clients and connection pool on shutdown
    """
    settings = get_settings()

    logger.info("Starting application...")
    logger.info("Connecting to database...")

    # Create connection pool with explicit sizing
    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
    )

    # Run migrations
    logger.info("Running database migrations...")
    run_migrations(pool)

    gateway = RazorpayGateway.from_settings(settings)
    registrar = ResellerClubRegistrar.from_settings(settings)

    # Store shared resources in app state for dependency injection
    app.state.pool = pool
    app.state.gateway = gateway
    app.state.registrar = registrar

    if not settings.admin_password_hash:
        logger.warning("ADMIN_PASSWORD_HASH not set, admin routes will refuse every request")

    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Shutting down application...")
    gateway.close()
    registrar.close()
    pool.close()
    logger.info("HTTP clients and database connection pool closed")


app = FastAPI(
    title="registrar-checkout",
    description="Payment-confirmed domain registration - verifies captured charges, "
    "registers each domain and queues failures for manual resolution",
    version="0.1.0",
    openapi_tags=tags_metadata,
    lifespan=lifespan,
)

# Include v1 API routes
app.include_router(v1_router, prefix="/v1")


@app.exception_handler(CheckoutError)
async def checkout_error_handler(request: Request, exc: CheckoutError) -> JSONResponse:
    """Report a domain error as {errorKind, message, ...} with its mapped status."""
    body = ErrorResponse(error_kind=exc.error_kind.value, message=exc.message)
    if isinstance(exc, RestrictedDomainsRejected):
        body.restricted_domains = [
            RestrictedDomainResponse(domain_name=r.domain_name, reason=r.reason)
            for r in exc.restricted_domains
        ]
        body.support_contact = exc.support_contact

    status_code = ERROR_STATUS.get(exc.error_kind, status.HTTP_400_BAD_REQUEST)
    if status_code >= 500:
        logger.error("%s on %s: %s", exc.error_kind.value, request.url.path, exc.message)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True, exclude_none=True),
    )


@app.get("/health")
async def health_check(request: Request) -> dict[str, str]:
    """
    Health check endpoint with database validation.

    Returns 200 OK if application and database are healthy.
    Raises exception if database connection fails.
    """
    # Validate database connectivity
    pool = request.app.state.pool
    with pool.connection() as conn:
        conn.execute("SELECT 1")

    return {"status": "healthy"}
