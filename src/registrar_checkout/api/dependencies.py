"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting
domain services and infrastructure adapters into routes.

The connection pool and the two outbound HTTP adapters are created once in
the app lifespan and kept on app.state; repositories and services are
cheap and built per request.
"""

import logging
import secrets
from functools import lru_cache

import bcrypt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from psycopg_pool import ConnectionPool

from registrar_checkout.adapters.notifications.console import ConsoleNotifier
from registrar_checkout.adapters.repository.postgres import (
    PostgresOrderRepository,
    PostgresPendingDomainRepository,
)
from registrar_checkout.config.settings import Settings, get_settings
from registrar_checkout.domain.checkout import CheckoutService
from registrar_checkout.domain.pending import PendingDomainService
from registrar_checkout.domain.ports import PaymentGateway, Registrar
from registrar_checkout.domain.verification import PaymentVerifier
from registrar_checkout.domain.webhooks import GatewayEventHandler

logger = logging.getLogger(__name__)

# Hash of "dummy_password_for_timing_safety" with cost factor 10.
# Checked when the username is wrong or admin access is not configured, so
# every failed login costs one bcrypt comparison.
_DUMMY_BCRYPT_HASH = bcrypt.hashpw(b"dummy_password_for_timing_safety", bcrypt.gensalt(10))


def get_pool(request: Request) -> ConnectionPool:
    """
    Get connection pool from app state.

    The pool is created during app lifespan startup and stored in app.state.
    """
    return request.app.state.pool


def get_order_repository(request: Request) -> PostgresOrderRepository:
    """Create order repository with connection pool from app state."""
    return PostgresOrderRepository(get_pool(request))


def get_pending_repository(request: Request) -> PostgresPendingDomainRepository:
    return PostgresPendingDomainRepository(get_pool(request))


def get_gateway(request: Request) -> PaymentGateway:
    return request.app.state.gateway


def get_registrar(request: Request) -> Registrar:
    return request.app.state.registrar


@lru_cache
def _notifier(ops_email: str) -> ConsoleNotifier:
    return ConsoleNotifier(ops_email=ops_email)


def get_notifier(settings: Settings = Depends(get_settings)) -> ConsoleNotifier:
    """Get console notifier (one per ops address)."""
    return _notifier(settings.ops_email)


def get_pending_service(
    pending: PostgresPendingDomainRepository = Depends(get_pending_repository),
    orders: PostgresOrderRepository = Depends(get_order_repository),
    registrar: Registrar = Depends(get_registrar),
    notifier: ConsoleNotifier = Depends(get_notifier),
) -> PendingDomainService:
    return PendingDomainService(
        pending=pending, orders=orders, registrar=registrar, notifier=notifier
    )


def get_checkout_service(
    settings: Settings = Depends(get_settings),
    orders: PostgresOrderRepository = Depends(get_order_repository),
    gateway: PaymentGateway = Depends(get_gateway),
    registrar: Registrar = Depends(get_registrar),
    notifier: ConsoleNotifier = Depends(get_notifier),
    pending_service: PendingDomainService = Depends(get_pending_service),
) -> CheckoutService:
    """
    Create checkout service with injected dependencies.

    Wires together the verifier, repositories, registrar and notifier.
    """
    return CheckoutService(
        verifier=PaymentVerifier(gateway=gateway, secret=settings.gateway_key_secret),
        orders=orders,
        registrar=registrar,
        notifier=notifier,
        pending_domains=pending_service,
        name_servers=settings.registrar_name_servers or None,
        support_contact=settings.support_contact,
        max_workers=settings.registration_concurrency,
    )


def get_event_handler(
    orders: PostgresOrderRepository = Depends(get_order_repository),
) -> GatewayEventHandler:
    return GatewayEventHandler(orders=orders)


# HTTP BASIC AUTH security scheme for OpenAPI documentation
http_basic = HTTPBasic()


def require_admin(
    credentials: HTTPBasicCredentials = Depends(http_basic),
    settings: Settings = Depends(get_settings),
) -> str:
    """
    Authenticate an operator via HTTP BASIC AUTH.

    FastAPI's HTTPBasic returns 401 for a missing or malformed header.
    The password is always checked with bcrypt, against a dummy hash when
    the username does not match, so response time does not reveal which
    part was wrong.

    Returns:
        The admin username
    """
    configured = settings.admin_password_hash.encode()
    username_ok = secrets.compare_digest(
        credentials.username.encode(), settings.admin_username.encode()
    )
    stored_hash = configured if username_ok and configured else _DUMMY_BCRYPT_HASH

    try:
        password_ok = bcrypt.checkpw(credentials.password.encode(), stored_hash)
    except ValueError:
        logger.error("admin_password_hash is not a valid bcrypt hash")
        password_ok = False

    if not (username_ok and configured and password_ok):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Basic"},
        )
    return credentials.username
