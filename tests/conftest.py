"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- In-memory repositories and scripted gateway/registrar fakes
- A factory fixture that wires a CheckoutService from them
- A completed checkout with one failed domain, for pending queue tests
"""

from collections.abc import Callable
from unittest.mock import Mock

import pytest

from fakes import (
    GATEWAY_SECRET,
    FakeGateway,
    FakeRegistrar,
    InMemoryOrderRepository,
    InMemoryPendingDomainRepository,
    cart,
    signed_confirmation,
    timeout_failure,
)
from registrar_checkout.domain.checkout import CheckoutService
from registrar_checkout.domain.models import CustomerProfile
from registrar_checkout.domain.pending import PendingDomainService
from registrar_checkout.domain.verification import PaymentVerifier


@pytest.fixture
def customer() -> CustomerProfile:
    return CustomerProfile(
        user_id="user-1",
        email="buyer@example.com",
        first_name="Asha",
        last_name="Rao",
        phone="9876543210",
        phone_cc="91",
    )


@pytest.fixture
def orders() -> InMemoryOrderRepository:
    return InMemoryOrderRepository()


@pytest.fixture
def pending_repo() -> InMemoryPendingDomainRepository:
    return InMemoryPendingDomainRepository()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def registrar() -> FakeRegistrar:
    return FakeRegistrar()


@pytest.fixture
def notifier() -> Mock:
    return Mock()


@pytest.fixture
def pending_service(
    pending_repo: InMemoryPendingDomainRepository,
    orders: InMemoryOrderRepository,
    registrar: FakeRegistrar,
    notifier: Mock,
) -> PendingDomainService:
    return PendingDomainService(
        pending=pending_repo, orders=orders, registrar=registrar, notifier=notifier
    )


@pytest.fixture
def make_service(
    gateway: FakeGateway,
    orders: InMemoryOrderRepository,
    registrar: FakeRegistrar,
    notifier: Mock,
    pending_service: PendingDomainService,
) -> Callable[..., CheckoutService]:
    """Factory for a CheckoutService wired to the in-memory fakes."""

    def _make(**overrides) -> CheckoutService:
        kwargs = {
            "verifier": PaymentVerifier(gateway=gateway, secret=GATEWAY_SECRET),
            "orders": orders,
            "registrar": registrar,
            "notifier": notifier,
            "pending_domains": pending_service,
            "support_contact": "support@example.com",
        }
        kwargs.update(overrides)
        return CheckoutService(**kwargs)

    return _make


@pytest.fixture
def failed_checkout(make_service, gateway, registrar, customer, pending_repo):
    """Checkout where beta.shop timed out. Returns (order_id, pending record)."""
    gateway.add_charge("pay_abc", amount=300000, order_id="order_abc")
    registrar.results["beta.shop"] = timeout_failure(20)
    result = make_service().process(
        signed_confirmation(), cart(("alpha.com", "1200"), ("beta.shop", "1800")), customer
    )
    registrar.results.clear()
    (record,) = pending_repo.records.values()
    return result.order_id, record
