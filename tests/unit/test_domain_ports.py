"""
Unit tests for domain ports and exceptions.

Tests verify:
- Status enums are str mixins with the stored values
- Every exception carries its machine-readable error kind
- Adapters satisfy the ports structurally
- Domain purity (zero framework imports)
"""

import subprocess
from pathlib import Path

import pytest

import registrar_checkout.domain as domain
from fakes import FakeGateway, FakeRegistrar, InMemoryOrderRepository
from registrar_checkout.domain.exceptions import (
    AmountMismatch,
    ChargeNotCaptured,
    ChargeNotFound,
    CheckoutError,
    DuplicateCharge,
    DuplicateChargeConflict,
    GatewayUnavailable,
    InvalidCart,
    OrderIdMismatch,
    PaymentVerificationError,
    PendingAlreadyResolved,
    PendingDomainNotFound,
    PendingInProgress,
    PendingNotRetryable,
    PersistenceFailure,
    RestrictedDomainsRejected,
    SignatureInvalid,
)
from registrar_checkout.domain.ports import (
    DomainStatus,
    ErrorKind,
    OrderStatus,
    PendingStatus,
    RegistrarErrorKind,
)

DOMAIN_DIR = Path(domain.__file__).parent


class TestStatusEnums:
    @pytest.mark.parametrize(
        "enum_cls", [ErrorKind, OrderStatus, DomainStatus, PendingStatus, RegistrarErrorKind]
    )
    def test_is_str_mixin(self, enum_cls) -> None:
        """Stored and serialized as plain strings."""
        assert issubclass(enum_cls, str)

    def test_pending_values(self) -> None:
        assert [s.value for s in PendingStatus] == [
            "pending",
            "processing",
            "registered",
            "failed",
        ]

    def test_terminal_pending_statuses(self) -> None:
        assert PendingStatus.REGISTERED.is_terminal
        assert PendingStatus.FAILED.is_terminal
        assert not PendingStatus.PENDING.is_terminal
        assert not PendingStatus.PROCESSING.is_terminal


class TestDomainExceptions:
    @pytest.mark.parametrize(
        ("exc_cls", "kind"),
        [
            (InvalidCart, ErrorKind.INVALID_CART),
            (SignatureInvalid, ErrorKind.SIGNATURE_INVALID),
            (ChargeNotFound, ErrorKind.CHARGE_NOT_FOUND),
            (ChargeNotCaptured, ErrorKind.CHARGE_NOT_CAPTURED),
            (AmountMismatch, ErrorKind.AMOUNT_MISMATCH),
            (OrderIdMismatch, ErrorKind.ORDER_ID_MISMATCH),
            (GatewayUnavailable, ErrorKind.GATEWAY_UNAVAILABLE),
            (DuplicateChargeConflict, ErrorKind.DUPLICATE_CHARGE),
            (PersistenceFailure, ErrorKind.PERSISTENCE_FAILURE),
            (PendingDomainNotFound, ErrorKind.PENDING_NOT_FOUND),
            (PendingAlreadyResolved, ErrorKind.PENDING_ALREADY_RESOLVED),
            (PendingNotRetryable, ErrorKind.PENDING_NOT_RETRYABLE),
            (PendingInProgress, ErrorKind.PENDING_IN_PROGRESS),
        ],
    )
    def test_error_kind_and_message(self, exc_cls, kind) -> None:
        exc = exc_cls("something went wrong")

        assert isinstance(exc, CheckoutError)
        assert exc.error_kind == kind
        assert exc.message == "something went wrong"

    @pytest.mark.parametrize(
        "exc_cls",
        [SignatureInvalid, ChargeNotFound, ChargeNotCaptured, AmountMismatch, OrderIdMismatch],
    )
    def test_verification_errors_share_base(self, exc_cls) -> None:
        assert issubclass(exc_cls, PaymentVerificationError)

    def test_duplicate_charge_keeps_charge_id(self) -> None:
        exc = DuplicateCharge("pay_abc")

        assert exc.gateway_charge_id == "pay_abc"
        assert exc.error_kind == ErrorKind.DUPLICATE_CHARGE

    def test_restricted_domains_carry_details(self) -> None:
        exc = RestrictedDomainsRejected("nope", restricted_domains=[], support_contact="help")

        assert exc.error_kind == ErrorKind.RESTRICTED_DOMAIN
        assert exc.support_contact == "help"


class TestPortConformance:
    """Fakes and adapters implement the ports by structure, not inheritance."""

    def test_fakes_expose_port_methods(self) -> None:
        assert callable(FakeGateway().get_charge)
        registrar = FakeRegistrar()
        assert callable(registrar.register_domain)
        assert callable(registrar.get_or_create_customer_and_contact)
        orders = InMemoryOrderRepository()
        for name in (
            "find_by_charge_id",
            "find_by_order_id",
            "insert",
            "append_status_event",
            "sync_domain_outcome",
            "record_rejection",
        ):
            assert callable(getattr(orders, name))


class TestDomainPurity:
    """The domain layer imports no framework or driver."""

    @pytest.mark.parametrize("package", ["fastapi", "pydantic", "psycopg", "httpx", "bcrypt"])
    def test_no_framework_imports_in_domain(self, package: str) -> None:
        result = subprocess.run(
            ["grep", "-rE", f"^(from|import) {package}", str(DOMAIN_DIR)],
            capture_output=True,
            text=True,
        )
        assert result.returncode != 0, f"{package} import found: {result.stdout}"
