"""
Domain model - Orders, domain outcomes and pending domain records.

Plain dataclasses with no framework dependencies. Money is held as
Decimal in major units (rupees); gateway amounts are integers in minor
units (paise) and only meet the cart prices inside the verifier.
"""

import secrets
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum

from .ports import DomainStatus, OrderStatus, PendingStatus

_BASE36 = string.digits + string.ascii_lowercase
_INVOICE_ALPHABET = string.digits + string.ascii_uppercase

# Policy: a verified payment always yields a completed order. Registration
# failures are recorded on the individual DomainOutcome, never on the order.
ORDER_STATUS_ON_VERIFIED_PAYMENT = OrderStatus.COMPLETED

DAYS_PER_REGISTRATION_YEAR = 365


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _random_token(alphabet: str, length: int) -> str:
    return "".join(secrets.choice(alphabet) for _ in range(length))


def new_order_id() -> str:
    """Generate an order id of the form ord_<epoch ms>_<6 base36 chars>."""
    return f"ord_{int(time.time() * 1000)}_{_random_token(_BASE36, 6)}"


def new_payment_id() -> str:
    """Generate the internal payment reference stored alongside the order."""
    return f"pay_{int(time.time() * 1000)}_{_random_token(_BASE36, 6)}"


def new_invoice_number() -> str:
    """Generate an invoice number of the form INV-<last 6 ms digits>-<3 chars>."""
    timestamp = str(int(time.time() * 1000))[-6:]
    return f"INV-{timestamp}-{_random_token(_INVOICE_ALPHABET, 3)}"


def registration_expiry(start: datetime, years: int) -> datetime:
    return start + timedelta(days=DAYS_PER_REGISTRATION_YEAR * years)


class BookingStep(str, Enum):
    """Steps of the per-domain booking audit trail, with their progress."""

    PAYMENT_VERIFIED = "payment_verified"
    CUSTOMER_CREATED = "customer_created"
    DOMAIN_REGISTERING = "domain_registering"
    DOMAIN_REGISTERED = "domain_registered"
    DOMAIN_FAILED = "domain_failed"

    @property
    def progress(self) -> int:
        return _STEP_PROGRESS[self]


_STEP_PROGRESS = {
    BookingStep.PAYMENT_VERIFIED: 10,
    BookingStep.CUSTOMER_CREATED: 30,
    BookingStep.DOMAIN_REGISTERING: 50,
    BookingStep.DOMAIN_REGISTERED: 100,
    BookingStep.DOMAIN_FAILED: 0,
}


@dataclass(frozen=True)
class ChargeConfirmation:
    """Client-supplied proof of payment. Only the identifiers are ever trusted."""

    gateway_order_id: str
    gateway_charge_id: str
    signature: str


@dataclass(frozen=True)
class CartItem:
    """
    One domain in the checkout.

    price is the total for the whole registration period, which is what
    the customer was charged for this line.
    """

    domain_name: str
    price: Decimal
    currency: str = "INR"
    registration_period: int = 1

    @property
    def tld(self) -> str:
        """Everything after the first label, so example.co.uk -> co.uk."""
        _, _, suffix = self.domain_name.partition(".")
        return suffix.lower()


@dataclass(frozen=True)
class Address:
    line1: str
    city: str
    state: str
    country: str
    zipcode: str


@dataclass(frozen=True)
class CustomerProfile:
    """Storefront user the order belongs to."""

    user_id: str
    email: str
    first_name: str
    last_name: str
    phone: str | None = None
    phone_cc: str | None = None
    company_name: str | None = None
    address: Address | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class StatusEvent:
    """One entry of a domain's append-only audit trail."""

    step: str
    message: str
    progress: int
    timestamp: datetime = field(default_factory=utcnow)

    @classmethod
    def for_step(cls, step: BookingStep, message: str) -> "StatusEvent":
        return cls(step=step.value, message=message, progress=step.progress)


@dataclass
class DomainOutcome:
    """Registration result for one cart item, embedded in the order."""

    domain_name: str
    price: Decimal
    currency: str
    registration_period: int
    status: DomainStatus
    error: str | None = None
    registrar_order_id: str | None = None
    expires_at: datetime | None = None
    registered_at: datetime | None = None
    events: list[StatusEvent] = field(default_factory=list)


@dataclass(frozen=True)
class PaymentVerificationSnapshot:
    """What the gateway reported at verification time, kept for audits."""

    verified_at: datetime
    payment_status: str
    payment_amount: int
    payment_currency: str
    gateway_order_id: str


@dataclass
class Order:
    """Aggregate root: one order per captured gateway charge."""

    order_id: str
    invoice_number: str | None
    payment_id: str
    user_id: str
    gateway_charge_id: str
    gateway_order_id: str
    gateway_signature: str
    amount: Decimal
    currency: str
    status: OrderStatus
    domains: list[DomainOutcome]
    successful_domains: list[str]
    payment_verification: PaymentVerificationSnapshot
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def failed_domains(self) -> list[str]:
        return [d.domain_name for d in self.domains if d.status == DomainStatus.FAILED]

    def outcome_for(self, domain_name: str) -> DomainOutcome | None:
        for outcome in self.domains:
            if outcome.domain_name == domain_name:
                return outcome
        return None


@dataclass
class PendingDomainRecord:
    """Recovery record for a paid domain whose registration failed."""

    domain_name: str
    price: Decimal
    currency: str
    registration_period: int
    user_id: str
    order_id: str
    customer_id: str | None
    contact_id: str | None
    reason: str
    status: PendingStatus = PendingStatus.PENDING
    name_servers: list[str] | None = None
    admin_notes: str | None = None
    verification_attempts: int = 0
    last_verified_at: datetime | None = None
    registrar_order_id: str | None = None
    registered_at: datetime | None = None
    expires_at: datetime | None = None
    id: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class RestrictedDomain:
    domain_name: str
    reason: str


@dataclass(frozen=True)
class ChargeRejection:
    """Audit record for a captured charge whose cart was refused."""

    gateway_charge_id: str
    gateway_order_id: str
    user_id: str
    amount: int
    currency: str
    restricted_domains: list[RestrictedDomain]
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class DomainResult:
    domain_name: str
    status: DomainStatus
    registrar_order_id: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class OrderResult:
    """
    Caller-facing summary of an order.

    Built the same way for fresh orders and idempotent replays, so both
    responses are identical.
    """

    order_id: str
    invoice_number: str | None
    per_domain_results: list[DomainResult]
    successful_domains: list[str]

    @classmethod
    def from_order(cls, order: Order) -> "OrderResult":
        return cls(
            order_id=order.order_id,
            invoice_number=order.invoice_number,
            per_domain_results=[
                DomainResult(
                    domain_name=d.domain_name,
                    status=d.status,
                    registrar_order_id=d.registrar_order_id,
                    error=d.error,
                )
                for d in order.domains
            ],
            successful_domains=list(order.successful_domains),
        )
