"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the checkout domain requires
from infrastructure, plus the tagged result types those ports return.
Adapters implement these protocols by structural subtyping.

External calls that can fail for reasons outside our control (registrar
requests) return an explicit success/failure value instead of raising, so
callers handle both branches with isinstance() instead of string matching.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from .models import (
        ChargeRejection,
        CustomerProfile,
        Order,
        PendingDomainRecord,
        StatusEvent,
    )


class ErrorKind(str, Enum):
    """Machine-readable error tags reported to callers."""

    SIGNATURE_INVALID = "signature_invalid"
    CHARGE_NOT_FOUND = "charge_not_found"
    CHARGE_NOT_CAPTURED = "charge_not_captured"
    AMOUNT_MISMATCH = "amount_mismatch"
    ORDER_ID_MISMATCH = "order_id_mismatch"
    GATEWAY_UNAVAILABLE = "gateway_unavailable"
    RESTRICTED_DOMAIN = "restricted_domain"
    DUPLICATE_CHARGE = "duplicate_charge"
    PERSISTENCE_FAILURE = "persistence_failure"
    INVALID_CART = "invalid_cart"
    PENDING_NOT_FOUND = "pending_not_found"
    PENDING_ALREADY_RESOLVED = "pending_already_resolved"
    PENDING_NOT_RETRYABLE = "pending_not_retryable"
    PENDING_IN_PROGRESS = "pending_in_progress"


class OrderStatus(str, Enum):
    """
    Overall order status.

    The orchestrator only ever writes COMPLETED: once the charge is verified
    the order is complete, and registration problems are tracked per domain.
    FAILED exists for records written by other tooling.
    """

    COMPLETED = "completed"
    FAILED = "failed"


class DomainStatus(str, Enum):
    """Per-domain registration outcome stored on the order."""

    REGISTERED = "registered"
    FAILED = "failed"


class PendingStatus(str, Enum):
    """
    Pending domain lifecycle.

    Transitions:
    - PENDING -> PROCESSING (admin retry started)
    - PENDING -> REGISTERED or FAILED (admin resolution or availability check)
    - PROCESSING -> REGISTERED or FAILED (retry finished; only the retry itself)

    REGISTERED and FAILED are terminal. A terminal record can be resolved
    again only to the same status, which is a no-op.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    REGISTERED = "registered"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PendingStatus.REGISTERED, PendingStatus.FAILED)


class RegistrarErrorKind(str, Enum):
    """Why a registrar call failed."""

    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    CONFLICT = "conflict"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    TIMEOUT = "timeout"
    NETWORK = "network"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class GatewayCharge:
    """Gateway's authoritative record of a charge. Amount is in minor units."""

    charge_id: str
    status: str
    amount: int
    currency: str
    order_id: str


@dataclass(frozen=True)
class CustomerIdentity:
    """Registrar-side customer and contact ids for one storefront user."""

    customer_id: str
    contact_id: str


@dataclass(frozen=True)
class DomainRegistrationRequest:
    """Parameters for a single register-domain call."""

    domain_name: str
    years: int
    customer_id: str
    admin_contact_id: str
    tech_contact_id: str
    billing_contact_id: str
    name_servers: list[str] | None = None


@dataclass(frozen=True)
class RegistrarSuccess:
    """Registrar accepted the request."""

    registrar_order_id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RegistrarFailure:
    """Registrar rejected the request or could not be reached."""

    kind: RegistrarErrorKind
    message: str


class AvailabilityStatus(str, Enum):
    """Registry status of a domain name as reported by the registrar."""

    AVAILABLE = "available"
    REGISTERED_THROUGH_US = "regthroughus"
    REGISTERED_THROUGH_OTHERS = "regthroughothers"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class DomainAvailability:
    domain_name: str
    status: AvailabilityStatus


class PaymentGateway(Protocol):
    """Port interface for the payment gateway."""

    def get_charge(self, charge_id: str) -> GatewayCharge:
        """
        Fetch the gateway's record of a charge.

        Raises:
            ChargeNotFound: Gateway has no such charge
            GatewayUnavailable: Gateway could not be reached
        """
        ...


class Registrar(Protocol):
    """Port interface for the domain registrar."""

    def get_or_create_customer_and_contact(
        self, profile: CustomerProfile
    ) -> CustomerIdentity | RegistrarFailure:
        """Idempotent upsert of the registrar customer and contact, keyed by email."""
        ...

    def register_domain(
        self, request: DomainRegistrationRequest
    ) -> RegistrarSuccess | RegistrarFailure:
        """Register one domain. Never raises for registrar-side failures."""
        ...

    def check_availability(self, domain_name: str) -> DomainAvailability | RegistrarFailure:
        """
        Look a domain up at the registry.

        Used after a failed or timed-out registration to learn whether the
        domain was registered anyway.
        """
        ...


class OrderRepository(Protocol):
    """Port interface for order persistence."""

    def find_by_charge_id(self, gateway_charge_id: str) -> Order | None:
        """Idempotency lookup by gateway charge id."""
        ...

    def find_by_order_id(self, order_id: str) -> Order | None:
        ...

    def insert(self, order: Order) -> None:
        """
        Insert a new order with its domain outcomes and status events.

        Raises:
            DuplicateCharge: An order already exists for order.gateway_charge_id
        """
        ...

    def append_status_event(self, order_id: str, domain_name: str, event: StatusEvent) -> bool:
        """Append an event to a domain outcome. Returns False if no such outcome."""
        ...

    def sync_domain_outcome(
        self,
        order_id: str,
        domain_name: str,
        status: DomainStatus,
        event: StatusEvent,
        error: str | None = None,
        registrar_order_id: str | None = None,
        expires_at: datetime | None = None,
    ) -> bool | None:
        """
        Move a domain outcome to a terminal status, idempotently.

        Returns:
            True if the outcome changed (event appended), False if it already
            had that status, None if the order or outcome does not exist.
        """
        ...

    def record_rejection(self, rejection: ChargeRejection) -> None:
        """Store an audit record for a rejected, already-captured charge. Idempotent."""
        ...


class PendingDomainRepository(Protocol):
    """Port interface for pending domain persistence."""

    def insert(self, record: PendingDomainRecord) -> PendingDomainRecord:
        """Insert a record; returns the stored one if (order_id, domain_name) exists."""
        ...

    def get(self, pending_id: str) -> PendingDomainRecord | None:
        ...

    def list_by_status(self, status: PendingStatus | None = None) -> list[PendingDomainRecord]:
        """Records with the given status (all records if None), newest first."""
        ...

    def mark_processing(self, pending_id: str) -> PendingDomainRecord | None:
        """Atomically move a PENDING record to PROCESSING. None if it was not PENDING."""
        ...

    def record_verification(
        self, pending_id: str, reason: str | None = None
    ) -> PendingDomainRecord | None:
        """
        Count an availability check on a PENDING record and update its reason.

        None if the record does not exist or is no longer PENDING.
        """
        ...

    def find_and_resolve(
        self,
        pending_id: str,
        status: PendingStatus,
        from_status: PendingStatus = PendingStatus.PENDING,
        reason: str | None = None,
        admin_notes: str | None = None,
        registrar_order_id: str | None = None,
        expires_at: datetime | None = None,
    ) -> PendingDomainRecord | None:
        """
        Resolve a record to a terminal status.

        Only records currently in from_status, or already in the requested
        status, are updated. Returns the record as stored afterwards (the
        unchanged record when it matched neither), or None if it does not
        exist.
        """
        ...


class Notifier(Protocol):
    """Port interface for customer and operations notifications."""

    def notify_customer(self, order: Order, customer: CustomerProfile) -> None:
        ...

    def notify_ops(self, order: Order, customer: CustomerProfile) -> None:
        ...

    def alert_ops(self, subject: str, details: dict[str, Any]) -> None:
        """High-priority operator alert (persistence failures, rejected paid charges)."""
        ...
