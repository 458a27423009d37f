"""
In-memory and scripted implementations of the domain ports for tests.
"""

import copy
import threading
import time
import uuid
from dataclasses import replace
from decimal import Decimal

from registrar_checkout.domain.exceptions import ChargeNotFound, DuplicateCharge
from registrar_checkout.domain.models import (
    CartItem,
    ChargeConfirmation,
    ChargeRejection,
    CustomerProfile,
    Order,
    PendingDomainRecord,
    StatusEvent,
    utcnow,
)
from registrar_checkout.domain.ports import (
    AvailabilityStatus,
    CustomerIdentity,
    DomainAvailability,
    DomainRegistrationRequest,
    DomainStatus,
    GatewayCharge,
    PendingStatus,
    RegistrarErrorKind,
    RegistrarFailure,
    RegistrarSuccess,
)
from registrar_checkout.domain.verification import compute_signature

GATEWAY_SECRET = "test_key_secret"


class InMemoryOrderRepository:
    """OrderRepository port backed by a dict. Stores copies, like a database would."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.orders: dict[str, Order] = {}
        self.rejections: list[ChargeRejection] = []
        self.insert_error: Exception | None = None

    def find_by_charge_id(self, gateway_charge_id: str) -> Order | None:
        with self._lock:
            order = self.orders.get(gateway_charge_id)
            return copy.deepcopy(order) if order else None

    def find_by_order_id(self, order_id: str) -> Order | None:
        with self._lock:
            for order in self.orders.values():
                if order.order_id == order_id:
                    return copy.deepcopy(order)
        return None

    def insert(self, order: Order) -> None:
        if self.insert_error is not None:
            raise self.insert_error
        with self._lock:
            if order.gateway_charge_id in self.orders:
                raise DuplicateCharge(order.gateway_charge_id)
            self.orders[order.gateway_charge_id] = copy.deepcopy(order)

    def append_status_event(self, order_id: str, domain_name: str, event: StatusEvent) -> bool:
        with self._lock:
            outcome = self._outcome(order_id, domain_name)
            if outcome is None:
                return False
            outcome.events.append(event)
            return True

    def sync_domain_outcome(
        self,
        order_id,
        domain_name,
        status,
        event,
        error=None,
        registrar_order_id=None,
        expires_at=None,
    ):
        with self._lock:
            order = self._order(order_id)
            outcome = self._outcome(order_id, domain_name)
            if order is None or outcome is None:
                return None
            if outcome.status == status:
                return False
            outcome.status = status
            outcome.error = None if status == DomainStatus.REGISTERED else (error or outcome.error)
            outcome.registrar_order_id = registrar_order_id or outcome.registrar_order_id
            outcome.expires_at = expires_at or outcome.expires_at
            if status == DomainStatus.REGISTERED and outcome.registered_at is None:
                outcome.registered_at = utcnow()
            outcome.events.append(event)
            order.successful_domains = [
                d.domain_name for d in order.domains if d.status == DomainStatus.REGISTERED
            ]
            return True

    def record_rejection(self, rejection: ChargeRejection) -> None:
        with self._lock:
            if all(r.gateway_charge_id != rejection.gateway_charge_id for r in self.rejections):
                self.rejections.append(rejection)

    def _order(self, order_id: str) -> Order | None:
        for order in self.orders.values():
            if order.order_id == order_id:
                return order
        return None

    def _outcome(self, order_id: str, domain_name: str):
        order = self._order(order_id)
        return order.outcome_for(domain_name) if order else None


class InMemoryPendingDomainRepository:
    """PendingDomainRepository port backed by a dict."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.records: dict[str, PendingDomainRecord] = {}

    def insert(self, record: PendingDomainRecord) -> PendingDomainRecord:
        with self._lock:
            for existing in self.records.values():
                same_key = (existing.order_id, existing.domain_name) == (
                    record.order_id,
                    record.domain_name,
                )
                if same_key:
                    return replace(existing)
            stored = replace(record, id=str(uuid.uuid4()))
            self.records[stored.id] = stored
            return replace(stored)

    def get(self, pending_id: str) -> PendingDomainRecord | None:
        with self._lock:
            record = self.records.get(pending_id)
            return replace(record) if record else None

    def mark_processing(self, pending_id: str) -> PendingDomainRecord | None:
        with self._lock:
            record = self.records.get(pending_id)
            if record is None or record.status != PendingStatus.PENDING:
                return None
            record.status = PendingStatus.PROCESSING
            record.verification_attempts += 1
            record.last_verified_at = utcnow()
            return replace(record)

    def list_by_status(self, status=None) -> list[PendingDomainRecord]:
        with self._lock:
            records = [
                replace(r) for r in self.records.values() if status is None or r.status == status
            ]
        return sorted(records, key=lambda r: r.created_at, reverse=True)

    def record_verification(self, pending_id, reason=None):
        with self._lock:
            record = self.records.get(pending_id)
            if record is None or record.status != PendingStatus.PENDING:
                return None
            record.verification_attempts += 1
            record.last_verified_at = utcnow()
            record.reason = reason or record.reason
            return replace(record)

    def find_and_resolve(
        self,
        pending_id,
        status,
        from_status=PendingStatus.PENDING,
        reason=None,
        admin_notes=None,
        registrar_order_id=None,
        expires_at=None,
    ):
        with self._lock:
            record = self.records.get(pending_id)
            if record is None:
                return None
            if record.status not in (from_status, status):
                return replace(record)
            record.status = status
            record.reason = reason or record.reason
            record.admin_notes = admin_notes or record.admin_notes
            record.registrar_order_id = registrar_order_id or record.registrar_order_id
            record.expires_at = expires_at or record.expires_at
            if status == PendingStatus.REGISTERED and record.registered_at is None:
                record.registered_at = utcnow()
            return replace(record)


class FakeGateway:
    """PaymentGateway port returning scripted charges."""

    def __init__(self) -> None:
        self.charges: dict[str, GatewayCharge] = {}
        self.calls: list[str] = []

    def add_charge(
        self,
        charge_id: str,
        amount: int,
        order_id: str,
        status: str = "captured",
        currency: str = "INR",
    ) -> None:
        self.charges[charge_id] = GatewayCharge(
            charge_id=charge_id, status=status, amount=amount, currency=currency, order_id=order_id
        )

    def get_charge(self, charge_id: str) -> GatewayCharge:
        self.calls.append(charge_id)
        if charge_id not in self.charges:
            raise ChargeNotFound("Payment not found")
        return self.charges[charge_id]


class FakeRegistrar:
    """
    Registrar port with per-domain scripted results.

    results maps a domain name to a RegistrarSuccess, a RegistrarFailure or
    an exception instance to raise. Unlisted domains succeed. delays maps a
    domain name to seconds to sleep before answering. availability maps a
    domain name to an AvailabilityStatus, a RegistrarFailure or an exception;
    unlisted domains are available.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.results: dict[str, object] = {}
        self.delays: dict[str, float] = {}
        self.identity: CustomerIdentity | RegistrarFailure = CustomerIdentity(
            customer_id="cust-1", contact_id="contact-1"
        )
        self.identity_calls = 0
        self.requests: list[DomainRegistrationRequest] = []
        self.availability: dict[str, object] = {}
        self.availability_checks: list[str] = []

    def get_or_create_customer_and_contact(self, profile: CustomerProfile):
        with self._lock:
            self.identity_calls += 1
        return self.identity

    def register_domain(self, request: DomainRegistrationRequest):
        with self._lock:
            self.requests.append(request)
        delay = self.delays.get(request.domain_name)
        if delay:
            time.sleep(delay)
        result = self.results.get(
            request.domain_name,
            RegistrarSuccess(registrar_order_id=f"rc-{request.domain_name}"),
        )
        if isinstance(result, Exception):
            raise result
        return result

    def check_availability(self, domain_name: str):
        with self._lock:
            self.availability_checks.append(domain_name)
        result = self.availability.get(domain_name, AvailabilityStatus.AVAILABLE)
        if isinstance(result, Exception):
            raise result
        if isinstance(result, AvailabilityStatus):
            return DomainAvailability(domain_name=domain_name, status=result)
        return result


def timeout_failure(seconds: int = 20) -> RegistrarFailure:
    return RegistrarFailure(
        kind=RegistrarErrorKind.TIMEOUT, message=f"Registrar request timed out after {seconds}s"
    )


def signed_confirmation(
    gateway_order_id: str = "order_abc",
    gateway_charge_id: str = "pay_abc",
    secret: str = GATEWAY_SECRET,
) -> ChargeConfirmation:
    return ChargeConfirmation(
        gateway_order_id=gateway_order_id,
        gateway_charge_id=gateway_charge_id,
        signature=compute_signature(gateway_order_id, gateway_charge_id, secret),
    )


def cart(*entries: tuple[str, str], period: int = 1) -> list[CartItem]:
    """Build cart items from (domain_name, price) pairs."""
    return [
        CartItem(domain_name=name, price=Decimal(price), registration_period=period)
        for name, price in entries
    ]

