"""
Checkout domain service - Payment-confirmed registration orchestrator.

Runs once the gateway confirms a charge:

    verify -> idempotency lookup -> eligibility -> register each item
           -> persist order -> pending records for failures -> notify

Failure policy
==============

- Verification errors abort before any side effect and propagate.
- An existing order for the charge id is returned unchanged (replay).
- Restricted domains reject the whole cart; an audit record is stored.
- Registrar errors are isolated per item and become failed outcomes.
- The order store's UNIQUE(gateway_charge_id) is the real duplicate guard.
  The upfront lookup only saves registrar calls. A run that loses the
  insert race returns the winner's order.
- Failing to store the order after payment raises PersistenceFailure,
  logged at CRITICAL and alerted.
- Notification errors are logged and swallowed.
"""

import logging
import threading
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from .eligibility import EligibilityFilter
from .exceptions import (
    DuplicateCharge,
    DuplicateChargeConflict,
    InvalidCart,
    PersistenceFailure,
    RestrictedDomainsRejected,
)
from .models import (
    ORDER_STATUS_ON_VERIFIED_PAYMENT,
    BookingStep,
    CartItem,
    ChargeConfirmation,
    ChargeRejection,
    CustomerProfile,
    DomainOutcome,
    Order,
    OrderResult,
    PaymentVerificationSnapshot,
    RestrictedDomain,
    StatusEvent,
    new_invoice_number,
    new_order_id,
    new_payment_id,
    registration_expiry,
    utcnow,
)
from .pending import PendingDomainService
from .ports import (
    CustomerIdentity,
    DomainRegistrationRequest,
    DomainStatus,
    Notifier,
    OrderRepository,
    Registrar,
    RegistrarErrorKind,
    RegistrarFailure,
    RegistrarSuccess,
)
from .verification import PaymentVerifier, VerifiedCharge

logger = logging.getLogger(__name__)

GENERIC_ITEM_ERROR = "Registration failed"
RESTRICTED_MESSAGE = (
    "Some domains in your order require additional verification "
    "and cannot be processed automatically."
)


@dataclass
class IdempotencyGuard:
    """Finds the order already created for a gateway charge, if any."""

    orders: OrderRepository

    def lookup(self, gateway_charge_id: str) -> Order | None:
        return self.orders.find_by_charge_id(gateway_charge_id)


class _CustomerIdentityCache:
    """
    Resolves the registrar customer once per checkout run.

    The first result is cached, failure included: every item of the run
    shares one upsert, and a failed lookup fails the remaining items without
    calling the registrar again.
    """

    def __init__(self, registrar: Registrar, profile: CustomerProfile) -> None:
        self._registrar = registrar
        self._profile = profile
        self._lock = threading.Lock()
        self._result: CustomerIdentity | RegistrarFailure | None = None

    @property
    def identity(self) -> CustomerIdentity | None:
        return self._result if isinstance(self._result, CustomerIdentity) else None

    def resolve(self) -> CustomerIdentity | RegistrarFailure:
        with self._lock:
            if self._result is None:
                try:
                    self._result = self._registrar.get_or_create_customer_and_contact(
                        self._profile
                    )
                except Exception as e:
                    logger.exception(
                        "Registrar customer lookup error for %s", self._profile.email
                    )
                    self._result = RegistrarFailure(
                        kind=RegistrarErrorKind.UNKNOWN, message=str(e)
                    )
            return self._result


@dataclass
class CheckoutService:
    """
    Domain service that turns a confirmed payment into an order.

    max_workers > 1 registers cart items concurrently; outcomes are still
    collected by cart position so the order lists them in cart order.
    """

    verifier: PaymentVerifier
    orders: OrderRepository
    registrar: Registrar
    notifier: Notifier
    pending_domains: PendingDomainService
    eligibility: EligibilityFilter = field(default_factory=EligibilityFilter)
    name_servers: list[str] | None = None
    support_contact: str = "support@example.com"
    max_workers: int = 1

    def __post_init__(self) -> None:
        self.guard = IdempotencyGuard(self.orders)

    def process(
        self,
        confirmation: ChargeConfirmation,
        items: Sequence[CartItem],
        customer: CustomerProfile,
    ) -> OrderResult:
        """
        Verify a payment and register every domain in the cart.

        Args:
            confirmation: Gateway order id, charge id and signature from the client
            items: Cart line items, in display order
            customer: Storefront user who paid

        Returns:
            OrderResult for the new order, or for the existing order of this charge

        Raises:
            InvalidCart: Empty cart, duplicate domains or mixed currencies
            PaymentVerificationError: Any verification failure (nothing persisted)
            RestrictedDomainsRejected: Cart contains restricted domains
            DuplicateChargeConflict: Lost the insert race and the winner is unreadable
            PersistenceFailure: Order could not be stored after payment
        """
        currency = self._validate_cart(items)
        verified = self.verifier.verify(confirmation, items, currency)
        verified_at = utcnow()
        logger.info(
            "Payment verified for charge %s (%d item(s))",
            confirmation.gateway_charge_id,
            len(items),
        )

        existing = self.guard.lookup(confirmation.gateway_charge_id)
        if existing is not None:
            logger.warning(
                "Charge %s already processed as order %s, replaying result",
                confirmation.gateway_charge_id,
                existing.order_id,
            )
            return OrderResult.from_order(existing)

        report = self.eligibility.filter(items)
        if report.has_restrictions:
            self._reject(verified, customer, report.restricted)

        identities = _CustomerIdentityCache(self.registrar, customer)
        outcomes = self._register_all(items, identities)

        order = self._build_order(verified, items, customer, outcomes, currency, verified_at)
        logger.info(
            "Registration summary for order %s: %d/%d registered",
            order.order_id,
            len(order.successful_domains),
            len(order.domains),
        )

        try:
            self.orders.insert(order)
        except DuplicateCharge:
            return self._replay_lost_race(confirmation.gateway_charge_id)
        except Exception as e:
            self._escalate_persistence_failure(order, e)
            raise PersistenceFailure(
                "Payment was captured but the order could not be saved. "
                "Support has been alerted."
            ) from e
        logger.info("Order %s saved for charge %s", order.order_id, order.gateway_charge_id)

        self._create_pending_records(order, identities.identity)
        self._notify(order, customer)
        return OrderResult.from_order(order)

    def _validate_cart(self, items: Sequence[CartItem]) -> str:
        """Check the cart is usable and return its currency."""
        if not items:
            raise InvalidCart("Cart items are required")

        names = [item.domain_name for item in items]
        if len(set(names)) != len(names):
            raise InvalidCart("Each domain may appear only once in a checkout")

        currencies = {item.currency.upper() for item in items}
        if len(currencies) != 1:
            raise InvalidCart("All cart items must use the same currency")

        return currencies.pop()

    def _reject(
        self,
        verified: VerifiedCharge,
        customer: CustomerProfile,
        restricted: list[RestrictedDomain],
    ) -> None:
        """Record the refused, already-paid charge and raise."""
        charge = verified.charge
        logger.error(
            "Charge %s rejected, restricted domains: %s",
            charge.charge_id,
            ", ".join(r.domain_name for r in restricted),
        )
        rejection = ChargeRejection(
            gateway_charge_id=charge.charge_id,
            gateway_order_id=charge.order_id,
            user_id=customer.user_id,
            amount=charge.amount,
            currency=charge.currency,
            restricted_domains=restricted,
        )
        try:
            self.orders.record_rejection(rejection)
        except Exception:
            logger.exception("Could not store rejection record for charge %s", charge.charge_id)

        self._alert(
            "Paid charge rejected: restricted domains",
            {
                "gateway_charge_id": charge.charge_id,
                "gateway_order_id": charge.order_id,
                "customer_email": customer.email,
                "amount": charge.amount,
                "currency": charge.currency,
                "restricted_domains": [r.domain_name for r in restricted],
            },
        )
        raise RestrictedDomainsRejected(
            RESTRICTED_MESSAGE,
            restricted_domains=restricted,
            support_contact=self.support_contact,
        )

    def _register_all(
        self, items: Sequence[CartItem], identities: _CustomerIdentityCache
    ) -> list[DomainOutcome]:
        if self.max_workers <= 1 or len(items) == 1:
            return [self._register_item(item, identities) for item in items]

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(items))) as executor:
            futures = [executor.submit(self._register_item, item, identities) for item in items]
            return [future.result() for future in futures]

    def _register_item(self, item: CartItem, identities: _CustomerIdentityCache) -> DomainOutcome:
        """Register one domain. Never raises: every failure becomes a failed outcome."""
        outcome = DomainOutcome(
            domain_name=item.domain_name,
            price=item.price,
            currency=item.currency,
            registration_period=item.registration_period,
            status=DomainStatus.FAILED,
            events=[StatusEvent.for_step(BookingStep.PAYMENT_VERIFIED, "Payment verified")],
        )
        logger.info("Registering domain %s", item.domain_name)

        try:
            identity = identities.resolve()
            if isinstance(identity, RegistrarFailure):
                return self._fail(
                    outcome, f"Could not create registrar customer: {identity.message}"
                )
            outcome.events.append(
                StatusEvent.for_step(BookingStep.CUSTOMER_CREATED, "Registrar customer ready")
            )

            outcome.events.append(
                StatusEvent.for_step(
                    BookingStep.DOMAIN_REGISTERING, f"Registering {item.domain_name}"
                )
            )
            result = self.registrar.register_domain(
                DomainRegistrationRequest(
                    domain_name=item.domain_name,
                    years=item.registration_period,
                    customer_id=identity.customer_id,
                    admin_contact_id=identity.contact_id,
                    tech_contact_id=identity.contact_id,
                    billing_contact_id=identity.contact_id,
                    name_servers=self.name_servers,
                )
            )
        except Exception:
            logger.exception("Domain registration error for %s", item.domain_name)
            return self._fail(outcome, GENERIC_ITEM_ERROR)

        if isinstance(result, RegistrarSuccess):
            now = utcnow()
            outcome.status = DomainStatus.REGISTERED
            outcome.registrar_order_id = result.registrar_order_id
            outcome.registered_at = now
            outcome.expires_at = registration_expiry(now, item.registration_period)
            outcome.events.append(
                StatusEvent.for_step(
                    BookingStep.DOMAIN_REGISTERED, f"{item.domain_name} registered successfully"
                )
            )
            logger.info("Domain registration successful: %s", item.domain_name)
            return outcome

        return self._fail(outcome, result.message)

    def _fail(self, outcome: DomainOutcome, error: str) -> DomainOutcome:
        logger.error("Domain registration failed: %s - %s", outcome.domain_name, error)
        outcome.status = DomainStatus.FAILED
        outcome.error = error
        outcome.events.append(
            StatusEvent.for_step(
                BookingStep.DOMAIN_FAILED, f"Domain registration failed: {error}"
            )
        )
        return outcome

    def _build_order(
        self,
        verified: VerifiedCharge,
        items: Sequence[CartItem],
        customer: CustomerProfile,
        outcomes: list[DomainOutcome],
        currency: str,
        verified_at: datetime,
    ) -> Order:
        charge = verified.charge
        confirmation = verified.confirmation
        amount = sum(
            (Decimal(item.price) * item.registration_period for item in items), Decimal("0")
        )
        return Order(
            order_id=new_order_id(),
            invoice_number=new_invoice_number(),
            payment_id=new_payment_id(),
            user_id=customer.user_id,
            gateway_charge_id=confirmation.gateway_charge_id,
            gateway_order_id=confirmation.gateway_order_id,
            gateway_signature=confirmation.signature,
            amount=amount,
            currency=currency,
            status=ORDER_STATUS_ON_VERIFIED_PAYMENT,
            domains=outcomes,
            successful_domains=[
                o.domain_name for o in outcomes if o.status == DomainStatus.REGISTERED
            ],
            payment_verification=PaymentVerificationSnapshot(
                verified_at=verified_at,
                payment_status=charge.status,
                payment_amount=charge.amount,
                payment_currency=charge.currency,
                gateway_order_id=charge.order_id,
            ),
        )

    def _replay_lost_race(self, gateway_charge_id: str) -> OrderResult:
        winner = self.guard.lookup(gateway_charge_id)
        if winner is None:
            logger.error(
                "Charge %s hit the unique constraint but no order was found", gateway_charge_id
            )
            raise DuplicateChargeConflict("This payment has already been processed.")
        logger.warning(
            "Charge %s processed concurrently, returning order %s",
            gateway_charge_id,
            winner.order_id,
        )
        return OrderResult.from_order(winner)

    def _escalate_persistence_failure(self, order: Order, error: Exception) -> None:
        logger.critical(
            "PAYMENT CAPTURED BUT ORDER NOT SAVED: charge=%s order=%s user=%s amount=%s %s "
            "registered=%s error=%s",
            order.gateway_charge_id,
            order.order_id,
            order.user_id,
            order.amount,
            order.currency,
            order.successful_domains,
            error,
        )
        self._alert(
            "Order persistence failure after payment",
            {
                "gateway_charge_id": order.gateway_charge_id,
                "gateway_order_id": order.gateway_order_id,
                "order_id": order.order_id,
                "user_id": order.user_id,
                "amount": str(order.amount),
                "currency": order.currency,
                "successful_domains": order.successful_domains,
                "failed_domains": order.failed_domains,
                "error": str(error),
            },
        )

    def _create_pending_records(self, order: Order, identity: CustomerIdentity | None) -> None:
        for outcome in order.domains:
            if outcome.status != DomainStatus.FAILED:
                continue
            try:
                self.pending_domains.create_pending(order, outcome, identity, self.name_servers)
            except Exception:
                logger.exception(
                    "Could not create pending record for %s in order %s",
                    outcome.domain_name,
                    order.order_id,
                )

    def _notify(self, order: Order, customer: CustomerProfile) -> None:
        for label, send in (
            ("customer", self.notifier.notify_customer),
            ("ops", self.notifier.notify_ops),
        ):
            try:
                send(order, customer)
            except Exception:
                logger.exception(
                    "Failed to send %s notification for order %s", label, order.order_id
                )

    def _alert(self, subject: str, details: dict) -> None:
        try:
            self.notifier.alert_ops(subject, details)
        except Exception:
            logger.exception("Failed to send ops alert: %s", subject)
