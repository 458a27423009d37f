"""
Pending domain service - Manual-intervention queue for failed registrations.

A pending record is created for every domain that failed during checkout.
Operators later resolve it (registered or failed), check the registry to
see whether it was registered after all, or ask for a fresh registration
attempt. Resolution writes to two aggregates:

1. the pending record itself (authoritative recovery record), then
2. the matching DomainOutcome on the originating order.

There is no transaction across the two. Step 2 is an idempotent
reconciliation keyed by (order_id, domain_name): it only changes the
outcome and appends a status event when the status actually differs, so
it is safe to repeat. Delivery is at-least-once. If step 2 cannot find
the order or outcome, that is logged and the request still succeeds.

A record in PROCESSING belongs to the retry that claimed it. Only that
retry may resolve it; operators get PendingInProgress until it finishes.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from .exceptions import (
    PendingAlreadyResolved,
    PendingDomainNotFound,
    PendingInProgress,
    PendingNotRetryable,
)
from .models import (
    BookingStep,
    DomainOutcome,
    Order,
    PendingDomainRecord,
    StatusEvent,
    registration_expiry,
    utcnow,
)
from .ports import (
    AvailabilityStatus,
    CustomerIdentity,
    DomainAvailability,
    DomainRegistrationRequest,
    DomainStatus,
    Notifier,
    OrderRepository,
    PendingDomainRepository,
    PendingStatus,
    Registrar,
    RegistrarErrorKind,
    RegistrarFailure,
    RegistrarSuccess,
)

logger = logging.getLogger(__name__)

DEFAULT_PENDING_REASON = "Domain registration failed - likely due to insufficient funds"
ADMIN_REGISTERED_MESSAGE = "Domain registered by admin"
REGISTRY_CONFIRMED_MESSAGE = "Registration confirmed at the registry"

AVAILABILITY_REASONS = {
    AvailabilityStatus.AVAILABLE: "Domain still available - registration has not gone through",
    AvailabilityStatus.REGISTERED_THROUGH_US: (
        "Domain verification successful - registration completed"
    ),
    AvailabilityStatus.REGISTERED_THROUGH_OTHERS: "Domain has been registered by another party",
    AvailabilityStatus.UNKNOWN: "Registry status unknown - check again later",
}


@dataclass
class PendingVerification:
    """Outcome of one registry check. availability is None when the check failed."""

    record: PendingDomainRecord
    availability: AvailabilityStatus | None


@dataclass
class PendingDomainService:
    """Creates, lists, verifies, resolves and retries pending domain records."""

    pending: PendingDomainRepository
    orders: OrderRepository
    registrar: Registrar
    notifier: Notifier

    def create_pending(
        self,
        order: Order,
        outcome: DomainOutcome,
        identity: CustomerIdentity | None,
        name_servers: list[str] | None = None,
        reason: str | None = None,
    ) -> PendingDomainRecord:
        """Queue a failed domain of a stored order for manual resolution."""
        record = PendingDomainRecord(
            domain_name=outcome.domain_name,
            price=outcome.price,
            currency=outcome.currency,
            registration_period=outcome.registration_period,
            user_id=order.user_id,
            order_id=order.order_id,
            customer_id=identity.customer_id if identity else None,
            contact_id=identity.contact_id if identity else None,
            name_servers=name_servers,
            reason=reason or (
                f"Registration failed: {outcome.error}" if outcome.error else DEFAULT_PENDING_REASON
            ),
        )
        stored = self.pending.insert(record)
        logger.info(
            "Pending domain %s queued for order %s (id=%s)",
            stored.domain_name,
            stored.order_id,
            stored.id,
        )
        return stored

    def get(self, pending_id: str) -> PendingDomainRecord:
        record = self.pending.get(pending_id)
        if record is None:
            raise PendingDomainNotFound("Pending domain not found")
        return record

    def list_records(self, status: PendingStatus | None = None) -> list[PendingDomainRecord]:
        return self.pending.list_by_status(status)

    def resolve(
        self,
        pending_id: str,
        status: PendingStatus,
        reason: str | None = None,
        admin_notes: str | None = None,
        registrar_order_id: str | None = None,
    ) -> PendingDomainRecord:
        """
        Resolve a pending domain and sync the originating order.

        Resolving an already-resolved record to the same status is a no-op
        that re-runs the order sync. A different terminal status is refused,
        and so is a record whose registration retry is still running.

        Raises:
            ValueError: status is not terminal
            PendingDomainNotFound: No such record
            PendingInProgress: A registration retry holds the record
            PendingAlreadyResolved: Record already has a different terminal status
        """
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal status")

        current = self.get(pending_id)
        if current.status != status and current.status != PendingStatus.PENDING:
            self._refuse(current)

        expires_at = None
        if status == PendingStatus.REGISTERED and current.expires_at is None:
            expires_at = registration_expiry(utcnow(), current.registration_period)

        record = self.pending.find_and_resolve(
            pending_id,
            status,
            from_status=PendingStatus.PENDING,
            reason=reason,
            admin_notes=admin_notes,
            registrar_order_id=registrar_order_id,
            expires_at=expires_at,
        )
        if record is None:
            raise PendingDomainNotFound("Pending domain not found")
        if record.status != status:
            # Claimed or resolved by someone else between our read and the update.
            self._refuse(record)

        logger.info("Pending domain %s resolved as %s", record.domain_name, status.value)
        self.sync_order_outcome(
            record, reason, new_reason=reason is not None and reason != current.reason
        )
        return record

    def sync_order_outcome(
        self,
        record: PendingDomainRecord,
        reason: str | None = None,
        new_reason: bool = False,
        message: str | None = None,
    ) -> bool:
        """
        Reflect a resolved pending record on its order's domain outcome.

        When the outcome is already failed and the record carries a new
        failure reason, the reason is appended as a status event so the
        order's history keeps it.

        Returns:
            True if the outcome was changed, False if it was already in sync
            or could not be updated.
        """
        if record.status == PendingStatus.REGISTERED:
            domain_status = DomainStatus.REGISTERED
            event = StatusEvent.for_step(
                BookingStep.DOMAIN_REGISTERED, message or ADMIN_REGISTERED_MESSAGE
            )
            error = None
        else:
            domain_status = DomainStatus.FAILED
            error = reason or record.reason
            event = StatusEvent.for_step(
                BookingStep.DOMAIN_FAILED,
                message or f"Domain registration failed: {error or 'Unknown reason'}",
            )

        try:
            changed = self.orders.sync_domain_outcome(
                record.order_id,
                record.domain_name,
                domain_status,
                event,
                error=error,
                registrar_order_id=record.registrar_order_id,
                expires_at=record.expires_at,
            )
            if changed is False and new_reason and domain_status == DomainStatus.FAILED:
                self.orders.append_status_event(record.order_id, record.domain_name, event)
        except Exception:
            logger.exception(
                "Failed to sync pending domain %s with order %s",
                record.domain_name,
                record.order_id,
            )
            return False

        if changed is None:
            logger.warning(
                "Order %s has no domain %s to sync; pending record stays authoritative",
                record.order_id,
                record.domain_name,
            )
            return False
        if changed:
            logger.info(
                "Synced pending domain status to order %s: %s -> %s",
                record.order_id,
                record.domain_name,
                domain_status.value,
            )
        return changed

    def verify(self, pending_ids: Sequence[str]) -> list[PendingVerification]:
        """
        Check at the registry whether pending domains were registered after all.

        A registration that timed out may still have gone through. For each
        PENDING record:

        - registered through our account: resolved as registered
        - registered by another party: resolved as failed
        - still available, unknown, or the check failed: stays pending with
          an updated reason

        Every check counts as a verification attempt. Ids that are unknown or
        not pending are skipped.

        Raises:
            PendingDomainNotFound: None of the ids is a pending record
        """
        records = []
        for pending_id in dict.fromkeys(pending_ids):
            record = self.pending.get(pending_id)
            if record is not None and record.status == PendingStatus.PENDING:
                records.append(record)
        if not records:
            raise PendingDomainNotFound("No pending domains found")

        logger.info("Verifying %d pending domain(s) at the registry", len(records))
        return [self._verify_one(record) for record in records]

    def retry_registration(self, pending_id: str) -> PendingDomainRecord:
        """
        Attempt registration again for a pending record.

        The record is claimed (pending -> processing) first so two operators
        cannot register the same domain twice. The registry is checked before
        registering: a domain already registered through our account is
        resolved without a second registration.

        Raises:
            PendingDomainNotFound: No such record
            PendingNotRetryable: Record is not in pending status
            PendingAlreadyResolved: The result could not be recorded (ops alerted)
        """
        current = self.get(pending_id)
        if current.status != PendingStatus.PENDING:
            raise PendingNotRetryable("Domain is not in pending status")

        claimed = self.pending.mark_processing(pending_id)
        if claimed is None:
            raise PendingNotRetryable("Domain is not in pending status")

        availability = self._check(claimed.domain_name)
        if isinstance(availability, RegistrarFailure):
            logger.warning(
                "Availability check for %s failed (%s); registering anyway",
                claimed.domain_name,
                availability.message,
            )
        elif availability.status == AvailabilityStatus.REGISTERED_THROUGH_US:
            logger.warning(
                "%s is already registered through our account; not registering again",
                claimed.domain_name,
            )
            return self._finish(
                claimed,
                PendingStatus.REGISTERED,
                reason=AVAILABILITY_REASONS[availability.status],
                message=REGISTRY_CONFIRMED_MESSAGE,
            )
        elif availability.status == AvailabilityStatus.REGISTERED_THROUGH_OTHERS:
            return self._finish(
                claimed, PendingStatus.FAILED, reason=AVAILABILITY_REASONS[availability.status]
            )

        result = self._register(claimed)
        if isinstance(result, RegistrarSuccess):
            return self._finish(
                claimed,
                PendingStatus.REGISTERED,
                reason="Domain registered successfully by admin",
                registrar_order_id=result.registrar_order_id,
            )
        return self._finish(
            claimed, PendingStatus.FAILED, reason=f"Registration failed: {result.message}"
        )

    def _verify_one(self, record: PendingDomainRecord) -> PendingVerification:
        availability = self._check(record.domain_name)
        if isinstance(availability, RegistrarFailure):
            stored = self.pending.record_verification(
                record.id, f"Verification failed: {availability.message}"
            )
            return PendingVerification(record=stored or self.get(record.id), availability=None)

        reason = AVAILABILITY_REASONS[availability.status]
        stored = self.pending.record_verification(record.id, reason)
        if stored is None:
            logger.warning("Pending domain %s changed during verification", record.domain_name)
            return PendingVerification(record=self.get(record.id), availability=availability.status)

        if availability.status == AvailabilityStatus.REGISTERED_THROUGH_US:
            stored = self._resolve_verified(stored, PendingStatus.REGISTERED, reason)
        elif availability.status == AvailabilityStatus.REGISTERED_THROUGH_OTHERS:
            stored = self._resolve_verified(stored, PendingStatus.FAILED, reason)
        logger.info(
            "Verified %s: %s (record %s)",
            stored.domain_name,
            availability.status.value,
            stored.status.value,
        )
        return PendingVerification(record=stored, availability=availability.status)

    def _resolve_verified(
        self, record: PendingDomainRecord, status: PendingStatus, reason: str
    ) -> PendingDomainRecord:
        expires_at = None
        if status == PendingStatus.REGISTERED:
            expires_at = registration_expiry(utcnow(), record.registration_period)
        resolved = self.pending.find_and_resolve(
            record.id,
            status,
            from_status=PendingStatus.PENDING,
            reason=reason,
            expires_at=expires_at,
        )
        if resolved is None:
            raise PendingDomainNotFound("Pending domain not found")
        if resolved.status != status:
            logger.warning(
                "Pending domain %s is %s; registry result %s not applied",
                resolved.domain_name,
                resolved.status.value,
                status.value,
            )
            return resolved
        self.sync_order_outcome(
            resolved,
            reason if status == PendingStatus.FAILED else None,
            new_reason=True,
            message=REGISTRY_CONFIRMED_MESSAGE if status == PendingStatus.REGISTERED else None,
        )
        return resolved

    def _check(self, domain_name: str) -> DomainAvailability | RegistrarFailure:
        try:
            return self.registrar.check_availability(domain_name)
        except Exception as e:
            logger.exception("Availability check error for %s", domain_name)
            return RegistrarFailure(kind=RegistrarErrorKind.UNKNOWN, message=str(e))

    def _register(self, record: PendingDomainRecord) -> RegistrarSuccess | RegistrarFailure:
        if record.customer_id is None or record.contact_id is None:
            return RegistrarFailure(
                kind=RegistrarErrorKind.VALIDATION,
                message="No registrar customer on record for this domain",
            )
        try:
            return self.registrar.register_domain(
                DomainRegistrationRequest(
                    domain_name=record.domain_name,
                    years=record.registration_period,
                    customer_id=record.customer_id,
                    admin_contact_id=record.contact_id,
                    tech_contact_id=record.contact_id,
                    billing_contact_id=record.contact_id,
                    name_servers=record.name_servers,
                )
            )
        except Exception as e:
            logger.exception("Domain registration error for %s", record.domain_name)
            return RegistrarFailure(kind=RegistrarErrorKind.UNKNOWN, message=str(e))

    def _finish(
        self,
        record: PendingDomainRecord,
        status: PendingStatus,
        reason: str,
        registrar_order_id: str | None = None,
        message: str | None = None,
    ) -> PendingDomainRecord:
        expires_at = None
        if status == PendingStatus.REGISTERED:
            expires_at = registration_expiry(utcnow(), record.registration_period)
        resolved = self.pending.find_and_resolve(
            record.id,
            status,
            from_status=PendingStatus.PROCESSING,
            reason=reason,
            registrar_order_id=registrar_order_id,
            expires_at=expires_at,
        )
        if resolved is None:
            raise PendingDomainNotFound("Pending domain not found")
        if resolved.status != status:
            self._escalate_unrecorded_result(resolved, status, registrar_order_id)

        logger.info("Retry of %s finished as %s", resolved.domain_name, resolved.status.value)
        failed = status == PendingStatus.FAILED
        self.sync_order_outcome(
            resolved,
            reason if failed else None,
            new_reason=failed and reason != record.reason,
            message=message,
        )
        return resolved

    def _escalate_unrecorded_result(
        self,
        stored: PendingDomainRecord,
        status: PendingStatus,
        registrar_order_id: str | None,
    ) -> None:
        """The retry's result lost to another write. Alert and refuse."""
        logger.critical(
            "RETRY RESULT NOT RECORDED: pending=%s domain=%s order=%s result=%s stored=%s "
            "registrar_order=%s",
            stored.id,
            stored.domain_name,
            stored.order_id,
            status.value,
            stored.status.value,
            registrar_order_id,
        )
        try:
            self.notifier.alert_ops(
                "Pending domain retry result not recorded",
                {
                    "pending_id": stored.id,
                    "domain_name": stored.domain_name,
                    "order_id": stored.order_id,
                    "retry_result": status.value,
                    "stored_status": stored.status.value,
                    "registrar_order_id": registrar_order_id,
                },
            )
        except Exception:
            logger.exception("Failed to send ops alert for pending domain %s", stored.id)
        raise PendingAlreadyResolved(
            f"Pending domain {stored.domain_name} is already {stored.status.value}; "
            f"retry result {status.value} was not recorded"
        )

    @staticmethod
    def _refuse(record: PendingDomainRecord) -> None:
        if record.status == PendingStatus.PROCESSING:
            raise PendingInProgress(
                f"Registration of {record.domain_name} is in progress; try again when it finishes"
            )
        raise PendingAlreadyResolved(
            f"Pending domain {record.domain_name} is already {record.status.value}"
        )
