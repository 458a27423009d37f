"""
Domain exceptions - Semantic error types for the checkout workflow.

Every exception carries an ErrorKind tag so the HTTP layer can report
a stable, machine-readable error kind without string matching.
"""

from .ports import ErrorKind


class CheckoutError(Exception):
    """Base class for checkout domain errors."""

    error_kind: ErrorKind = ErrorKind.INVALID_CART

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidCart(CheckoutError):
    """Cart is empty or lists the same domain twice."""

    error_kind = ErrorKind.INVALID_CART


class PaymentVerificationError(CheckoutError):
    """Base class for fatal, pre-registration payment verification failures."""

    pass


class SignatureInvalid(PaymentVerificationError):
    """Supplied signature does not match the HMAC of order id and charge id."""

    error_kind = ErrorKind.SIGNATURE_INVALID


class ChargeNotFound(PaymentVerificationError):
    """Gateway has no charge with the supplied id."""

    error_kind = ErrorKind.CHARGE_NOT_FOUND


class ChargeNotCaptured(PaymentVerificationError):
    """Gateway reports the charge in a state other than captured."""

    error_kind = ErrorKind.CHARGE_NOT_CAPTURED


class AmountMismatch(PaymentVerificationError):
    """Captured amount differs from the amount recomputed from the cart."""

    error_kind = ErrorKind.AMOUNT_MISMATCH


class OrderIdMismatch(PaymentVerificationError):
    """Gateway order id of the charge differs from the one the client sent."""

    error_kind = ErrorKind.ORDER_ID_MISMATCH


class GatewayUnavailable(PaymentVerificationError):
    """Gateway could not be reached; nothing has been done yet."""

    error_kind = ErrorKind.GATEWAY_UNAVAILABLE


class RestrictedDomainsRejected(CheckoutError):
    """Cart contains domains that need manual verification before registration."""

    error_kind = ErrorKind.RESTRICTED_DOMAIN

    def __init__(self, message: str, restricted_domains: list, support_contact: str) -> None:
        super().__init__(message)
        self.restricted_domains = restricted_domains
        self.support_contact = support_contact


class DuplicateCharge(CheckoutError):
    """Order store already holds an order for this gateway charge id."""

    error_kind = ErrorKind.DUPLICATE_CHARGE

    def __init__(self, gateway_charge_id: str) -> None:
        super().__init__(f"Charge {gateway_charge_id} already has an order")
        self.gateway_charge_id = gateway_charge_id


class DuplicateChargeConflict(CheckoutError):
    """Lost the insert race and the winning order could not be read back."""

    error_kind = ErrorKind.DUPLICATE_CHARGE


class PersistenceFailure(CheckoutError):
    """Order could not be stored after the charge was captured."""

    error_kind = ErrorKind.PERSISTENCE_FAILURE


class PendingDomainNotFound(CheckoutError):
    """No pending domain record with the given id."""

    error_kind = ErrorKind.PENDING_NOT_FOUND


class PendingAlreadyResolved(CheckoutError):
    """Pending domain already has a different terminal status."""

    error_kind = ErrorKind.PENDING_ALREADY_RESOLVED


class PendingNotRetryable(CheckoutError):
    """Registration retry requested for a record that is not pending."""

    error_kind = ErrorKind.PENDING_NOT_RETRYABLE


class PendingInProgress(CheckoutError):
    """A registration attempt for the pending domain is still running."""

    error_kind = ErrorKind.PENDING_IN_PROGRESS
