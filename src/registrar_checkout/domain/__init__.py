"""
Domain layer - Pure business logic with zero framework imports.

This package contains the payment-confirmed registration workflow:
payment verification, cart eligibility, per-domain registration with
failure isolation, idempotent order creation and the pending domain
recovery queue. It defines its own port interfaces for infrastructure.
"""

from .checkout import CheckoutService, IdempotencyGuard
from .eligibility import EligibilityFilter, EligibilityReport
from .exceptions import (
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
from .models import CartItem, ChargeConfirmation, CustomerProfile, Order, OrderResult
from .pending import PendingDomainService, PendingVerification
from .ports import (
    AvailabilityStatus,
    DomainStatus,
    ErrorKind,
    Notifier,
    OrderRepository,
    OrderStatus,
    PaymentGateway,
    PendingDomainRepository,
    PendingStatus,
    Registrar,
)
from .verification import PaymentVerifier
from .webhooks import GatewayEventHandler, WebhookAction

__all__ = [
    "AmountMismatch",
    "AvailabilityStatus",
    "CartItem",
    "ChargeConfirmation",
    "ChargeNotCaptured",
    "ChargeNotFound",
    "CheckoutError",
    "CheckoutService",
    "CustomerProfile",
    "DomainStatus",
    "DuplicateCharge",
    "DuplicateChargeConflict",
    "EligibilityFilter",
    "EligibilityReport",
    "ErrorKind",
    "GatewayEventHandler",
    "GatewayUnavailable",
    "IdempotencyGuard",
    "InvalidCart",
    "Notifier",
    "Order",
    "OrderIdMismatch",
    "OrderRepository",
    "OrderResult",
    "OrderStatus",
    "PaymentGateway",
    "PaymentVerificationError",
    "PaymentVerifier",
    "PendingAlreadyResolved",
    "PendingDomainNotFound",
    "PendingDomainRepository",
    "PendingDomainService",
    "PendingInProgress",
    "PendingNotRetryable",
    "PendingStatus",
    "PendingVerification",
    "PersistenceFailure",
    "Registrar",
    "RestrictedDomainsRejected",
    "SignatureInvalid",
    "WebhookAction",
]
