"""
Payment verification - Signature check and cart amount reconciliation.

The verifier never trusts anything the client claims about the charge
except its identifiers:

1. The signature must equal HMAC-SHA256(secret, "<order_id>|<charge_id>"),
   compared in constant time.
2. The charge is re-fetched from the gateway and must be captured.
3. The captured amount (minor units) must equal the cart total, rounded
   to whole major units, converted to minor units.
4. The gateway order id of the charge must equal the one the client sent.

Checks run in this order and the first failure raises. No side effects.
"""

import hashlib
import hmac
import logging
import secrets
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from .exceptions import AmountMismatch, ChargeNotCaptured, OrderIdMismatch, SignatureInvalid
from .models import CartItem, ChargeConfirmation
from .ports import GatewayCharge, PaymentGateway

logger = logging.getLogger(__name__)

CAPTURED = "captured"

# Minor units per major unit. Currencies not listed use 100.
_ZERO_DECIMAL_CURRENCIES = {"JPY", "KRW", "VND", "CLP", "ISK", "UGX"}


def minor_unit_factor(currency: str) -> int:
    return 1 if currency.upper() in _ZERO_DECIMAL_CURRENCIES else 100


def compute_signature(gateway_order_id: str, gateway_charge_id: str, secret: str) -> str:
    """Hex HMAC-SHA256 of "<order_id>|<charge_id>" keyed with the gateway secret."""
    body = f"{gateway_order_id}|{gateway_charge_id}".encode()
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def expected_charge_amount(items: Sequence[CartItem], currency: str) -> int:
    """
    Recompute the charge, in minor units, that the cart should have produced.

    Item prices already cover the full registration period. The sum is
    rounded half-up to whole major units before conversion, matching how
    the payment order was created.
    """
    total = sum((Decimal(item.price) for item in items), Decimal("0"))
    rounded = total.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(rounded) * minor_unit_factor(currency)


@dataclass(frozen=True)
class VerifiedCharge:
    """A charge that passed every verification step."""

    confirmation: ChargeConfirmation
    charge: GatewayCharge


@dataclass
class PaymentVerifier:
    """Validates a charge confirmation against its signature and the gateway."""

    gateway: PaymentGateway
    secret: str

    def verify(
        self, confirmation: ChargeConfirmation, items: Sequence[CartItem], currency: str
    ) -> VerifiedCharge:
        """
        Verify that the confirmation is genuine and matches the cart.

        Raises:
            SignatureInvalid: Signature does not match (gateway is not contacted)
            ChargeNotFound: Gateway does not know the charge
            GatewayUnavailable: Gateway could not be reached
            ChargeNotCaptured: Charge status is not captured
            AmountMismatch: Captured amount or currency differs from the cart
            OrderIdMismatch: Charge belongs to a different gateway order
        """
        self._check_signature(confirmation)

        charge = self.gateway.get_charge(confirmation.gateway_charge_id)
        logger.info(
            "Fetched charge %s: status=%s amount=%s %s order=%s",
            charge.charge_id,
            charge.status,
            charge.amount,
            charge.currency,
            charge.order_id,
        )

        if charge.status != CAPTURED:
            logger.error("Charge %s not captured (status=%s)", charge.charge_id, charge.status)
            raise ChargeNotCaptured(f"Payment not captured (status: {charge.status})")

        expected = expected_charge_amount(items, currency)
        if charge.currency.upper() != currency.upper() or charge.amount != expected:
            logger.error(
                "Amount mismatch for charge %s: expected %s %s, gateway reported %s %s",
                charge.charge_id,
                expected,
                currency,
                charge.amount,
                charge.currency,
            )
            raise AmountMismatch("Payment amount mismatch")

        if charge.order_id != confirmation.gateway_order_id:
            logger.error(
                "Order id mismatch for charge %s: client sent %s, gateway reported %s",
                charge.charge_id,
                confirmation.gateway_order_id,
                charge.order_id,
            )
            raise OrderIdMismatch("Order ID mismatch")

        return VerifiedCharge(confirmation=confirmation, charge=charge)

    def _check_signature(self, confirmation: ChargeConfirmation) -> None:
        expected = compute_signature(
            confirmation.gateway_order_id, confirmation.gateway_charge_id, self.secret
        )
        if not secrets.compare_digest(expected.encode(), confirmation.signature.encode()):
            logger.error("Invalid signature for charge %s", confirmation.gateway_charge_id)
            raise SignatureInvalid("Invalid payment signature")
