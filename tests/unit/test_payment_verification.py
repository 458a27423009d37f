"""
Unit tests for PaymentVerifier and amount reconciliation.

Tests verify:
- HMAC signature computation and constant-time rejection
- Expected charge amount (sum of prices, rounded half-up, in minor units)
- Check order: signature, fetch, captured, amount, order id
"""

import hashlib
import hmac
from decimal import Decimal
from unittest.mock import Mock

import pytest

from fakes import GATEWAY_SECRET, FakeGateway, cart, signed_confirmation
from registrar_checkout.domain.exceptions import (
    AmountMismatch,
    ChargeNotCaptured,
    GatewayUnavailable,
    OrderIdMismatch,
    SignatureInvalid,
)
from registrar_checkout.domain.models import CartItem, ChargeConfirmation
from registrar_checkout.domain.verification import (
    PaymentVerifier,
    compute_signature,
    expected_charge_amount,
    minor_unit_factor,
)


class TestComputeSignature:
    def test_matches_hmac_of_order_and_charge_ids(self) -> None:
        expected = hmac.new(b"secret", b"order_1|pay_1", hashlib.sha256).hexdigest()

        assert compute_signature("order_1", "pay_1", "secret") == expected

    def test_depends_on_secret(self) -> None:
        first = compute_signature("order_1", "pay_1", "a")

        assert first != compute_signature("order_1", "pay_1", "b")


class TestExpectedChargeAmount:
    def test_alpha_beta_cart(self) -> None:
        """1200 + 1800 rupees is 300000 paise."""
        items = cart(("alpha.com", "1200"), ("beta.shop", "1800"))

        assert expected_charge_amount(items, "INR") == 300000

    def test_total_is_rounded_half_up_before_conversion(self) -> None:
        items = cart(("a.com", "499.25"), ("b.com", "500.25"))

        # 999.50 rounds to 1000 rupees
        assert expected_charge_amount(items, "INR") == 100000

    def test_total_rounds_down_below_half(self) -> None:
        items = cart(("a.com", "999.49"))

        assert expected_charge_amount(items, "INR") == 99900

    def test_period_is_not_multiplied(self) -> None:
        """Prices already cover the whole period."""
        items = cart(("a.com", "1200"), period=3)

        assert expected_charge_amount(items, "INR") == 120000

    def test_zero_decimal_currency(self) -> None:
        items = [CartItem(domain_name="a.jp", price=Decimal("1500"), currency="JPY")]

        assert minor_unit_factor("jpy") == 1
        assert expected_charge_amount(items, "JPY") == 1500


class TestPaymentVerifier:
    @pytest.fixture
    def items(self) -> list[CartItem]:
        return cart(("alpha.com", "1200"), ("beta.shop", "1800"))

    def test_valid_payment_returns_verified_charge(self, gateway: FakeGateway, items) -> None:
        gateway.add_charge("pay_abc", amount=300000, order_id="order_abc")
        verifier = PaymentVerifier(gateway=gateway, secret=GATEWAY_SECRET)

        verified = verifier.verify(signed_confirmation(), items, "INR")

        assert verified.charge.charge_id == "pay_abc"
        assert verified.confirmation.gateway_order_id == "order_abc"

    def test_invalid_signature_skips_gateway(self, items) -> None:
        gateway = Mock()
        verifier = PaymentVerifier(gateway=gateway, secret=GATEWAY_SECRET)
        forged = ChargeConfirmation("order_abc", "pay_abc", "not-a-signature")

        with pytest.raises(SignatureInvalid) as exc_info:
            verifier.verify(forged, items, "INR")

        assert exc_info.value.message == "Invalid payment signature"
        gateway.get_charge.assert_not_called()

    def test_signature_with_wrong_secret(self, gateway: FakeGateway, items) -> None:
        gateway.add_charge("pay_abc", amount=300000, order_id="order_abc")
        verifier = PaymentVerifier(gateway=gateway, secret=GATEWAY_SECRET)

        with pytest.raises(SignatureInvalid):
            verifier.verify(signed_confirmation(secret="other"), items, "INR")

    def test_gateway_unavailable_propagates(self, items) -> None:
        gateway = Mock()
        gateway.get_charge.side_effect = GatewayUnavailable("Payment gateway timed out")
        verifier = PaymentVerifier(gateway=gateway, secret=GATEWAY_SECRET)

        with pytest.raises(GatewayUnavailable):
            verifier.verify(signed_confirmation(), items, "INR")

    def test_not_captured_reports_status(self, gateway: FakeGateway, items) -> None:
        gateway.add_charge("pay_abc", amount=300000, order_id="order_abc", status="failed")
        verifier = PaymentVerifier(gateway=gateway, secret=GATEWAY_SECRET)

        with pytest.raises(ChargeNotCaptured) as exc_info:
            verifier.verify(signed_confirmation(), items, "INR")

        assert "failed" in exc_info.value.message

    def test_not_captured_checked_before_amount(self, gateway: FakeGateway, items) -> None:
        gateway.add_charge("pay_abc", amount=1, order_id="order_abc", status="authorized")
        verifier = PaymentVerifier(gateway=gateway, secret=GATEWAY_SECRET)

        with pytest.raises(ChargeNotCaptured):
            verifier.verify(signed_confirmation(), items, "INR")

    def test_amount_checked_before_order_id(self, gateway: FakeGateway, items) -> None:
        gateway.add_charge("pay_abc", amount=100, order_id="order_other")
        verifier = PaymentVerifier(gateway=gateway, secret=GATEWAY_SECRET)

        with pytest.raises(AmountMismatch):
            verifier.verify(signed_confirmation(), items, "INR")

    def test_order_id_mismatch(self, gateway: FakeGateway, items) -> None:
        gateway.add_charge("pay_abc", amount=300000, order_id="order_other")
        verifier = PaymentVerifier(gateway=gateway, secret=GATEWAY_SECRET)

        with pytest.raises(OrderIdMismatch):
            verifier.verify(signed_confirmation(), items, "INR")
