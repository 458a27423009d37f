"""
Unit tests for GatewayEventHandler.

Webhooks confirm or flag orders created by the verify flow; they never
create or downgrade an order.
"""

import pytest

from fakes import cart, signed_confirmation
from registrar_checkout.domain.ports import OrderStatus
from registrar_checkout.domain.webhooks import GatewayEventHandler, WebhookAction


@pytest.fixture
def handler(orders) -> GatewayEventHandler:
    return GatewayEventHandler(orders=orders)


@pytest.fixture
def existing_order(make_service, gateway, customer):
    gateway.add_charge("pay_abc", amount=120000, order_id="order_abc")
    return make_service().process(signed_confirmation(), cart(("alpha.com", "1200")), customer)


class TestGatewayEventHandler:
    def test_captured_with_order_is_confirmed(self, handler, existing_order) -> None:
        assert handler.handle("payment.captured", "pay_abc") == WebhookAction.CONFIRMED

    def test_captured_before_verify_awaits_order(self, handler, orders) -> None:
        assert handler.handle("payment.captured", "pay_new") == WebhookAction.AWAITING_ORDER
        assert orders.orders == {}

    def test_failed_never_downgrades_order(self, handler, orders, existing_order) -> None:
        action = handler.handle("payment.failed", "pay_abc")

        assert action == WebhookAction.FAILURE_IGNORED
        assert orders.find_by_charge_id("pay_abc").status == OrderStatus.COMPLETED

    def test_failed_without_order_is_recorded(self, handler) -> None:
        assert handler.handle("payment.failed", "pay_new") == WebhookAction.FAILURE_RECORDED

    def test_order_paid(self, handler, existing_order) -> None:
        assert handler.handle("order.paid", "pay_abc") == WebhookAction.CONFIRMED
        assert handler.handle("order.paid", None) == WebhookAction.IGNORED

    @pytest.mark.parametrize("event", ["refund.created", "payment.authorized", ""])
    def test_other_events_ignored(self, handler, existing_order, event) -> None:
        assert handler.handle(event, "pay_abc") == WebhookAction.IGNORED

    def test_missing_charge_id_ignored(self, handler) -> None:
        assert handler.handle("payment.captured", None) == WebhookAction.IGNORED
