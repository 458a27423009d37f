"""
Gateway webhook events - Reconcile asynchronous gateway notifications.

The synchronous verify flow is what creates orders; webhooks only confirm
or flag what it did. A payment.failed event never downgrades an order that
was created from a verified capture.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from .ports import OrderRepository

logger = logging.getLogger(__name__)


class WebhookAction(str, Enum):
    """What handling a webhook event amounted to."""

    CONFIRMED = "confirmed"
    AWAITING_ORDER = "awaiting_order"
    FAILURE_IGNORED = "failure_ignored"
    FAILURE_RECORDED = "failure_recorded"
    IGNORED = "ignored"


@dataclass
class GatewayEventHandler:
    orders: OrderRepository

    def handle(self, event: str, charge_id: str | None) -> WebhookAction:
        if event == "payment.captured" and charge_id:
            return self._captured(charge_id)
        if event == "payment.failed" and charge_id:
            return self._failed(charge_id)
        if event == "order.paid":
            logger.info("Gateway order paid for charge %s", charge_id)
            if charge_id and self._has_order(charge_id):
                return WebhookAction.CONFIRMED
            return WebhookAction.IGNORED
        logger.info("Ignoring gateway event %s", event)
        return WebhookAction.IGNORED

    def _captured(self, charge_id: str) -> WebhookAction:
        order = self.orders.find_by_charge_id(charge_id)
        if order is None:
            # The browser may not have called verify yet.
            logger.info("Charge %s captured, no order yet", charge_id)
            return WebhookAction.AWAITING_ORDER
        logger.info("Charge %s captured, confirmed order %s", charge_id, order.order_id)
        return WebhookAction.CONFIRMED

    def _failed(self, charge_id: str) -> WebhookAction:
        order = self.orders.find_by_charge_id(charge_id)
        if order is None:
            logger.info("Charge %s failed at the gateway", charge_id)
            return WebhookAction.FAILURE_RECORDED
        logger.warning(
            "Gateway reported charge %s failed but order %s exists; order left as %s",
            charge_id,
            order.order_id,
            order.status.value,
        )
        return WebhookAction.FAILURE_IGNORED

    def _has_order(self, charge_id: str) -> bool:
        return self.orders.find_by_charge_id(charge_id) is not None
