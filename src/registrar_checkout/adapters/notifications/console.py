"""
Console notifier adapter - Implements Notifier protocol.

This module provides a console-based implementation of the domain's
notifier port, logging order confirmations and ops messages instead of
sending email. The lines are easy to grep in container logs.
"""

import logging
from typing import Any

from registrar_checkout.domain.models import CustomerProfile, Order

logger = logging.getLogger(__name__)


class ConsoleNotifier:
    """
    Implements Notifier protocol via console logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    For demo/development purposes; replace with an SMTP adapter in production.
    """

    def __init__(self, ops_email: str) -> None:
        self._ops_email = ops_email

    def notify_customer(self, order: Order, customer: CustomerProfile) -> None:
        """
        Log the order confirmation the customer would receive.

        Args:
            order: Stored order, including per-domain outcomes
            customer: Recipient
        """
        logger.info(
            "[ORDER-CONFIRMATION] To: %s Order: %s Invoice: %s Amount: %s %s "
            "Registered: %s Failed: %s",
            customer.email,
            order.order_id,
            order.invoice_number,
            order.amount,
            order.currency,
            ", ".join(order.successful_domains) or "-",
            ", ".join(order.failed_domains) or "-",
        )

    def notify_ops(self, order: Order, customer: CustomerProfile) -> None:
        logger.info(
            "[ADMIN-NOTIFICATION] To: %s Order: %s Customer: %s <%s> Charge: %s "
            "Domains: %d Registered: %d",
            self._ops_email,
            order.order_id,
            customer.full_name,
            customer.email,
            order.gateway_charge_id,
            len(order.domains),
            len(order.successful_domains),
        )

    def alert_ops(self, subject: str, details: dict[str, Any]) -> None:
        """Log a high-priority alert for operators. Logged at ERROR so it pages."""
        logger.error(
            "[OPS-ALERT] To: %s Subject: %s Details: %s", self._ops_email, subject, details
        )
