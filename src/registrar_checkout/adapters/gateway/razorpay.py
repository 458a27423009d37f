"""
Razorpay gateway adapter - Implements PaymentGateway protocol.

Fetches the gateway's own record of a payment over the REST API
(GET /v1/payments/{id}, HTTP Basic with key id and key secret) so that
the verifier never trusts amounts or statuses sent by the browser.
"""

import hashlib
import hmac
import logging
import secrets

import httpx

from registrar_checkout.config.settings import Settings
from registrar_checkout.domain.exceptions import ChargeNotFound, GatewayUnavailable
from registrar_checkout.domain.ports import GatewayCharge

logger = logging.getLogger(__name__)


class RazorpayGateway:
    """
    Implements PaymentGateway protocol via httpx.

    Uses structural subtyping - no explicit inheritance from Protocol.
    The client is owned by the caller when passed in (tests pass one with
    an httpx.MockTransport).
    """

    def __init__(self, client: httpx.Client) -> None:
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "RazorpayGateway":
        timeout = httpx.Timeout(settings.gateway_timeout_seconds, connect=5.0)
        client = httpx.Client(
            base_url=settings.gateway_api_url,
            auth=(settings.gateway_key_id, settings.gateway_key_secret),
            timeout=timeout,
        )
        return cls(client)

    def close(self) -> None:
        self._client.close()

    def get_charge(self, charge_id: str) -> GatewayCharge:
        """
        Fetch a payment by id.

        Raises:
            ChargeNotFound: Gateway answered 404, or 400 for an unknown id
            GatewayUnavailable: Timeout, connection error, 5xx or unreadable body
        """
        try:
            response = self._client.get(f"/v1/payments/{charge_id}")
        except httpx.TimeoutException as e:
            logger.error("Gateway timeout fetching charge %s", charge_id)
            raise GatewayUnavailable("Payment gateway timed out") from e
        except httpx.TransportError as e:
            logger.error("Gateway unreachable fetching charge %s: %s", charge_id, e)
            raise GatewayUnavailable("Payment gateway unreachable") from e

        if response.status_code == 404 or (
            response.status_code == 400 and "does not exist" in response.text
        ):
            logger.warning("Gateway has no charge %s", charge_id)
            raise ChargeNotFound("Payment not found")
        if response.status_code != 200:
            logger.error(
                "Gateway returned HTTP %d for charge %s: %s",
                response.status_code,
                charge_id,
                response.text[:200],
            )
            raise GatewayUnavailable(f"Payment gateway error (HTTP {response.status_code})")

        try:
            payload = response.json()
            return GatewayCharge(
                charge_id=payload["id"],
                status=payload["status"],
                amount=int(payload["amount"]),
                currency=payload["currency"],
                order_id=payload.get("order_id") or "",
            )
        except (ValueError, KeyError, TypeError) as e:
            logger.error("Unreadable gateway response for charge %s", charge_id)
            raise GatewayUnavailable("Payment gateway returned an unreadable response") from e


def verify_webhook_signature(body: bytes, signature: str, secret: str) -> bool:
    """Check X-Razorpay-Signature: hex HMAC-SHA256 of the raw request body."""
    if not secret or not signature:
        return False
    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return secrets.compare_digest(expected.encode(), signature.encode())
