"""Payment gateway adapters."""

from .razorpay import RazorpayGateway, verify_webhook_signature

__all__ = ["RazorpayGateway", "verify_webhook_signature"]
