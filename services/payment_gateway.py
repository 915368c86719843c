from functools import lru_cache
from typing import Optional, Protocol

from core.config import settings
from core.logger import get_logger

logger = get_logger(__name__)

class PaymentGateway(Protocol):
    def create_order(self, options: dict) -> Optional[dict]: ...

class RazorpayGateway:
    """Thin wrapper over the Razorpay SDK client."""

    def __init__(self, key_id: str, key_secret: str):
        import razorpay

        self.client = razorpay.Client(auth=(key_id, key_secret))

    def create_order(self, options: dict) -> Optional[dict]:
        return self.client.order.create(data=options)

def describe_gateway_error(exc: Exception) -> str:
    # Gateway errors carry {"error": {"description": ...}}; SDK errors put it in the message
    error = getattr(exc, "error", None)
    if isinstance(error, dict) and error.get("description"):
        return error["description"]
    message = str(exc)
    return message or "An unknown error occurred"

@lru_cache
def _razorpay_gateway(key_id: str, key_secret: str) -> RazorpayGateway:
    return RazorpayGateway(key_id, key_secret)

def get_payment_gateway() -> Optional[PaymentGateway]:
    if not settings.RAZORPAY_KEY_ID or not settings.RAZORPAY_KEY_SECRET:
        logger.error("Razorpay keys are not defined in environment variables")
        return None
    return _razorpay_gateway(settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET)
