"""External API clients."""

from .notification_client import HttpNotificationClient
from .stripe_client import StripePaymentProcessor, resolve_processor_client

__all__ = [
    "HttpNotificationClient",
    "StripePaymentProcessor",
    "resolve_processor_client",
]
