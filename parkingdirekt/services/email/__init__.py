"""Email delivery."""
from .delivery import EmailDeliveryManager, EmailDeliveryStats
from .providers import (
    EmailMessage,
    EmailProvider,
    EmailResult,
    LoggingProvider,
    SendGridProvider,
    SMTPProvider,
)
from .retry_worker import EmailRetryWorker

__all__ = [
    "EmailDeliveryManager",
    "EmailDeliveryStats",
    "EmailMessage",
    "EmailProvider",
    "EmailResult",
    "EmailRetryWorker",
    "LoggingProvider",
    "SendGridProvider",
    "SMTPProvider",
]
