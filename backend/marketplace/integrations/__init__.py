"""
Contracts for external collaborators: object storage, media processing,
payment gateway and email.

Services depend on these Protocols only; concrete clients are injected.
"""

from marketplace.integrations.email import EmailSender, LoggingEmailSender
from marketplace.integrations.media import MediaProcessor, ProcessedMedia
from marketplace.integrations.payment_gateway import PaymentGateway, RazorpayGateway
from marketplace.integrations.storage import ObjectStorage

__all__ = [
    "EmailSender",
    "LoggingEmailSender",
    "MediaProcessor",
    "ProcessedMedia",
    "PaymentGateway",
    "RazorpayGateway",
    "ObjectStorage",
]
