"""Notification service package."""

from .backend import (
    EmailBackend,
    InlineImage,
    InMemoryEmailBackend,
    SESEmailBackend,
    SMTPEmailBackend,
)
from .service import NotificationEvent, VoucherNotifier, build_email_backend

__all__ = [
    "EmailBackend",
    "InlineImage",
    "InMemoryEmailBackend",
    "NotificationEvent",
    "SESEmailBackend",
    "SMTPEmailBackend",
    "VoucherNotifier",
    "build_email_backend",
]
