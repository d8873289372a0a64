"""Voucher notification delivery."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

from loguru import logger

from octoplus_claimer.core.settings import Settings, get_settings
from octoplus_claimer.domain import Voucher
from octoplus_claimer.errors import ConfigurationError, NotificationError

from .backend import EmailBackend, InlineImage, InMemoryEmailBackend, SESEmailBackend, SMTPEmailBackend
from .qr import render_qr_png
from .templates import QR_CONTENT_ID, render_voucher_email


@dataclass
class NotificationEvent:
    """Representation of a voucher email that was sent."""

    recipients: list[str]
    subject: str
    voucher_code: str
    message_id: str | None


class VoucherNotifier:
    """Renders the QR code and sends one multi-recipient voucher email."""

    def __init__(
        self,
        backend: Optional[EmailBackend] = None,
        *,
        offer_name: str = "Caffe Nero",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._backend = backend or build_email_backend()
        self._offer_name = offer_name
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._events: list[NotificationEvent] = []

    @property
    def sent_events(self) -> list[NotificationEvent]:
        """Expose events (useful for tests when using in-memory backend)."""
        return self._events

    async def send(
        self,
        addresses: Sequence[str],
        voucher: Voucher,
        nickname: str | None = None,
    ) -> NotificationEvent:
        """Send ``voucher`` to ``addresses``; raise :class:`NotificationError` on failure."""

        recipients = [address for address in addresses if address]
        if not recipients:
            raise NotificationError("No recipients supplied for voucher email")

        try:
            qr_png = render_qr_png(voucher.barcode)
        except ValueError as exc:
            raise NotificationError(f"Failed to generate QR code: {exc}") from exc

        rendered = render_voucher_email(
            voucher,
            generated_at=self._clock(),
            nickname=nickname,
            offer_name=self._offer_name,
        )
        image = InlineImage(
            content_id=QR_CONTENT_ID,
            filename=f"{self._offer_name.lower().replace(' ', '-')}-qr-{voucher.code}.png",
            payload=qr_png,
        )

        logger.info(
            "Sending voucher email",
            account_number=voucher.account_number,
            voucher_code=voucher.code,
            recipients=len(recipients),
        )
        message_id = await self._backend.send_email(
            recipients,
            rendered.subject,
            rendered.text_body,
            body_html=rendered.html_body,
            inline_images=[image],
        )
        event = NotificationEvent(
            recipients=recipients,
            subject=rendered.subject,
            voucher_code=voucher.code,
            message_id=message_id,
        )
        self._events.append(event)
        logger.info(
            "Voucher email sent",
            account_number=voucher.account_number,
            voucher_code=voucher.code,
            message_id=message_id,
        )
        return event


def build_email_backend(settings: Settings | None = None) -> EmailBackend:
    """Select the configured email backend."""

    config = settings or get_settings()
    if config.email_backend == "memory":
        return InMemoryEmailBackend()
    if config.email_backend == "smtp":
        if not config.smtp_host or not config.smtp_sender_email:
            raise ConfigurationError("SMTP_HOST and SMTP_SENDER_EMAIL must be configured for SMTP delivery")
        return SMTPEmailBackend(
            host=config.smtp_host,
            port=config.smtp_port,
            username=config.smtp_username,
            password=config.smtp_password,
            use_tls=config.smtp_use_tls,
            sender_email=config.smtp_sender_email,
        )
    if not config.ses_sender_email:
        raise ConfigurationError("SES_SENDER_EMAIL must be configured for SES delivery")
    return SESEmailBackend(sender_email=config.ses_sender_email, region_name=config.aws_region)


__all__ = ["NotificationEvent", "VoucherNotifier", "build_email_backend"]
