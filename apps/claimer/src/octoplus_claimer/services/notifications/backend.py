"""Email backend implementations for voucher notifications."""

from __future__ import annotations

import asyncio
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Any, Callable, List, Optional, Protocol, Sequence

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from octoplus_claimer.errors import NotificationError


@dataclass(slots=True)
class InlineImage:
    """Image embedded in the HTML body and referenced as ``cid:<content_id>``."""

    content_id: str
    filename: str
    payload: bytes
    content_type: str = "image/png"


class EmailBackend(Protocol):
    """Minimal protocol for sending one message to a set of recipients."""

    async def send_email(
        self,
        recipients: Sequence[str],
        subject: str,
        body_text: str,
        *,
        body_html: str | None = None,
        inline_images: Sequence[InlineImage] | None = None,
    ) -> str | None:
        ...


def build_message(
    *,
    sender: str | None,
    recipients: Sequence[str],
    subject: str,
    body_text: str,
    body_html: str | None = None,
    inline_images: Sequence[InlineImage] | None = None,
) -> EmailMessage:
    """Compose a MIME message; only the first recipient appears in ``To``."""

    message = EmailMessage()
    if sender:
        message["From"] = sender
    message["To"] = recipients[0]
    message["Subject"] = subject
    message.set_content(body_text)
    if body_html:
        message.add_alternative(body_html, subtype="html")
        html_part = message.get_payload()[-1]
        _attach_inline(html_part, inline_images)
    return message


class SESEmailBackend:
    """AWS SES raw-message backend delivering to every recipient in one call."""

    def __init__(
        self,
        *,
        sender_email: str,
        region_name: str | None = None,
        client_factory: Callable[[], Any] | None = None,
    ) -> None:
        self._sender_email = sender_email
        self._client_factory = client_factory or (lambda: boto3.client("ses", region_name=region_name))
        self._client: Any | None = None

    async def send_email(
        self,
        recipients: Sequence[str],
        subject: str,
        body_text: str,
        *,
        body_html: str | None = None,
        inline_images: Sequence[InlineImage] | None = None,
    ) -> str | None:
        message = build_message(
            sender=self._sender_email,
            recipients=recipients,
            subject=subject,
            body_text=body_text,
            body_html=body_html,
            inline_images=inline_images,
        )
        if self._client is None:
            self._client = self._client_factory()
        try:
            response = await asyncio.to_thread(
                self._client.send_raw_email,
                Source=self._sender_email,
                Destinations=list(recipients),
                RawMessage={"Data": message.as_bytes()},
            )
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            raise NotificationError(f"SES rejected message ({code}): {exc}") from exc
        except BotoCoreError as exc:
            raise NotificationError(f"SES send failed: {exc}") from exc
        return response.get("MessageId")


class SMTPEmailBackend:
    """SMTP relay backend, used where SES is unavailable."""

    def __init__(
        self,
        *,
        host: str,
        port: int,
        username: Optional[str],
        password: Optional[str],
        use_tls: bool,
        sender_email: str,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._use_tls = use_tls
        self._sender_email = sender_email

    async def send_email(
        self,
        recipients: Sequence[str],
        subject: str,
        body_text: str,
        *,
        body_html: str | None = None,
        inline_images: Sequence[InlineImage] | None = None,
    ) -> str | None:
        """Send one message to every recipient through the relay."""

        message = build_message(
            sender=self._sender_email,
            recipients=recipients,
            subject=subject,
            body_text=body_text,
            body_html=body_html,
            inline_images=inline_images,
        )
        try:
            await asyncio.to_thread(self._send, message, list(recipients))
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError(f"SMTP send failed: {exc}") from exc
        return None

    def _send(self, message: EmailMessage, recipients: List[str]) -> None:
        smtp = smtplib.SMTP(self._host, self._port, timeout=10)
        try:
            if self._use_tls:
                smtp.starttls()
            if self._username and self._password:
                smtp.login(self._username, self._password)
            smtp.send_message(message, to_addrs=recipients)
        finally:
            smtp.quit()


@dataclass
class InMemoryEmailBackend:
    """Keeps composed messages for tests and dry runs."""

    sent_messages: List[EmailMessage]
    deliveries: List[List[str]]

    def __init__(self) -> None:
        self.sent_messages = []
        self.deliveries = []

    async def send_email(
        self,
        recipients: Sequence[str],
        subject: str,
        body_text: str,
        *,
        body_html: str | None = None,
        inline_images: Sequence[InlineImage] | None = None,
    ) -> str | None:
        message = build_message(
            sender=None,
            recipients=recipients,
            subject=subject,
            body_text=body_text,
            body_html=body_html,
            inline_images=inline_images,
        )
        self.sent_messages.append(message)
        self.deliveries.append(list(recipients))
        return f"in-memory-{len(self.sent_messages)}"


def _attach_inline(part: EmailMessage, images: Sequence[InlineImage] | None) -> None:
    if not images:
        return
    for image in images:
        content_type = image.content_type or "application/octet-stream"
        if "/" in content_type:
            maintype, subtype = content_type.split("/", 1)
        else:
            maintype, subtype = "application", "octet-stream"
        part.add_related(
            image.payload,
            maintype=maintype,
            subtype=subtype,
            cid=f"<{image.content_id}>",
            filename=image.filename,
            disposition="inline",
        )
