from __future__ import annotations

from datetime import datetime, timezone

import pytest
from botocore.exceptions import ClientError

from conftest import ACCOUNT_NUMBER, NOW
from octoplus_claimer.core.settings import Settings
from octoplus_claimer.domain import Voucher
from octoplus_claimer.errors import ConfigurationError, NotificationError
from octoplus_claimer.services.notifications import (
    InlineImage,
    InMemoryEmailBackend,
    SESEmailBackend,
    SMTPEmailBackend,
    VoucherNotifier,
    build_email_backend,
)
from octoplus_claimer.services.notifications import backend as backend_module
from octoplus_claimer.services.notifications.qr import PNG_SIGNATURE, render_qr_png
from octoplus_claimer.services.notifications.templates import render_voucher_email

VOUCHER = Voucher(
    code="ABC123",
    barcode="999888777",
    account_number=ACCOUNT_NUMBER,
    expires_at=datetime(2025, 3, 16, 23, 59, 59, tzinfo=timezone.utc),
)


class StubSesClient:
    def __init__(self, *, error_code: str | None = None) -> None:
        self.error_code = error_code
        self.calls: list[dict] = []

    def send_raw_email(self, **kwargs):
        self.calls.append(kwargs)
        if self.error_code:
            raise ClientError({"Error": {"Code": self.error_code, "Message": "rejected"}}, "SendRawEmail")
        return {"MessageId": "ses-message-1"}


class RecordingSMTP:
    instances: list["RecordingSMTP"] = []
    fail_with: Exception | None = None

    def __init__(self, host, port, timeout=None) -> None:
        self.host = host
        self.port = port
        self.started_tls = False
        self.logged_in_as: str | None = None
        self.sent: list[tuple] = []
        self.closed = False
        RecordingSMTP.instances.append(self)

    def starttls(self) -> None:
        self.started_tls = True

    def login(self, username, password) -> None:
        self.logged_in_as = username

    def send_message(self, message, to_addrs=None) -> None:
        if RecordingSMTP.fail_with is not None:
            raise RecordingSMTP.fail_with
        self.sent.append((message, to_addrs))

    def quit(self) -> None:
        self.closed = True


def _images(message) -> list:
    return [part for part in message.walk() if part.get_content_type() == "image/png"]


def test_qr_code_is_png() -> None:
    payload = render_qr_png("999888777")

    assert payload.startswith(PNG_SIGNATURE)
    assert len(payload) > 100


def test_qr_code_rejects_empty_value() -> None:
    with pytest.raises(ValueError):
        render_qr_png("")


def test_voucher_email_references_inline_qr() -> None:
    rendered = render_voucher_email(VOUCHER, generated_at=NOW, nickname="Home")

    assert rendered.subject == "☕ Your Caffe Nero Voucher - ABC123"
    assert 'src="cid:qrcode"' in rendered.html_body
    assert "ABC123" in rendered.html_body
    assert "Hi Home," in rendered.text_body
    assert "Code: ABC123" in rendered.text_body
    assert "Expires: Sunday 16 March 2025" in rendered.text_body
    assert f"Account: {ACCOUNT_NUMBER}" in rendered.text_body


def test_voucher_email_without_expiry_or_nickname() -> None:
    voucher = Voucher(code="<b>X1</b>", barcode="1", account_number=ACCOUNT_NUMBER)

    rendered = render_voucher_email(voucher, generated_at=NOW)

    assert "Expires" not in rendered.text_body
    assert "Expires" not in rendered.html_body
    assert "Hi there," in rendered.text_body
    assert "&lt;b&gt;X1&lt;/b&gt;" in rendered.html_body


@pytest.mark.asyncio
async def test_notifier_sends_one_message_to_all_recipients() -> None:
    backend = InMemoryEmailBackend()
    notifier = VoucherNotifier(backend, clock=lambda: NOW)

    event = await notifier.send(["ops@example.com", "", "team@example.com"], VOUCHER, nickname="Home")

    assert backend.deliveries == [["ops@example.com", "team@example.com"]]
    assert event.recipients == ["ops@example.com", "team@example.com"]
    assert event.voucher_code == "ABC123"
    assert event.message_id == "in-memory-1"
    assert notifier.sent_events == [event]

    message = backend.sent_messages[0]
    assert str(message["To"]) == "ops@example.com"
    assert str(message["Subject"]) == "☕ Your Caffe Nero Voucher - ABC123"
    assert message.get_body(preferencelist=("plain",)).get_content().startswith("Hi Home,")

    images = _images(message)
    assert len(images) == 1
    assert images[0]["Content-ID"] == "<qrcode>"
    assert images[0].get_content_disposition() == "inline"
    assert images[0].get_content().startswith(PNG_SIGNATURE)


@pytest.mark.asyncio
async def test_notifier_requires_recipients() -> None:
    notifier = VoucherNotifier(InMemoryEmailBackend())

    with pytest.raises(NotificationError):
        await notifier.send(["", ""], VOUCHER)


@pytest.mark.asyncio
async def test_notifier_reports_qr_failure() -> None:
    backend = InMemoryEmailBackend()
    voucher = Voucher(code="ABC123", barcode="", account_number=ACCOUNT_NUMBER)

    with pytest.raises(NotificationError, match="QR"):
        await VoucherNotifier(backend).send(["ops@example.com"], voucher)
    assert backend.sent_messages == []


@pytest.mark.asyncio
async def test_ses_backend_sends_raw_message_to_every_destination() -> None:
    client = StubSesClient()
    backend = SESEmailBackend(sender_email="vouchers@example.com", client_factory=lambda: client)
    image = InlineImage(content_id="qrcode", filename="qr.png", payload=render_qr_png("999888777"))

    message_id = await backend.send_email(
        ["ops@example.com", "team@example.com"],
        "Voucher",
        "plain body",
        body_html='<img src="cid:qrcode">',
        inline_images=[image],
    )

    assert message_id == "ses-message-1"
    call = client.calls[0]
    assert call["Source"] == "vouchers@example.com"
    assert call["Destinations"] == ["ops@example.com", "team@example.com"]
    raw = call["RawMessage"]["Data"]
    assert b"To: ops@example.com" in raw
    assert b"team@example.com" not in raw
    assert b"Content-ID: <qrcode>" in raw


@pytest.mark.asyncio
async def test_ses_backend_wraps_client_errors() -> None:
    backend = SESEmailBackend(
        sender_email="vouchers@example.com",
        client_factory=lambda: StubSesClient(error_code="MessageRejected"),
    )

    with pytest.raises(NotificationError, match="MessageRejected"):
        await backend.send_email(["ops@example.com"], "Voucher", "body")


@pytest.mark.asyncio
async def test_smtp_backend_delivers_to_all_recipients(monkeypatch) -> None:
    RecordingSMTP.instances = []
    RecordingSMTP.fail_with = None
    monkeypatch.setattr(backend_module.smtplib, "SMTP", RecordingSMTP)
    backend = SMTPEmailBackend(
        host="smtp.example.com",
        port=587,
        username="mailer",
        password="secret",
        use_tls=True,
        sender_email="vouchers@example.com",
    )

    result = await backend.send_email(["ops@example.com", "team@example.com"], "Voucher", "body")

    assert result is None
    smtp = RecordingSMTP.instances[0]
    assert smtp.started_tls is True
    assert smtp.logged_in_as == "mailer"
    assert smtp.closed is True
    message, to_addrs = smtp.sent[0]
    assert to_addrs == ["ops@example.com", "team@example.com"]
    assert message["From"] == "vouchers@example.com"


@pytest.mark.asyncio
async def test_smtp_backend_wraps_socket_errors(monkeypatch) -> None:
    RecordingSMTP.instances = []
    RecordingSMTP.fail_with = OSError("connection reset")
    monkeypatch.setattr(backend_module.smtplib, "SMTP", RecordingSMTP)
    backend = SMTPEmailBackend(
        host="smtp.example.com",
        port=25,
        username=None,
        password=None,
        use_tls=False,
        sender_email="vouchers@example.com",
    )

    try:
        with pytest.raises(NotificationError, match="connection reset"):
            await backend.send_email(["ops@example.com"], "Voucher", "body")
    finally:
        RecordingSMTP.fail_with = None
    assert RecordingSMTP.instances[0].closed is True


def test_build_email_backend_selects_configured_backend() -> None:
    assert isinstance(build_email_backend(Settings(email_backend="memory")), InMemoryEmailBackend)
    assert isinstance(
        build_email_backend(Settings(email_backend="ses", ses_sender_email="vouchers@example.com")),
        SESEmailBackend,
    )
    assert isinstance(
        build_email_backend(
            Settings(email_backend="smtp", smtp_host="smtp.example.com", smtp_sender_email="vouchers@example.com")
        ),
        SMTPEmailBackend,
    )


@pytest.mark.parametrize(
    "config",
    [
        {"email_backend": "ses", "ses_sender_email": None},
        {"email_backend": "smtp", "smtp_host": None, "smtp_sender_email": "vouchers@example.com"},
    ],
)
def test_build_email_backend_requires_sender_details(config) -> None:
    with pytest.raises(ConfigurationError):
        build_email_backend(Settings(**config))
