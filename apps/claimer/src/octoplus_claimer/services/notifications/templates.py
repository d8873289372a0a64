"""Voucher email template."""

from __future__ import annotations

import html
from dataclasses import dataclass
from datetime import datetime

from octoplus_claimer.domain import Voucher

QR_CONTENT_ID = "qrcode"


@dataclass
class RenderedTemplate:
    subject: str
    text_body: str
    html_body: str


def _format_date(value: datetime) -> str:
    return f"{value:%A} {value.day} {value:%B %Y}"


def _format_datetime(value: datetime) -> str:
    return f"{_format_date(value)} at {value:%H:%M} UTC"


def render_voucher_email(
    voucher: Voucher,
    *,
    generated_at: datetime,
    nickname: str | None = None,
    offer_name: str = "Caffe Nero",
) -> RenderedTemplate:
    """Render the voucher email with the QR image referenced as ``cid:qrcode``."""

    subject = f"☕ Your {offer_name} Voucher - {voucher.code}"
    greeting = f"Hi {nickname}," if nickname else "Hi there,"
    expires = _format_date(voucher.expires_at) if voucher.expires_at else None

    text_lines = [
        greeting,
        "",
        f"Your weekly {offer_name} reward from Octopus Energy Octoplus is ready.",
        "",
        f"Code: {voucher.code}",
    ]
    if expires:
        text_lines.append(f"Expires: {expires}")
    text_lines.extend(
        [
            f"Account: {voucher.account_number}",
            "",
            "Show the QR code in the HTML version of this email to the barista.",
            "",
            f"Generated on {_format_datetime(generated_at)}",
        ]
    )

    code = html.escape(voucher.code)
    name = html.escape(offer_name)
    expires_html = f'<p style="margin: 10px 0;"><strong>Expires:</strong> {html.escape(expires)}</p>' if expires else ""
    html_body = f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Your {name} Voucher</title>
</head>
<body style="font-family: -apple-system, 'Segoe UI', Roboto, Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px; background-color: #f4f4f4;">
  <div style="background-color: #ffffff; border-radius: 8px; padding: 30px;">
    <div style="text-align: center; margin-bottom: 30px;">
      <h1 style="color: #1a1a1a; margin: 0 0 10px 0; font-size: 28px;">&#9749; Your {name} Voucher</h1>
      <p style="color: #666; margin: 0; font-size: 14px;">{html.escape(greeting)} here is your weekly reward from Octopus Energy Octoplus</p>
    </div>
    <div style="background-color: #f8f9fa; border-radius: 6px; padding: 20px; margin-bottom: 25px;">
      <h2 style="margin-top: 0; color: #1a1a1a; font-size: 18px;">Voucher Details</h2>
      <p style="margin: 10px 0;"><strong>Code:</strong> <span style="font-family: 'Courier New', monospace; font-size: 18px; color: #0066cc;">{code}</span></p>
      {expires_html}
      <p style="margin: 10px 0;"><strong>Account:</strong> {html.escape(voucher.account_number)}</p>
    </div>
    <div style="text-align: center; margin: 25px 0;">
      <h3 style="color: #1a1a1a; margin-bottom: 15px; font-size: 16px;">Scan QR Code at Store</h3>
      <p style="color: #666; font-size: 14px; margin-bottom: 15px;">Show this QR code to the barista</p>
      <img src="cid:{QR_CONTENT_ID}" alt="QR Code" style="display: block; margin: 0 auto; width: 250px; height: 250px;" />
    </div>
    <div style="border-top: 1px solid #e9ecef; padding-top: 20px; margin-top: 30px;">
      <h4 style="color: #1a1a1a; margin-bottom: 10px; font-size: 14px;">How to Redeem:</h4>
      <ol style="color: #666; font-size: 14px; line-height: 1.8; padding-left: 20px;">
        <li>Visit any participating {name} store</li>
        <li>Order your drink at the counter</li>
        <li>Show the QR code above to the barista</li>
      </ol>
    </div>
    <p style="text-align: center; color: #999; font-size: 12px; margin-top: 30px;">
      Automatically claimed via Octopus Energy Octoplus &middot; Generated on {html.escape(_format_datetime(generated_at))}
    </p>
  </div>
</body>
</html>"""

    return RenderedTemplate(subject=subject, text_body="\n".join(text_lines), html_body=html_body)


__all__ = ["QR_CONTENT_ID", "RenderedTemplate", "render_voucher_email"]
