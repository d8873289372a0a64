"""QR code rendering for voucher barcodes."""

from __future__ import annotations

from io import BytesIO

import qrcode
from qrcode.constants import ERROR_CORRECT_M

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def render_qr_png(value: str, *, box_size: int = 16, border: int = 2) -> bytes:
    """Encode ``value`` as a black-on-white PNG QR code."""

    if not value:
        raise ValueError("QR payload must not be empty")
    code = qrcode.QRCode(error_correction=ERROR_CORRECT_M, box_size=box_size, border=border)
    code.add_data(value)
    code.make(fit=True)
    image = code.make_image(fill_color="black", back_color="white")
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


__all__ = ["PNG_SIGNATURE", "render_qr_png"]
