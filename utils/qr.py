# utils/qr.py
from __future__ import annotations
import base64
from io import BytesIO

import qrcode


def qr_png_base64(payload: str) -> str:
    """Render ``payload`` as a QR code and return the PNG as base64 text."""
    img = qrcode.make(payload)
    buffered = BytesIO()
    img.save(buffered, format="PNG")
    return base64.b64encode(buffered.getvalue()).decode("ascii")
