import base64
from io import BytesIO

import qrcode

SELFIE_UPLOAD_PATH = "/upload_selfie"


def event_page_url(origin: str, event_id: str) -> str:
    return f"{origin.rstrip('/')}/event/{event_id}"


def selfie_upload_url(origin: str) -> str:
    return f"{origin.rstrip('/')}{SELFIE_UPLOAD_PATH}"


def make_qr_png(data: str) -> bytes:
    """Encode une URL en QR code PNG."""
    img = qrcode.make(data)
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def png_data_url(png: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")
