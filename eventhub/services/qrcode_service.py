"""
QR Code Service
Attendance payload format, PNG rendering and image scanning
"""

import base64
import binascii
import logging
import time
from datetime import datetime, timezone
from io import BytesIO
from typing import NamedTuple, Optional

import cv2
import numpy as np
import qrcode
from qrcode.constants import ERROR_CORRECT_M

logger = logging.getLogger(__name__)

PAYLOAD_SEPARATOR = "|"
DATA_URL_PREFIX = "data:image/png;base64,"


class QrPayload(NamedTuple):
    event_id: str
    issued_at: datetime


def issue_payload(event_id: str, now: Optional[datetime] = None) -> str:
    """Build the plaintext `<eventId>|<unix millis>` for an event"""
    if now is None:
        millis = time.time_ns() // 1_000_000
    else:
        millis = int(now.timestamp() * 1000)
    return f"{event_id}{PAYLOAD_SEPARATOR}{millis}"


def parse_payload(plaintext: str) -> QrPayload:
    """
    Split a decrypted payload into event id and issuance time

    Raises:
        ValueError: If the text is not `<eventId>|<integer millis>`
    """
    event_id, sep, millis = plaintext.partition(PAYLOAD_SEPARATOR)
    if not sep or not event_id:
        raise ValueError("QR payload has no separator")
    issued_at = datetime.fromtimestamp(int(millis) / 1000, tz=timezone.utc)
    return QrPayload(event_id=event_id, issued_at=issued_at)


def render_to_image(ciphertext: str) -> str:
    """
    Render a ciphertext as a QR code PNG

    Returns:
        PNG data URL; identical input gives identical output
    """
    qr = qrcode.QRCode(version=None, error_correction=ERROR_CORRECT_M, box_size=10, border=4)
    qr.add_data(ciphertext)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buffer = BytesIO()
    img.save(buffer, format="PNG")

    return DATA_URL_PREFIX + base64.b64encode(buffer.getvalue()).decode("ascii")


def _strip_data_url(image: str) -> str:
    if image.startswith("data:"):
        _, _, image = image.partition(",")
    return image.strip()


def scan_image(image: str) -> Optional[str]:
    """
    Decode a QR code image back to the string it encodes

    Args:
        image: PNG/JPEG as a data URL or bare base64

    Returns:
        Encoded text, or None when the image is unreadable or holds no code
    """
    try:
        raw = base64.b64decode(_strip_data_url(image), validate=False)
        if not raw:
            return None

        frame = cv2.imdecode(np.frombuffer(raw, dtype=np.uint8), cv2.IMREAD_COLOR)
        if frame is None:
            return None

        text, _, _ = cv2.QRCodeDetector().detectAndDecode(frame)
    except (binascii.Error, ValueError, cv2.error) as e:
        logger.info("QR image could not be read: %s", e)
        return None

    return text or None


def read_scanned_value(value: Optional[str]) -> Optional[str]:
    """Ciphertext from a client scan, given either as text or as a QR image data URL"""
    if not value:
        return None
    if value.startswith("data:image/"):
        return scan_image(value)
    return value.strip() or None
