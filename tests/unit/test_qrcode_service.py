import base64
from datetime import datetime, timezone
from io import BytesIO

import pytest
from PIL import Image

from eventhub.services.qrcode_service import (
    DATA_URL_PREFIX,
    issue_payload,
    parse_payload,
    read_scanned_value,
    render_to_image,
    scan_image,
)

CIPHERTEXT = "q0nT8mE1k2s3YmJ4c3R1dndYeXo0NTY3ODkwQUJDREVGR0g="


def _blank_png() -> str:
    buffer = BytesIO()
    Image.new("RGB", (120, 120), "white").save(buffer, format="PNG")
    return DATA_URL_PREFIX + base64.b64encode(buffer.getvalue()).decode("ascii")


def test_issue_payload_uses_epoch_millis():
    now = datetime(2025, 1, 1, tzinfo=timezone.utc)
    assert issue_payload("evt-1", now) == "evt-1|1735689600000"


def test_parse_payload():
    payload = parse_payload("evt-1|1735689600000")

    assert payload.event_id == "evt-1"
    assert payload.issued_at == datetime(2025, 1, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize("text", ["no-separator", "evt-1|not-a-number", "|1735689600000", "evt-1|"])
def test_parse_payload_rejects_malformed(text):
    with pytest.raises(ValueError):
        parse_payload(text)


def test_render_is_deterministic():
    first = render_to_image(CIPHERTEXT)

    assert first.startswith(DATA_URL_PREFIX)
    assert render_to_image(CIPHERTEXT) == first


def test_scan_reads_back_rendered_code():
    assert scan_image(render_to_image(CIPHERTEXT)) == CIPHERTEXT


@pytest.mark.parametrize("image", [
    "not base64!!!",
    base64.b64encode(b"hello, not an image").decode(),
])
def test_scan_unreadable_image(image):
    assert scan_image(image) is None


def test_scan_image_without_code():
    assert scan_image(_blank_png()) is None


def test_read_scanned_value():
    assert read_scanned_value(None) is None
    assert read_scanned_value("") is None
    assert read_scanned_value("   ") is None
    assert read_scanned_value(f"  {CIPHERTEXT}\n") == CIPHERTEXT
    assert read_scanned_value(render_to_image(CIPHERTEXT)) == CIPHERTEXT
