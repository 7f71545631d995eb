import base64

import pytest

from eventhub.errors import ConfigurationError, DecryptError, QR_KEY_MISSING
from eventhub.services.crypto_service import (
    CryptoService,
    decrypt_symmetric,
    encrypt_symmetric,
)

KEY = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"
OTHER_KEY = "ffeeddccbbaa99887766554433221100ffeeddccbbaa99887766554433221100"


@pytest.mark.parametrize("plaintext", ["", "event-1|1735689600000", "ünïcødé ✓"])
def test_round_trip(plaintext):
    cipher = encrypt_symmetric(plaintext, KEY)
    assert decrypt_symmetric(KEY, cipher.ciphertext, cipher.iv) == plaintext


def test_fresh_iv_per_encryption():
    first = encrypt_symmetric("same text", KEY)
    second = encrypt_symmetric("same text", KEY)

    assert first.iv != second.iv
    assert first.ciphertext != second.ciphertext
    assert len(base64.b64decode(first.iv)) == 16


def test_missing_key():
    with pytest.raises(ConfigurationError) as exc:
        encrypt_symmetric("text", None)
    assert exc.value.message == QR_KEY_MISSING


@pytest.mark.parametrize("key", ["not-hex", "0011"])
def test_malformed_key(key):
    with pytest.raises(ConfigurationError):
        encrypt_symmetric("text", key)


def test_wrong_key_does_not_decrypt():
    cipher = encrypt_symmetric("event-1|1735689600000 with some length to it", KEY)
    with pytest.raises(DecryptError):
        decrypt_symmetric(OTHER_KEY, cipher.ciphertext, cipher.iv)


def test_garbage_ciphertext():
    cipher = encrypt_symmetric("text", KEY)

    with pytest.raises(DecryptError):
        decrypt_symmetric(KEY, "not base64 at all!", cipher.iv)
    with pytest.raises(DecryptError):
        decrypt_symmetric(KEY, base64.b64encode(b"short").decode(), cipher.iv)
    with pytest.raises(DecryptError):
        decrypt_symmetric(KEY, cipher.ciphertext, base64.b64encode(b"bad iv").decode())


def test_service_uses_explicit_key_over_settings():
    service = CryptoService(key=OTHER_KEY)
    cipher = service.encrypt("hello")

    assert service.decrypt(cipher.ciphertext, cipher.iv) == "hello"

    long_cipher = service.encrypt("x" * 40)
    with pytest.raises(DecryptError):
        CryptoService(key=KEY).decrypt(long_cipher.ciphertext, long_cipher.iv)


def test_service_falls_back_to_settings(monkeypatch):
    from eventhub.config import settings

    monkeypatch.setattr(settings, "QRCODE_ENCRYPTION_KEY", None)
    with pytest.raises(ConfigurationError):
        CryptoService().ensure_configured()

    monkeypatch.setattr(settings, "QRCODE_ENCRYPTION_KEY", KEY)
    CryptoService().ensure_configured()
