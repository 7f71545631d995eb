"""
Symmetric Encryption Service
AES-256-CBC for attendance QR payloads
"""

import base64
import binascii
import os
from typing import NamedTuple, Optional

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from eventhub.config import settings
from eventhub.errors import ConfigurationError, DecryptError, QR_KEY_MISSING

KEY_SIZE_BYTES = 32
IV_SIZE_BYTES = 16


class CipherText(NamedTuple):
    """Base64 ciphertext and the base64 IV it was produced with"""
    ciphertext: str
    iv: str


def _load_key(key: Optional[str]) -> bytes:
    if not key:
        raise ConfigurationError(QR_KEY_MISSING)
    try:
        key_bytes = bytes.fromhex(key)
    except ValueError:
        raise ConfigurationError("QR Code Encryption Key must be hex encoded")
    if len(key_bytes) != KEY_SIZE_BYTES:
        raise ConfigurationError("QR Code Encryption Key must be 256 bits")
    return key_bytes


def encrypt_symmetric(plaintext: str, key: Optional[str]) -> CipherText:
    """
    Encrypt a text with a hex-encoded 256-bit key

    Args:
        plaintext: Text to encrypt
        key: Secret key as 64 hex characters

    Returns:
        CipherText with base64 ciphertext and base64 IV

    Raises:
        ConfigurationError: If the key is missing or malformed
    """
    key_bytes = _load_key(key)
    iv = os.urandom(IV_SIZE_BYTES)

    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()

    encryptor = Cipher(algorithms.AES(key_bytes), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()

    return CipherText(
        ciphertext=base64.b64encode(ciphertext).decode("ascii"),
        iv=base64.b64encode(iv).decode("ascii"),
    )


def decrypt_symmetric(key: Optional[str], ciphertext: str, iv: str) -> str:
    """
    Decrypt a base64 ciphertext with the key and IV it was encrypted with

    Raises:
        ConfigurationError: If the key is missing or malformed
        DecryptError: If the ciphertext/IV pair does not decrypt with this key
    """
    key_bytes = _load_key(key)

    try:
        raw = base64.b64decode(ciphertext, validate=True)
        iv_bytes = base64.b64decode(iv, validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise DecryptError(f"Malformed ciphertext: {e}")

    if len(iv_bytes) != IV_SIZE_BYTES or not raw or len(raw) % IV_SIZE_BYTES:
        raise DecryptError("Malformed ciphertext length")

    try:
        decryptor = Cipher(algorithms.AES(key_bytes), modes.CBC(iv_bytes)).decryptor()
        padded = decryptor.update(raw) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        plaintext = unpadder.update(padded) + unpadder.finalize()
        return plaintext.decode("utf-8")
    except (ValueError, UnicodeDecodeError) as e:
        raise DecryptError(f"Could not decrypt: {e}")


class CryptoService:
    """Binds the cipher to the server-held QR key"""

    def __init__(self, key: Optional[str] = None):
        self._key = key

    @property
    def key(self) -> Optional[str]:
        # Falls back to settings on every call
        return self._key if self._key is not None else settings.QRCODE_ENCRYPTION_KEY

    def encrypt(self, plaintext: str) -> CipherText:
        return encrypt_symmetric(plaintext, self.key)

    def decrypt(self, ciphertext: str, iv: str) -> str:
        return decrypt_symmetric(self.key, ciphertext, iv)

    def ensure_configured(self) -> None:
        _load_key(self.key)


# Create singleton instance
crypto_service = CryptoService()
