"""
AES-GCM encryption of coordinate values for at-rest storage.

Blob layout (base64 encoded): nonce (12 bytes) | ciphertext | tag (16 bytes).
"""

import base64
import binascii
import logging

from Crypto.Cipher import AES
from Crypto.Random import get_random_bytes
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

logger = logging.getLogger(__name__)

KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16


class EncryptionError(Exception):
    """Base class for location encryption failures."""
    pass


class EncryptionKeyMissing(EncryptionError, ImproperlyConfigured):
    """Raised at startup when LOCATION_ENCRYPTION_KEY is absent or malformed."""
    pass


class DecryptionFailed(EncryptionError):
    """Raised when a blob is malformed or fails authentication."""
    pass


def generate_key() -> str:
    """Return a fresh base64-encoded 256-bit key."""
    return base64.b64encode(get_random_bytes(KEY_SIZE)).decode("ascii")


def load_key(encoded: str) -> bytes:
    """Decode a base64 key, raising EncryptionKeyMissing unless it is 32 bytes."""
    if not encoded:
        raise EncryptionKeyMissing("LOCATION_ENCRYPTION_KEY is not set")
    try:
        key = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise EncryptionKeyMissing("LOCATION_ENCRYPTION_KEY is not valid base64")
    if len(key) != KEY_SIZE:
        raise EncryptionKeyMissing(
            f"LOCATION_ENCRYPTION_KEY must decode to {KEY_SIZE} bytes, got {len(key)}"
        )
    return key


class LocationCodec:
    """Symmetric encrypt/decrypt of single coordinate values."""

    def __init__(self, key: bytes):
        if len(key) != KEY_SIZE:
            raise EncryptionKeyMissing(f"Encryption key must be {KEY_SIZE} bytes")
        self._key = key

    @classmethod
    def from_settings(cls) -> "LocationCodec":
        """
        Build the codec from LOCATION_ENCRYPTION_KEY.

        A missing key fails fast. Only when LOCATION_ALLOW_EPHEMERAL_KEY is on
        (local development) is a throwaway key generated instead; data written
        with it is unreadable after a restart.
        """
        encoded = getattr(settings, "LOCATION_ENCRYPTION_KEY", "")
        if not encoded and getattr(settings, "LOCATION_ALLOW_EPHEMERAL_KEY", False):
            logger.warning(
                "LOCATION_ENCRYPTION_KEY not set; using an ephemeral key. "
                "Stored locations will not survive a restart."
            )
            encoded = generate_key()
        return cls(load_key(encoded))

    def encrypt(self, value: float) -> str:
        plaintext = ("%.10f" % float(value)).encode("utf-8")
        cipher = AES.new(self._key, AES.MODE_GCM, nonce=get_random_bytes(NONCE_SIZE))
        ciphertext, tag = cipher.encrypt_and_digest(plaintext)
        return base64.b64encode(cipher.nonce + ciphertext + tag).decode("ascii")

    def decrypt(self, blob: str) -> float:
        try:
            raw = base64.b64decode(blob, validate=True)
        except (binascii.Error, ValueError, TypeError):
            raise DecryptionFailed("Invalid base64 encrypted data")

        if len(raw) <= NONCE_SIZE + TAG_SIZE:
            raise DecryptionFailed("Encrypted blob is too short")

        nonce = raw[:NONCE_SIZE]
        ciphertext = raw[NONCE_SIZE:-TAG_SIZE]
        tag = raw[-TAG_SIZE:]

        cipher = AES.new(self._key, AES.MODE_GCM, nonce=nonce)
        try:
            plaintext = cipher.decrypt_and_verify(ciphertext, tag)
        except ValueError:
            raise DecryptionFailed("Authentication tag mismatch")

        try:
            return float(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            raise DecryptionFailed("Failed to parse decrypted location value")
