"""
Steward Credential Vault

AES-256-GCM encryption of tenant provider keys at rest.

Wire format: ``base64(nonce):base64(ciphertext):base64(tag)`` with a
96-bit random nonce and a 128-bit authentication tag. One process-wide
32-byte key, supplied as a 64-character hex string, is read once and
never changes afterwards.

Plaintext keys are never logged.
"""

from __future__ import annotations

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from steward.exceptions import ConfigurationError, CredentialDecryptionError

NONCE_LENGTH = 12
TAG_LENGTH = 16
KEY_HEX_LENGTH = 64


def generate_key() -> str:
    """Generate a fresh 32-byte key as a 64-character hex string."""
    return os.urandom(32).hex()


def key_prefix(api_key: str) -> str:
    """Display-safe prefix of an API key for listings (never the full key)."""
    if len(api_key) < 12:
        return "****"
    return f"{api_key[:7]}...{api_key[-4:]}"


class CredentialVault:
    """Encrypts and decrypts provider API keys."""

    def __init__(self, hex_key: str):
        if not hex_key:
            raise ConfigurationError("Encryption key is not configured")
        if len(hex_key) != KEY_HEX_LENGTH:
            raise ConfigurationError(
                f"Encryption key must be a {KEY_HEX_LENGTH}-character hex string (32 bytes)"
            )
        try:
            key = bytes.fromhex(hex_key)
        except ValueError as e:
            raise ConfigurationError("Encryption key is not valid hex") from e
        self._aead = AESGCM(key)

    def encrypt(self, plaintext: str) -> str:
        nonce = os.urandom(NONCE_LENGTH)
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        # AESGCM appends the tag to the ciphertext
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return ":".join(_b64(part) for part in (nonce, ciphertext, tag))

    def decrypt(self, encrypted: str) -> str:
        """Decrypt a value produced by :meth:`encrypt`.

        Raises:
            CredentialDecryptionError: malformed input, wrong key, or tampering.
        """
        parts = encrypted.split(":") if encrypted else []
        if len(parts) != 3:
            raise CredentialDecryptionError(
                "Invalid encrypted data format (expected nonce:ciphertext:tag)"
            )

        try:
            nonce, ciphertext, tag = (base64.b64decode(p, validate=True) for p in parts)
        except (binascii.Error, ValueError) as e:
            raise CredentialDecryptionError("Encrypted data is not valid base64") from e

        if len(nonce) != NONCE_LENGTH:
            raise CredentialDecryptionError("Invalid nonce length")
        if len(tag) != TAG_LENGTH:
            raise CredentialDecryptionError("Invalid authentication tag length")

        try:
            plaintext = self._aead.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag as e:
            raise CredentialDecryptionError("Authentication failed while decrypting credential") from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CredentialDecryptionError("Decrypted credential is not valid UTF-8") from e


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")
