"""Tests for the credential vault (AES-256-GCM at-rest encryption)."""

import base64

import pytest

from steward.credentials.vault import CredentialVault, generate_key, key_prefix
from steward.exceptions import ConfigurationError, CredentialDecryptionError


class TestGenerateKey:
    def test_hex_length(self):
        key = generate_key()
        assert len(key) == 64
        bytes.fromhex(key)

    def test_keys_differ(self):
        assert generate_key() != generate_key()


class TestVaultConfig:
    def test_empty_key(self):
        with pytest.raises(ConfigurationError):
            CredentialVault("")

    def test_wrong_length(self):
        with pytest.raises(ConfigurationError, match="64-character"):
            CredentialVault("ab" * 16)

    def test_not_hex(self):
        with pytest.raises(ConfigurationError, match="not valid hex"):
            CredentialVault("zz" * 32)


class TestEncryptDecrypt:
    def test_round_trip_unicode(self, vault):
        secret = "sk-ant-api03-ключ-🔑"
        assert vault.decrypt(vault.encrypt(secret)) == secret

    def test_wire_format(self, vault):
        parts = vault.encrypt("sk-test-123").split(":")
        assert len(parts) == 3
        nonce, _, tag = (base64.b64decode(p) for p in parts)
        assert len(nonce) == 12
        assert len(tag) == 16

    def test_fresh_nonce_per_call(self, vault):
        assert vault.encrypt("same") != vault.encrypt("same")

    def test_wrong_key_fails(self, vault):
        encrypted = vault.encrypt("sk-test-123")
        other = CredentialVault(generate_key())
        with pytest.raises(CredentialDecryptionError):
            other.decrypt(encrypted)

    def test_tampered_ciphertext_fails(self, vault):
        nonce, ciphertext, tag = vault.encrypt("sk-test-123").split(":")
        raw = bytearray(base64.b64decode(ciphertext))
        raw[0] ^= 0x01
        tampered = ":".join([nonce, base64.b64encode(bytes(raw)).decode(), tag])
        with pytest.raises(CredentialDecryptionError, match="Authentication failed"):
            vault.decrypt(tampered)

    @pytest.mark.parametrize("value", ["", "abc", "a:b", "a:b:c:d"])
    def test_malformed_format(self, vault, value):
        with pytest.raises(CredentialDecryptionError):
            vault.decrypt(value)

    def test_bad_base64(self, vault):
        with pytest.raises(CredentialDecryptionError, match="base64"):
            vault.decrypt("!!!:???:***")

    def test_bad_nonce_length(self, vault):
        _, ciphertext, tag = vault.encrypt("x").split(":")
        short = base64.b64encode(b"123").decode()
        with pytest.raises(CredentialDecryptionError, match="nonce"):
            vault.decrypt(f"{short}:{ciphertext}:{tag}")

    def test_decryption_error_code(self, vault):
        with pytest.raises(CredentialDecryptionError) as exc:
            vault.decrypt("bad")
        assert exc.value.code == "credential_decryption_failed"


class TestKeyPrefix:
    def test_long_key(self):
        assert key_prefix("sk-ant-api03-abcdefghijkl") == "sk-ant-...ijkl"

    def test_short_key_masked(self):
        assert key_prefix("short") == "****"
