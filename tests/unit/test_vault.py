"""
Unit tests for CredentialVault.

Tests cover:
- Encrypt/decrypt of bytes and text
- Nonce freshness
- Fail-closed behavior without a server secret
- Rejection of truncated, tampered and foreign ciphertexts
"""

import base64

import pytest

from hostmigrate.exceptions import CredentialDecryptionError, VaultNotConfiguredError
from hostmigrate.vault import NONCE_SIZE, CredentialVault


class TestCredentialVault:
    """Tests for CredentialVault."""

    def test_decrypt_returns_original_bytes(self) -> None:
        """A blob decrypts to the plaintext it was made from."""
        vault = CredentialVault("secret")
        assert vault.decrypt(vault.encrypt(b"sbp_token")) == b"sbp_token"

    def test_encrypt_uses_fresh_nonce(self) -> None:
        """Encrypting the same plaintext twice gives different blobs."""
        vault = CredentialVault("secret")
        first = vault.encrypt(b"same")
        second = vault.encrypt(b"same")
        assert first != second
        assert first[:NONCE_SIZE] != second[:NONCE_SIZE]

    def test_text_helpers_use_base64(self) -> None:
        """encrypt_text output is base64 and decrypts with decrypt_text."""
        vault = CredentialVault("secret")
        encoded = vault.encrypt_text("p@ssw0rd")
        base64.b64decode(encoded, validate=True)
        assert vault.decrypt_text(encoded) == "p@ssw0rd"

    def test_is_configured(self) -> None:
        """is_configured reflects whether a secret was given."""
        assert CredentialVault("secret").is_configured
        assert not CredentialVault("").is_configured
        assert not CredentialVault(None).is_configured

    def test_unconfigured_vault_refuses_to_encrypt(self) -> None:
        """Without a secret no default key is used."""
        with pytest.raises(VaultNotConfiguredError):
            CredentialVault("").encrypt(b"token")

    def test_unconfigured_vault_refuses_to_decrypt(self) -> None:
        """Decryption also fails closed."""
        blob = CredentialVault("secret").encrypt(b"token")
        with pytest.raises(VaultNotConfiguredError):
            CredentialVault("").decrypt(blob)

    def test_wrong_secret_fails_authentication(self) -> None:
        """A blob made under another secret is rejected."""
        blob = CredentialVault("secret-a").encrypt(b"token")
        with pytest.raises(CredentialDecryptionError):
            CredentialVault("secret-b").decrypt(blob)

    def test_tampered_blob_is_rejected(self) -> None:
        """Flipping one ciphertext bit fails the tag check."""
        vault = CredentialVault("secret")
        blob = bytearray(vault.encrypt(b"token"))
        blob[-1] ^= 0x01
        with pytest.raises(CredentialDecryptionError):
            vault.decrypt(bytes(blob))

    def test_truncated_blob_is_rejected(self) -> None:
        """A blob shorter than the nonce cannot be decrypted."""
        with pytest.raises(CredentialDecryptionError, match="too short"):
            CredentialVault("secret").decrypt(b"short")

    def test_invalid_base64_is_rejected(self) -> None:
        """decrypt_text rejects text that is not base64."""
        with pytest.raises(CredentialDecryptionError, match="base64"):
            CredentialVault("secret").decrypt_text("not base64!!")
