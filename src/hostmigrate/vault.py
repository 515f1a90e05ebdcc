"""
Credential Vault: authenticated encryption of secrets at rest.

The vault encrypts the remote access token and the remote database password
before they are stored, and decrypts the local backend's already-encrypted
function secrets before they are pushed to the remote project.

Format:
    AES-256-GCM, key = SHA-256(server secret), blob = nonce (12 bytes) || ciphertext+tag.
    Text helpers wrap the blob in standard base64.

The vault fails closed: with no server secret configured every operation
raises VaultNotConfiguredError instead of using a default key. Plaintexts
are never logged.

Example:
    >>> vault = CredentialVault("server-jwt-secret")
    >>> blob = vault.encrypt(b"sbp_token")
    >>> vault.decrypt(blob)
    b'sbp_token'
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from hostmigrate.exceptions import CredentialDecryptionError, VaultNotConfiguredError

NONCE_SIZE = 12


class CredentialVault:
    """
    Symmetric authenticated encryption keyed from a server-wide secret.

    Args:
        server_secret: The server's JWT secret. May be empty, in which case
            every operation raises VaultNotConfiguredError.
    """

    def __init__(self, server_secret: str | None) -> None:
        self._server_secret = server_secret or ""

    @property
    def is_configured(self) -> bool:
        """True when a server secret is available."""
        return bool(self._server_secret)

    def _cipher(self) -> AESGCM:
        if not self._server_secret:
            raise VaultNotConfiguredError()
        key = hashlib.sha256(self._server_secret.encode("utf-8")).digest()
        return AESGCM(key)

    def encrypt(self, plaintext: bytes) -> bytes:
        """
        Encrypt plaintext with a fresh random nonce.

        Returns:
            nonce || ciphertext. Two encryptions of the same plaintext differ.

        Raises:
            VaultNotConfiguredError: If no server secret is configured.
        """
        cipher = self._cipher()
        nonce = os.urandom(NONCE_SIZE)
        return nonce + cipher.encrypt(nonce, plaintext, None)

    def decrypt(self, blob: bytes) -> bytes:
        """
        Decrypt a blob produced by encrypt().

        Raises:
            VaultNotConfiguredError: If no server secret is configured.
            CredentialDecryptionError: If the blob is truncated or fails
                authentication (wrong key or tampered data).
        """
        cipher = self._cipher()
        if len(blob) < NONCE_SIZE:
            raise CredentialDecryptionError("ciphertext too short")
        nonce, ciphertext = blob[:NONCE_SIZE], blob[NONCE_SIZE:]
        try:
            return cipher.decrypt(nonce, ciphertext, None)
        except InvalidTag as e:
            raise CredentialDecryptionError("ciphertext failed authentication") from e

    def encrypt_text(self, plaintext: str) -> str:
        """Encrypt a string and return the blob as base64 text."""
        return base64.b64encode(self.encrypt(plaintext.encode("utf-8"))).decode("ascii")

    def decrypt_text(self, encoded: str) -> str:
        """
        Decrypt base64 text produced by encrypt_text().

        This is also the format the local backend uses for function secrets.

        Raises:
            CredentialDecryptionError: If the text is not valid base64 or
                does not decrypt.
        """
        try:
            blob = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise CredentialDecryptionError("ciphertext is not valid base64") from e
        return self.decrypt(blob).decode("utf-8")


__all__ = ["NONCE_SIZE", "CredentialVault"]
