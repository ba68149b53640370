"""At-rest protection for webhook secrets.

- Verify tokens and app secrets are stored as HMAC-SHA256 digests keyed by
  WEBHOOK_HASH_SECRET (one-way, compared in constant time).
- The app secret is also sealed with AES-256-GCM under WEBHOOK_SECRETS_KEY,
  because verifying a provider signature needs the key itself. It is opened
  only in memory by the config resolver and is never logged or returned.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import os
import secrets as _secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

_NONCE_BYTES = 12


class SecretsConfigError(RuntimeError):
    """Raised when hashing/sealing keys are missing or malformed."""


class SecretDecryptionError(Exception):
    """Raised when a sealed secret cannot be opened with the configured key."""


def _hash_key(key: str) -> bytes:
    if not key:
        raise SecretsConfigError(
            "WEBHOOK_HASH_SECRET not configured. "
            "Generate with: openssl rand -hex 32"
        )
    return key.encode()


def _aes_key(key_hex: str) -> bytes:
    if not key_hex:
        raise SecretsConfigError(
            "WEBHOOK_SECRETS_KEY not configured. "
            "Generate with: openssl rand -hex 32"
        )
    try:
        key = bytes.fromhex(key_hex)
    except ValueError as e:
        raise SecretsConfigError("WEBHOOK_SECRETS_KEY must be hex encoded") from e
    if len(key) != 32:
        raise SecretsConfigError(
            "WEBHOOK_SECRETS_KEY must be 32 bytes hex (64 hex chars). "
            "Generate with: openssl rand -hex 32"
        )
    return key


def hash_secret(value: str, *, key: str) -> str:
    """One-way digest of a verify token or app secret (hex)."""
    return hmac.new(_hash_key(key), value.encode(), hashlib.sha256).hexdigest()


def secret_matches(candidate: str | None, stored_hash: str | None, *, key: str) -> bool:
    """Constant-time comparison of a candidate against a stored digest."""
    if not candidate or not stored_hash:
        return False
    return hmac.compare_digest(hash_secret(candidate, key=key), stored_hash)


def seal_secret(plaintext: str, *, key_hex: str) -> str:
    """Encrypt with AES-256-GCM. Returns base64(nonce + ciphertext)."""
    aesgcm = AESGCM(_aes_key(key_hex))
    nonce = os.urandom(_NONCE_BYTES)
    ciphertext = aesgcm.encrypt(nonce, plaintext.encode(), None)
    return base64.b64encode(nonce + ciphertext).decode()


def open_secret(sealed: str, *, key_hex: str) -> str:
    """Decrypt a value produced by seal_secret().

    Raises:
        SecretDecryptionError: If the value is corrupt or the key is wrong.
    """
    aesgcm = AESGCM(_aes_key(key_hex))
    try:
        data = base64.b64decode(sealed)
        plaintext = aesgcm.decrypt(data[:_NONCE_BYTES], data[_NONCE_BYTES:], None)
    except (InvalidTag, ValueError) as e:
        raise SecretDecryptionError("sealed secret could not be opened") from e
    return plaintext.decode()


def generate_token(nbytes: int = 32) -> str:
    """Random hex token for verify tokens and rotated app secrets."""
    return _secrets.token_hex(nbytes)
