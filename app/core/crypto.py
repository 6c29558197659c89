"""AES-256-GCM envelope encryption for provider API keys stored at rest.

Stored values are JSON objects ``{"iv", "encryptedData", "authTag"}`` with hex
fields, the same envelope the web app writes, so either side can read keys the
other saved.
"""

from __future__ import annotations

import json
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from app.config import get_settings

_IV_BYTES = 16
_TAG_BYTES = 16


class CredentialDecryptionError(ValueError):
  """Raised when a stored envelope is malformed or fails authentication."""


class CredentialCipher:
  """Encrypt and decrypt API keys with a single 256-bit key."""

  def __init__(self, key: bytes) -> None:
    if len(key) != 32:
      raise ValueError("Encryption key must be 32 bytes for AES-256-GCM.")
    self._aead = AESGCM(key)

  @classmethod
  def from_hex(cls, raw: str) -> CredentialCipher:
    try:
      key = bytes.fromhex(raw)
    except ValueError as exc:
      raise ValueError("Encryption key must be hex encoded.") from exc
    return cls(key)

  def encrypt(self, plaintext: str) -> str:
    iv = os.urandom(_IV_BYTES)
    sealed = self._aead.encrypt(iv, plaintext.encode("utf-8"), None)
    # AESGCM appends the tag to the ciphertext; the envelope stores it separately.
    encrypted, tag = sealed[:-_TAG_BYTES], sealed[-_TAG_BYTES:]
    return json.dumps({"iv": iv.hex(), "encryptedData": encrypted.hex(), "authTag": tag.hex()})

  def decrypt(self, envelope: str) -> str:
    try:
      data = json.loads(envelope)
      iv = bytes.fromhex(data["iv"])
      sealed = bytes.fromhex(data["encryptedData"]) + bytes.fromhex(data["authTag"])
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
      raise CredentialDecryptionError("Stored credential envelope is malformed.") from exc
    try:
      return self._aead.decrypt(iv, sealed, None).decode("utf-8")
    except InvalidTag as exc:
      raise CredentialDecryptionError("Stored credential failed authentication.") from exc


def get_cipher() -> CredentialCipher:
  """Build the cipher from AULA_ENCRYPTION_KEY."""
  settings = get_settings()
  if not settings.encryption_key:
    raise RuntimeError("AULA_ENCRYPTION_KEY is not set.")
  return CredentialCipher.from_hex(settings.encryption_key)


def mask_api_key(key: str) -> str:
  """Show only the key prefix, e.g. ``sk-ant-api...****``."""
  if len(key) <= 12:
    return "****"
  return f"{key[:10]}...****"
