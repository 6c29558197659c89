"""Storage interface for encrypted provider credentials."""

from __future__ import annotations

from typing import Protocol


class CredentialsRepository(Protocol):
  """Ciphertext access for personal and system-wide API keys; never cached."""

  async def get_personal_key(self, user_id: str) -> str | None:
    """Return the user's encrypted key when one is configured."""

  async def set_personal_key(self, user_id: str, ciphertext: str | None) -> None:
    """Store or clear the user's encrypted key and its configured flag."""

  async def get_system_key(self) -> str | None:
    """Return the encrypted shared fallback key."""

  async def set_system_key(self, ciphertext: str | None) -> None:
    """Upsert or delete the encrypted shared fallback key."""
