"""Pick the provider for a user's next AI call."""

from __future__ import annotations

import logging
from typing import Protocol

from app.ai.errors import AiNotAvailableError
from app.ai.providers.base import FALLBACK_PROVIDER, PERSONAL_PROVIDER, AiProvider

logger = logging.getLogger(__name__)


class CredentialPresence(Protocol):
  async def has_personal_key(self, user_id: str) -> bool: ...

  async def has_system_key(self) -> bool: ...


async def resolve_provider(user_id: str, credentials: CredentialPresence) -> AiProvider:
  """Prefer the user's own key; fall back to the shared key; otherwise refuse.

  Credentials are read on every call so a key saved or removed a moment ago
  takes effect on the next generation.
  """
  if await credentials.has_personal_key(user_id):
    return PERSONAL_PROVIDER
  if await credentials.has_system_key():
    logger.info("No personal key for user_id=%s; using shared %s key", user_id, FALLBACK_PROVIDER.value)
    return FALLBACK_PROVIDER
  raise AiNotAvailableError()
