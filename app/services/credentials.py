"""Encrypted storage and validation of personal and shared provider keys."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from functools import partial

from app.ai.errors import ProviderCallError
from app.ai.providers.base import PERSONAL_PROVIDER, AiProvider
from app.ai.providers.claude import validate_claude_key
from app.ai.providers.gemini import validate_gemini_key
from app.config import Settings
from app.core.crypto import CredentialCipher, CredentialDecryptionError, get_cipher, mask_api_key
from app.services.errors import CredentialValidationError, InvalidInputError
from app.storage.credentials_repo import CredentialsRepository

logger = logging.getLogger(__name__)

ANTHROPIC_KEY_PREFIX = "sk-ant-"

KeyValidator = Callable[[str], Awaitable[bool]]


@dataclass(frozen=True)
class ApiKeyStatus:
  configured: bool
  masked_key: str | None = None


class CredentialStore:
  """Read-through access to provider keys; plaintext never leaves this class except to build a client."""

  def __init__(
    self,
    repo: CredentialsRepository,
    *,
    personal_validator: KeyValidator,
    system_validator: KeyValidator,
    cipher_factory: Callable[[], CredentialCipher] = get_cipher,
  ) -> None:
    self._repo = repo
    self._personal_validator = personal_validator
    self._system_validator = system_validator
    self._cipher_factory = cipher_factory
    self._cipher: CredentialCipher | None = None

  @classmethod
  def from_settings(cls, repo: CredentialsRepository, settings: Settings) -> CredentialStore:
    return cls(
      repo,
      personal_validator=partial(validate_claude_key, model=settings.claude_model),
      system_validator=partial(validate_gemini_key, model=settings.gemini_model),
    )

  def _get_cipher(self) -> CredentialCipher:
    # Presence checks must work even when no encryption key is configured.
    if self._cipher is None:
      self._cipher = self._cipher_factory()
    return self._cipher

  async def has_personal_key(self, user_id: str) -> bool:
    return await self._repo.get_personal_key(user_id) is not None

  async def has_system_key(self) -> bool:
    return await self._repo.get_system_key() is not None

  async def personal_key(self, user_id: str) -> str | None:
    ciphertext = await self._repo.get_personal_key(user_id)
    if ciphertext is None:
      return None
    return self._get_cipher().decrypt(ciphertext)

  async def system_key(self) -> str | None:
    ciphertext = await self._repo.get_system_key()
    if ciphertext is None:
      return None
    return self._get_cipher().decrypt(ciphertext)

  async def key_for(self, provider: AiProvider, user_id: str) -> str | None:
    """Decrypted key for the resolved provider slot."""
    if provider is PERSONAL_PROVIDER:
      return await self.personal_key(user_id)
    return await self.system_key()

  def _status(self, ciphertext: str | None, *, label: str) -> ApiKeyStatus:
    if ciphertext is None:
      return ApiKeyStatus(configured=False)
    try:
      return ApiKeyStatus(configured=True, masked_key=mask_api_key(self._get_cipher().decrypt(ciphertext)))
    except CredentialDecryptionError:
      logger.warning("Stored %s key could not be decrypted; reporting it without a mask", label)
      return ApiKeyStatus(configured=True)

  async def personal_key_status(self, user_id: str) -> ApiKeyStatus:
    return self._status(await self._repo.get_personal_key(user_id), label="personal")

  async def system_key_status(self) -> ApiKeyStatus:
    return self._status(await self._repo.get_system_key(), label="shared")

  async def _validate(self, validator: KeyValidator, api_key: str, *, provider_name: str) -> None:
    try:
      valid = await validator(api_key)
    except ProviderCallError as exc:
      raise CredentialValidationError(str(exc)) from exc
    if not valid:
      raise CredentialValidationError(f"The {provider_name} API key is not valid. Check it and try again.")

  async def save_personal_key(self, user_id: str, api_key: str) -> ApiKeyStatus:
    """Validate against Anthropic, then store the key encrypted."""
    key = api_key.strip()
    if not key:
      raise InvalidInputError("API key is required.")
    if not key.startswith(ANTHROPIC_KEY_PREFIX):
      raise InvalidInputError(f"Anthropic API keys start with '{ANTHROPIC_KEY_PREFIX}'.")
    await self._validate(self._personal_validator, key, provider_name="Anthropic")
    await self._repo.set_personal_key(user_id, self._get_cipher().encrypt(key))
    logger.info("Personal API key saved user_id=%s", user_id)
    return ApiKeyStatus(configured=True, masked_key=mask_api_key(key))

  async def remove_personal_key(self, user_id: str) -> None:
    await self._repo.set_personal_key(user_id, None)
    logger.info("Personal API key removed user_id=%s", user_id)

  async def save_system_key(self, api_key: str) -> ApiKeyStatus:
    """Validate against Gemini, then store the shared fallback key encrypted."""
    key = api_key.strip()
    if not key:
      raise InvalidInputError("API key is required.")
    await self._validate(self._system_validator, key, provider_name="Gemini")
    await self._repo.set_system_key(self._get_cipher().encrypt(key))
    logger.info("Shared Gemini API key saved")
    return ApiKeyStatus(configured=True, masked_key=mask_api_key(key))

  async def remove_system_key(self) -> None:
    await self._repo.set_system_key(None)
    logger.info("Shared Gemini API key removed")
