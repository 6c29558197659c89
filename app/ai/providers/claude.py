"""Anthropic Claude provider, used with a user's personal API key."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Final

import anthropic
from anthropic import AsyncAnthropic

from app.ai.errors import ProviderCallError, ProviderNotConfiguredError
from app.ai.providers.base import AIModel, AiProvider, ChatMessage, Completion, Provider

logger = logging.getLogger(__name__)

# Statuses that prove the key authenticated even though the call itself failed.
_KEY_ACCEPTED_STATUSES: Final[frozenset[int]] = frozenset({400, 429, 529})


class ClaudeModel(AIModel):
  """Claude messages-API client."""

  provider = AiProvider.CLAUDE

  def __init__(self, name: str, api_key: str | None, *, timeout_seconds: float = 120.0, client: AsyncAnthropic | None = None) -> None:
    if not api_key and client is None:
      raise ProviderNotConfiguredError("Anthropic API key is not configured.")
    self.name = name
    self._client = client or AsyncAnthropic(api_key=api_key, timeout=timeout_seconds)

  async def complete(self, messages: Sequence[ChatMessage], *, max_output_tokens: int) -> Completion:
    payload = [{"role": message.role, "content": message.content} for message in messages]
    try:
      response = await self._client.messages.create(model=self.name, max_tokens=max_output_tokens, messages=payload)
    except anthropic.AuthenticationError as exc:
      raise ProviderCallError("The Anthropic API key was rejected. Update it in your settings.") from exc
    except anthropic.RateLimitError as exc:
      raise ProviderCallError(f"Anthropic rate limit reached: {exc}") from exc
    except anthropic.APIError as exc:
      raise ProviderCallError(f"Anthropic request failed: {exc}") from exc

    text = "".join(block.text for block in response.content if block.type == "text")
    if not text:
      raise ProviderCallError("The AI response contained no text.")

    usage: dict[str, Any] | None = None
    if response.usage:
      usage = {"prompt_tokens": response.usage.input_tokens, "completion_tokens": response.usage.output_tokens}
    logger.info("Claude response model=%s stop_reason=%s chars=%s", response.model, response.stop_reason, len(text))
    return Completion(text=text, stop_reason=response.stop_reason, model_id=f"{self.provider.value}/{response.model}", truncated=response.stop_reason == "max_tokens", usage=usage)


class ClaudeProvider(Provider):
  """Claude provider bound to one API key."""

  name = AiProvider.CLAUDE
  _DEFAULT_MODEL: Final[str] = "claude-sonnet-4-20250514"

  def __init__(self, api_key: str | None, *, timeout_seconds: float = 120.0) -> None:
    self._api_key = api_key
    self._timeout_seconds = timeout_seconds

  def get_model(self, model: str | None = None) -> AIModel:
    return ClaudeModel(model or self._DEFAULT_MODEL, self._api_key, timeout_seconds=self._timeout_seconds)


async def validate_claude_key(api_key: str, *, model: str, timeout_seconds: float = 30.0) -> bool:
  """Check the key with a 1-token call; False means Anthropic rejected it."""
  async with AsyncAnthropic(api_key=api_key, max_retries=0, timeout=timeout_seconds) as client:
    try:
      await client.messages.create(model=model, max_tokens=1, messages=[{"role": "user", "content": "test"}])
    except anthropic.APIStatusError as exc:
      if exc.status_code == 401:
        return False
      if exc.status_code in _KEY_ACCEPTED_STATUSES:
        logger.info("Anthropic key check returned %s; treating key as valid", exc.status_code)
        return True
      raise ProviderCallError(f"Unable to verify the Anthropic API key: {exc}") from exc
    except anthropic.APIError as exc:
      raise ProviderCallError(f"Unable to verify the Anthropic API key: {exc}") from exc
  return True
