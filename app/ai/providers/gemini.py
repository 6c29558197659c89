"""Gemini provider implementation using the google-genai SDK (shared fallback key)."""

from __future__ import annotations

import logging
import warnings
from collections.abc import Sequence
from typing import Any, Final

from pydantic.warnings import ArbitraryTypeWarning

with warnings.catch_warnings():
  warnings.filterwarnings("ignore", message=r"<built-in function any> is not a Python type.*", category=ArbitraryTypeWarning)
  from google import genai
  from google.genai import errors as genai_errors

from app.ai.backoff import retry_with_backoff
from app.ai.errors import ProviderCallError, ProviderNotConfiguredError
from app.ai.providers.base import AIModel, AiProvider, ChatMessage, Completion, Provider

logger = logging.getLogger(__name__)

_INVALID_KEY_REASON: Final[str] = "API_KEY_INVALID"


def _finish_reason_name(response: Any) -> str | None:
  candidates = getattr(response, "candidates", None) or []
  if not candidates:
    return None
  reason = getattr(candidates[0], "finish_reason", None)
  if reason is None:
    return None
  return str(getattr(reason, "name", reason))


def _to_contents(messages: Sequence[ChatMessage]) -> list[dict[str, Any]]:
  # Gemini names the assistant role "model".
  return [{"role": "model" if message.role == "assistant" else "user", "parts": [{"text": message.content}]} for message in messages]


class GeminiModel(AIModel):
  """Gemini model client in JSON response mode."""

  provider = AiProvider.GEMINI

  def __init__(self, name: str, api_key: str | None, *, client: genai.Client | None = None) -> None:
    if not api_key and client is None:
      raise ProviderNotConfiguredError("The shared Gemini API key is not configured.")
    self.name = name
    self._client = client or genai.Client(api_key=api_key)

  async def complete(self, messages: Sequence[ChatMessage], *, max_output_tokens: int) -> Completion:
    config = {"response_mime_type": "application/json", "max_output_tokens": max_output_tokens}
    try:
      # Use the async client to avoid blocking the asyncio event loop.
      response = await retry_with_backoff(self._client.aio.models.generate_content, model=self.name, contents=_to_contents(messages), config=config)
    except genai_errors.APIError as exc:
      raise ProviderCallError(f"Gemini request failed: {exc}") from exc

    text = response.text or ""
    finish_reason = _finish_reason_name(response)
    if not text and finish_reason != "MAX_TOKENS":
      raise ProviderCallError(f"The AI response contained no text (finish_reason={finish_reason}).")

    usage = None
    if response.usage_metadata:
      usage = {"prompt_tokens": response.usage_metadata.prompt_token_count, "completion_tokens": response.usage_metadata.candidates_token_count, "total_tokens": response.usage_metadata.total_token_count}
    model_version = getattr(response, "model_version", None) or self.name
    logger.info("Gemini response model=%s finish_reason=%s chars=%s", model_version, finish_reason, len(text))
    return Completion(text=text, stop_reason=finish_reason, model_id=f"{self.provider.value}/{model_version}", truncated=finish_reason == "MAX_TOKENS", usage=usage)


class GeminiProvider(Provider):
  """Gemini provider bound to the shared key."""

  name = AiProvider.GEMINI
  _DEFAULT_MODEL: Final[str] = "gemini-2.0-flash"

  def __init__(self, api_key: str | None) -> None:
    self._api_key = api_key

  def get_model(self, model: str | None = None) -> AIModel:
    return GeminiModel(model or self._DEFAULT_MODEL, self._api_key)


def classify_gemini_key_error(exc: genai_errors.APIError) -> bool | None:
  """Map a failed validation call to key validity: False invalid, True valid, None unknown."""
  if exc.code in (401, 403):
    return False
  # Google reports a malformed or unknown key as 400 INVALID_ARGUMENT with reason API_KEY_INVALID.
  if exc.code == 400 and _INVALID_KEY_REASON in str(exc.details):
    return False
  if exc.code == 429:
    return True
  return None


async def validate_gemini_key(api_key: str, *, model: str, client: genai.Client | None = None) -> bool:
  """Check the shared key with a minimal call; False means Google rejected it."""
  client = client or genai.Client(api_key=api_key)
  try:
    await client.aio.models.generate_content(model=model, contents="test", config={"max_output_tokens": 1})
  except genai_errors.APIError as exc:
    verdict = classify_gemini_key_error(exc)
    if verdict is None:
      raise ProviderCallError(f"Unable to verify the Gemini API key: {exc}") from exc
    return verdict
  finally:
    await client.aio.aclose()
  return True
