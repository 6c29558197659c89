"""Provider implementations."""

from app.ai.providers.base import FALLBACK_PROVIDER, PERSONAL_PROVIDER, AIModel, AiProvider, ChatMessage, Completion, Provider
from app.ai.providers.claude import ClaudeModel, ClaudeProvider
from app.ai.providers.gemini import GeminiModel, GeminiProvider
from app.config import Settings


def build_model(provider: AiProvider, api_key: str | None, settings: Settings) -> AIModel:
  """Return a model client for the resolved provider using the configured model names."""
  if provider is AiProvider.CLAUDE:
    return ClaudeProvider(api_key, timeout_seconds=settings.provider_timeout_seconds).get_model(settings.claude_model)
  return GeminiProvider(api_key).get_model(settings.gemini_model)


__all__ = [
  "FALLBACK_PROVIDER",
  "PERSONAL_PROVIDER",
  "AIModel",
  "AiProvider",
  "ChatMessage",
  "ClaudeModel",
  "ClaudeProvider",
  "Completion",
  "GeminiModel",
  "GeminiProvider",
  "Provider",
  "build_model",
]
