"""Failures raised inside the generation pipeline.

Every error carries a short machine `code`; its message is what ends up in a
record's failure reason, so messages are written for the person reading them.
"""

from __future__ import annotations


class GenerationError(RuntimeError):
  """Base class for expected pipeline failures."""

  code = "GENERATION_FAILED"


class AiNotAvailableError(GenerationError):
  code = "AI_NOT_AVAILABLE"

  def __init__(self, message: str = "AI is not available: configure a personal Anthropic API key or ask an administrator to configure the shared Gemini key.") -> None:
    super().__init__(message)


class ProviderNotConfiguredError(GenerationError):
  """The resolved provider lost its credential between resolution and use."""

  code = "PROVIDER_NOT_CONFIGURED"


class DisciplineNotFoundError(GenerationError):
  code = "DISCIPLINE_NOT_FOUND"

  def __init__(self, message: str = "Discipline not found.") -> None:
    super().__init__(message)


class QuotaExceededError(GenerationError):
  """Raised when the fallback provider's daily quota is used up."""

  code = "QUOTA_EXCEEDED"


class ProviderCallError(GenerationError):
  code = "PROVIDER_ERROR"


class ResponseTooLongError(GenerationError):
  code = "RESPONSE_TOO_LONG"

  def __init__(self, message: str = "The AI response is too long even after continuations. Try again with a more specific topic.") -> None:
    super().__init__(message)


class ContentParseError(GenerationError):
  code = "CONTENT_PARSE_FAILED"
