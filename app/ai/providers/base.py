"""Base interfaces for AI providers and models."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Literal


class AiProvider(str, Enum):
  """The two provider slots: the user's own key, or the shared fallback key."""

  CLAUDE = "claude"
  GEMINI = "gemini"


PERSONAL_PROVIDER = AiProvider.CLAUDE
FALLBACK_PROVIDER = AiProvider.GEMINI


@dataclass(frozen=True)
class ChatMessage:
  """One turn of a provider conversation."""

  role: Literal["user", "assistant"]
  content: str


@dataclass(frozen=True)
class Completion:
  """Provider-neutral result of a single completion call."""

  text: str
  stop_reason: str | None
  model_id: str
  truncated: bool = False
  usage: dict[str, int] | None = None


class AIModel(ABC):
  """Abstract base class for AI models."""

  name: str
  provider: AiProvider

  @abstractmethod
  async def complete(self, messages: Sequence[ChatMessage], *, max_output_tokens: int) -> Completion:
    """Return the next assistant turn; `truncated` is set when the token budget cut it off."""

  @property
  def model_label(self) -> str:
    """Provider/model identifier stored for audit."""
    return f"{self.provider.value}/{self.name}"


class Provider(ABC):
  """Abstract base class for AI providers."""

  name: AiProvider

  @abstractmethod
  def get_model(self, model: str | None = None) -> AIModel:
    """Return the model client for the provider."""
