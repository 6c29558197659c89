from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any, Protocol


class TaskRunner(Protocol):
  """Interface for launching background work that outlives the request."""

  def launch(self, name: str, job: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
    """Start a job without awaiting it."""
    ...

  @property
  def in_flight(self) -> int:
    """Number of jobs still running."""
    ...

  async def drain(self, timeout: float | None = None) -> int:
    """Wait for running jobs; return how many were still running at the deadline."""
    ...
