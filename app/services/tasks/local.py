from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from app.services.tasks.interface import TaskRunner

logger = logging.getLogger(__name__)


class LocalTaskRunner(TaskRunner):
  """Runs jobs as tasks on the current event loop.

  Jobs are lost if the process exits mid-flight; the stale-record sweep at
  startup fails whatever they left behind.
  """

  def __init__(self) -> None:
    # The event loop keeps only weak references to tasks.
    self._tasks: set[asyncio.Task[None]] = set()

  def launch(self, name: str, job: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
    task = asyncio.create_task(job, name=name)
    self._tasks.add(task)
    task.add_done_callback(self._on_done)
    logger.debug("Launched background task %s", name)
    return task

  def _on_done(self, task: asyncio.Task[None]) -> None:
    """Forget finished tasks and log exceptions to avoid silent failures."""
    self._tasks.discard(task)
    if task.cancelled():
      logger.warning("Background task %s was cancelled", task.get_name())
      return
    try:
      _ = task.result()
    except Exception as exc:  # noqa: BLE001
      logger.error("Background task %s failed: %s", task.get_name(), exc, exc_info=True)

  @property
  def in_flight(self) -> int:
    return len(self._tasks)

  async def drain(self, timeout: float | None = None) -> int:
    if not self._tasks:
      return 0
    _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
    return len(pending)
