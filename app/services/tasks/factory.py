from __future__ import annotations

from functools import lru_cache

from app.services.tasks.interface import TaskRunner
from app.services.tasks.local import LocalTaskRunner


@lru_cache(maxsize=1)
def get_task_runner() -> TaskRunner:
  """Process-wide runner so in-flight jobs can be counted at shutdown."""
  return LocalTaskRunner()
