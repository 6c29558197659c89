"""Generation status polling and client-side transition tracking."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field

from app.schema.lessons import LessonStatus
from app.storage.lessons_repo import LessonsRepository

DEFAULT_WINDOW = datetime.timedelta(seconds=60)


@dataclass(frozen=True)
class StatusItem:
  lesson_id: str
  title: str
  failure_reason: str | None = None


@dataclass(frozen=True)
class GenerationStatusSnapshot:
  """What one poll reports: in-flight records plus records that finished recently."""

  generating: list[StatusItem] = field(default_factory=list)
  just_completed: list[StatusItem] = field(default_factory=list)
  just_failed: list[StatusItem] = field(default_factory=list)


async def poll_status(
  repo: LessonsRepository,
  user_id: str,
  *,
  window: datetime.timedelta = DEFAULT_WINDOW,
  now: datetime.datetime | None = None,
) -> GenerationStatusSnapshot:
  """Return the user's GENERATING records and DRAFT/FAILED records updated inside `window`.

  Pure read: polling never changes a record.
  """
  since = (now or datetime.datetime.now(datetime.UTC)) - window
  rows = await repo.list_status_rows(user_id, since=since)

  snapshot = GenerationStatusSnapshot()
  for row in rows:
    if row.status == LessonStatus.GENERATING:
      snapshot.generating.append(StatusItem(lesson_id=row.lesson_id, title=row.title))
    elif row.updated_at < since:
      continue
    elif row.status == LessonStatus.DRAFT:
      snapshot.just_completed.append(StatusItem(lesson_id=row.lesson_id, title=row.title))
    elif row.status == LessonStatus.FAILED:
      snapshot.just_failed.append(StatusItem(lesson_id=row.lesson_id, title=row.title, failure_reason=row.failure_reason))
  return snapshot


@dataclass(frozen=True)
class StatusTransitions:
  completed: list[StatusItem]
  failed: list[StatusItem]


class StatusWatcher:
  """Turn successive snapshots into one notification per finished generation.

  Only records this watcher saw GENERATING are reported, so a client that
  opens after a record finished is not notified about it, and the same
  record is never reported twice even though it stays in the window for
  several polls.
  """

  def __init__(self) -> None:
    self._watched: set[str] = set()

  @property
  def watched(self) -> frozenset[str]:
    return frozenset(self._watched)

  def observe(self, snapshot: GenerationStatusSnapshot) -> StatusTransitions:
    completed = [item for item in snapshot.just_completed if item.lesson_id in self._watched]
    failed = [item for item in snapshot.just_failed if item.lesson_id in self._watched]
    self._watched = {item.lesson_id for item in snapshot.generating}
    return StatusTransitions(completed=completed, failed=failed)
