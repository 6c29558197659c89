"""Startup cleanup for work interrupted by a process exit."""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass

from app.services.quotas import UsageLedger
from app.storage.curriculum_repo import CurriculumRepository
from app.storage.lessons_repo import LessonsRepository

logger = logging.getLogger(__name__)

INTERRUPTED_GENERATION_REASON = "Generation was interrupted before it finished. Retry to generate it again."
INTERRUPTED_PARSING_REASON = "Program analysis was interrupted before it finished. Start the analysis again."


@dataclass(frozen=True)
class SweepResult:
  generations: int
  programs: int
  reservations: int


async def sweep_interrupted_work(
  *,
  lessons: LessonsRepository,
  curriculum: CurriculumRepository,
  ledger: UsageLedger,
  started_at: datetime.datetime | None = None,
) -> SweepResult:
  """Fail work left in flight by the previous process and free its quota slots.

  Background runs live only in the process that launched them, so at startup
  every GENERATING record, PARSING program and open reservation created
  before `started_at` is orphaned, however recent it is.
  """
  cutoff = started_at or datetime.datetime.now(datetime.UTC)
  generation_ids = await lessons.fail_stale(cutoff=cutoff, reason=INTERRUPTED_GENERATION_REASON)
  program_ids = await curriculum.fail_interrupted_parsing(cutoff=cutoff, reason=INTERRUPTED_PARSING_REASON)
  reservations = await ledger.purge_abandoned_reservations(cutoff=cutoff)
  if generation_ids or program_ids:
    logger.warning("Marked %s interrupted generations and %s interrupted program analyses as failed", len(generation_ids), len(program_ids))
  return SweepResult(generations=len(generation_ids), programs=len(program_ids), reservations=reservations)
