from __future__ import annotations

import datetime

import pytest

from app.ai.providers.base import AiProvider
from app.schema.curriculum import ProgramStatus, TopicStatus
from app.schema.lessons import LessonStatus
from app.services.maintenance import INTERRUPTED_GENERATION_REASON, INTERRUPTED_PARSING_REASON, SweepResult, sweep_interrupted_work
from app.services.topics import generate_topic_lesson
from app.storage.curriculum_repo import ProgramRecord
from tests.fakes import DISCIPLINE_ID, TEACHER_ID, completion, lesson_json


@pytest.mark.anyio
async def test_sweep_fails_everything_left_in_flight_before_start(harness) -> None:
  started_at = datetime.datetime.now(datetime.UTC)
  topic = harness.store.add_topic(status=TopicStatus.GENERATING)
  # Interrupted only two minutes before the restart: still an orphan.
  orphan = harness.store.add_lesson(status=LessonStatus.GENERATING, topic_id=topic.topic_id, updated_at=started_at - datetime.timedelta(minutes=2))
  finished = harness.store.add_lesson(status=LessonStatus.DRAFT, updated_at=started_at - datetime.timedelta(days=2))
  harness.store.programs["prog-1"] = ProgramRecord(
    program_id="prog-1",
    title="Storia 4A",
    teacher_id=TEACHER_ID,
    discipline_id=DISCIPLINE_ID,
    status=ProgramStatus.PARSING,
    raw_content="Modulo 1: Il Medioevo",
    updated_at=started_at - datetime.timedelta(seconds=30),
  )
  reservation = await harness.ledger.reserve(TEACHER_ID, AiProvider.GEMINI)
  user_id, provider, _ = harness.usage_repo.reservations[reservation.reservation_id]
  harness.usage_repo.reservations[reservation.reservation_id] = (user_id, provider, started_at - datetime.timedelta(minutes=1))

  result = await sweep_interrupted_work(lessons=harness.lessons, curriculum=harness.curriculum, ledger=harness.ledger, started_at=started_at)

  assert result == SweepResult(generations=1, programs=1, reservations=1)
  assert harness.store.lessons[orphan.lesson_id].status == LessonStatus.FAILED
  assert harness.store.lessons[orphan.lesson_id].failure_reason == INTERRUPTED_GENERATION_REASON
  assert harness.store.topics[topic.topic_id].status == TopicStatus.FAILED
  assert harness.store.lessons[finished.lesson_id].status == LessonStatus.DRAFT
  assert harness.store.programs["prog-1"].status == ProgramStatus.FAILED
  assert harness.store.programs["prog-1"].failure_reason == INTERRUPTED_PARSING_REASON
  assert harness.usage_repo.reservations == {}


@pytest.mark.anyio
async def test_swept_topic_can_be_generated_again(harness) -> None:
  started_at = datetime.datetime.now(datetime.UTC)
  topic = harness.store.add_topic(status=TopicStatus.GENERATING)
  harness.store.add_lesson(status=LessonStatus.GENERATING, topic_id=topic.topic_id, updated_at=started_at - datetime.timedelta(minutes=2))
  await sweep_interrupted_work(lessons=harness.lessons, curriculum=harness.curriculum, ledger=harness.ledger, started_at=started_at)
  harness.set_system_key()
  harness.script(AiProvider.GEMINI, completion(lesson_json()))

  lesson_id = await generate_topic_lesson(topic.topic_id, TEACHER_ID, curriculum=harness.curriculum, orchestrator=harness.orchestrator)
  await harness.runner.drain(timeout=5)

  assert harness.store.lessons[lesson_id].status == LessonStatus.DRAFT
  assert harness.store.topics[topic.topic_id].status == TopicStatus.GENERATED


@pytest.mark.anyio
async def test_sweep_leaves_work_started_after_the_cutoff(harness) -> None:
  started_at = datetime.datetime.now(datetime.UTC) - datetime.timedelta(minutes=1)
  running = harness.store.add_lesson(status=LessonStatus.GENERATING)
  await harness.ledger.reserve(TEACHER_ID, AiProvider.GEMINI)

  result = await sweep_interrupted_work(lessons=harness.lessons, curriculum=harness.curriculum, ledger=harness.ledger, started_at=started_at)

  assert result == SweepResult(generations=0, programs=0, reservations=0)
  assert harness.store.lessons[running.lesson_id].status == LessonStatus.GENERATING
  assert len(harness.usage_repo.reservations) == 1
