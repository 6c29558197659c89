"""Unit tests for the generation state machine."""

from __future__ import annotations

import dataclasses

import pytest

from app.ai.errors import AiNotAvailableError, ResponseTooLongError
from app.ai.orchestrator import GenerationLimits, complete_with_continuations
from app.ai.prompts import CONTINUATION_PROMPT
from app.ai.providers.base import AiProvider
from app.schema.curriculum import TopicStatus
from app.schema.lessons import ContentType, LessonStatus
from app.services.errors import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from app.storage.curriculum_repo import DocumentRecord
from tests.fakes import OTHER_TEACHER_ID, TEACHER_ID, ScriptedModel, completion, lesson_json, make_harness


async def _generate(harness, **overrides) -> str:
  lesson_id = await harness.orchestrator.create_and_launch_generation(harness.request(**overrides))
  assert await harness.runner.drain(timeout=5) == 0
  return lesson_id


@pytest.mark.anyio
async def test_generation_with_personal_key_reaches_draft(harness) -> None:
  harness.set_personal_key()
  model = harness.script(AiProvider.CLAUDE, completion(lesson_json(3)))

  lesson_id = await _generate(harness)

  record = harness.store.lessons[lesson_id]
  assert record.status == LessonStatus.DRAFT
  assert len(record.content["sections"]) == 3
  assert record.content["estimatedDuration"] == 60
  assert record.ai_model_used == "claude/claude-test"
  assert record.failure_reason is None
  assert harness.factory_calls == [(AiProvider.CLAUDE, "sk-ant-personal-key-123")]
  assert "Matematica" in model.calls[0][0].content
  # Personal calls are audited but never count against a quota.
  assert [(entry.provider, entry.operation) for entry in harness.usage_repo.entries] == [("claude", "generation")]
  assert harness.usage_repo.reservations == {}
  quota = await harness.ledger.check_quota(TEACHER_ID, AiProvider.CLAUDE)
  assert quota.allowed and quota.limit is None


@pytest.mark.anyio
async def test_pending_record_is_visible_before_the_run_finishes(harness) -> None:
  harness.set_personal_key()
  harness.script(AiProvider.CLAUDE, completion(lesson_json()))

  lesson_id = await harness.orchestrator.create_and_launch_generation(harness.request())

  record = harness.store.lessons[lesson_id]
  assert record.status == LessonStatus.GENERATING
  assert record.content["sections"] == []
  await harness.runner.drain(timeout=5)


@pytest.mark.anyio
async def test_fallback_generation_is_recorded_in_the_ledger(harness) -> None:
  harness.set_system_key()
  harness.script(AiProvider.GEMINI, completion(lesson_json(), model_id="gemini/gemini-test"))

  lesson_id = await _generate(harness)

  assert harness.store.lessons[lesson_id].status == LessonStatus.DRAFT
  assert [(entry.provider, entry.operation) for entry in harness.usage_repo.entries] == [("gemini", "generation")]
  assert harness.usage_repo.reservations == {}


@pytest.mark.anyio
async def test_personal_key_wins_over_shared_key(harness) -> None:
  harness.set_personal_key()
  harness.set_system_key()
  harness.script(AiProvider.CLAUDE, completion(lesson_json()))

  await _generate(harness)

  assert [provider for provider, _ in harness.factory_calls] == [AiProvider.CLAUDE]


@pytest.mark.anyio
async def test_no_provider_fails_the_record(harness) -> None:
  lesson_id = await _generate(harness)

  record = harness.store.lessons[lesson_id]
  assert record.status == LessonStatus.FAILED
  assert record.failure_reason == str(AiNotAvailableError())
  assert harness.factory_calls == []


@pytest.mark.anyio
async def test_quota_exhausted_fails_without_calling_the_model() -> None:
  harness = make_harness(daily_limit=1)
  harness.set_system_key()
  harness.script(AiProvider.GEMINI, completion(lesson_json()))
  await _generate(harness)

  second = await _generate(harness)

  record = harness.store.lessons[second]
  assert record.status == LessonStatus.FAILED
  assert record.failure_reason.startswith("You have reached the daily limit of 1 free generations.")
  assert len(harness.models[AiProvider.GEMINI].calls) == 1


@pytest.mark.anyio
async def test_truncated_response_is_continued_and_concatenated(harness) -> None:
  harness.set_personal_key()
  body = lesson_json(4)
  model = harness.script(AiProvider.CLAUDE, completion(body[:40], truncated=True), completion(body[40:90], truncated=True), completion(body[90:]))

  lesson_id = await _generate(harness)

  record = harness.store.lessons[lesson_id]
  assert record.status == LessonStatus.DRAFT
  assert len(record.content["sections"]) == 4
  assert len(model.calls) == 3
  last_call = model.calls[-1]
  assert [message.role for message in last_call] == ["user", "assistant", "user"]
  assert last_call[1].content == body[:90]
  assert last_call[2].content == CONTINUATION_PROMPT


@pytest.mark.anyio
async def test_too_many_continuations_fail_without_parsing() -> None:
  harness = make_harness(limits=GenerationLimits(max_continuations=1))
  harness.set_system_key()
  harness.script(AiProvider.GEMINI, completion("{", truncated=True), completion('"sections"', truncated=True))

  lesson_id = await _generate(harness)

  record = harness.store.lessons[lesson_id]
  assert record.status == LessonStatus.FAILED
  assert "too long" in record.failure_reason
  assert record.content["sections"] == []
  # The failed attempt gives its quota slot back.
  assert harness.usage_repo.entries == []
  assert harness.usage_repo.reservations == {}


@pytest.mark.anyio
async def test_unparseable_response_fails_and_releases_reservation(harness) -> None:
  harness.set_system_key()
  harness.script(AiProvider.GEMINI, completion("Ecco la tua lezione!"))

  lesson_id = await _generate(harness)

  record = harness.store.lessons[lesson_id]
  assert record.status == LessonStatus.FAILED
  assert "not valid JSON" in record.failure_reason
  assert harness.usage_repo.reservations == {}
  assert harness.usage_repo.entries == []


@pytest.mark.anyio
async def test_provider_exception_fails_the_record(harness) -> None:
  harness.set_personal_key()
  harness.script(AiProvider.CLAUDE, RuntimeError("connection reset"))

  lesson_id = await _generate(harness)

  record = harness.store.lessons[lesson_id]
  assert record.status == LessonStatus.FAILED
  assert record.failure_reason == "connection reset"


@pytest.mark.anyio
async def test_topic_generation_mirrors_status_and_uses_module_context(harness) -> None:
  harness.set_personal_key()
  topic = harness.store.add_topic()
  model = harness.script(AiProvider.CLAUDE, completion(lesson_json()))

  lesson_id = await harness.orchestrator.create_and_launch_generation(harness.request(title=topic.title, topic_id=topic.topic_id))
  assert harness.store.topics[topic.topic_id].status == TopicStatus.GENERATING
  await harness.runner.drain(timeout=5)

  assert harness.store.topics[topic.topic_id].status == TopicStatus.GENERATED
  assert harness.store.topics[topic.topic_id].lesson_id == lesson_id
  prompt = model.calls[0][0].content
  assert 'Programma: "Matematica 3A"' in prompt
  assert "Argomenti del modulo: Le equazioni, Le disequazioni" in prompt


@pytest.mark.anyio
async def test_failed_topic_generation_marks_topic_failed(harness) -> None:
  topic = harness.store.add_topic()

  await _generate(harness, topic_id=topic.topic_id)

  assert harness.store.topics[topic.topic_id].status == TopicStatus.FAILED


@pytest.mark.anyio
async def test_create_pending_conflicts_for_busy_topic(harness) -> None:
  topic = harness.store.add_topic(status=TopicStatus.GENERATING)

  with pytest.raises(ConflictError):
    await harness.orchestrator.create_pending(harness.request(topic_id=topic.topic_id))
  assert harness.store.lessons == {}


@pytest.mark.anyio
async def test_validation_rejects_blank_title_and_unknown_discipline(harness) -> None:
  with pytest.raises(InvalidInputError):
    await harness.orchestrator.create_and_launch_generation(harness.request(title="   "))
  with pytest.raises(NotFoundError):
    await harness.orchestrator.create_and_launch_generation(harness.request(discipline_id="missing"))
  assert harness.store.lessons == {}


@pytest.mark.anyio
async def test_document_of_another_teacher_is_not_found(harness) -> None:
  harness.store.documents["doc-1"] = DocumentRecord(document_id="doc-1", teacher_id=OTHER_TEACHER_ID, extracted_text="Testo")

  with pytest.raises(NotFoundError):
    await harness.orchestrator.create_and_launch_generation(harness.request(document_id="doc-1"))


@pytest.mark.anyio
async def test_document_text_is_truncated_into_the_prompt() -> None:
  harness = make_harness(limits=GenerationLimits(document_chars=10))
  harness.set_personal_key()
  harness.store.documents["doc-1"] = DocumentRecord(document_id="doc-1", teacher_id=TEACHER_ID, extracted_text="ABCDEFGHIJKLMNOP")
  model = harness.script(AiProvider.CLAUDE, completion(lesson_json()))

  await _generate(harness, document_id="doc-1")

  prompt = model.calls[0][0].content
  assert "ABCDEFGHIJ" in prompt
  assert "ABCDEFGHIJK" not in prompt


@pytest.mark.anyio
async def test_retry_restarts_a_failed_record_in_place(harness) -> None:
  lesson_id = await _generate(harness)
  assert harness.store.lessons[lesson_id].status == LessonStatus.FAILED

  harness.set_personal_key()
  harness.script(AiProvider.CLAUDE, completion(lesson_json()))
  await harness.orchestrator.retry_generation(lesson_id, TEACHER_ID)
  assert harness.store.lessons[lesson_id].status == LessonStatus.GENERATING
  assert harness.store.lessons[lesson_id].failure_reason is None
  await harness.runner.drain(timeout=5)

  assert harness.store.lessons[lesson_id].status == LessonStatus.DRAFT
  assert len(harness.store.lessons) == 1


@pytest.mark.anyio
async def test_retry_rereads_the_edited_topic(harness) -> None:
  topic = harness.store.add_topic(status=TopicStatus.FAILED)
  record = harness.store.add_lesson(status=LessonStatus.FAILED, topic_id=topic.topic_id, title="Vecchio titolo", failure_reason="boom")
  harness.store.topics[topic.topic_id] = dataclasses.replace(harness.store.topics[topic.topic_id], title="Titolo aggiornato", content_type=ContentType.VERIFICA_SCRITTA)
  harness.set_personal_key()
  model = harness.script(AiProvider.CLAUDE, completion(lesson_json()))

  await harness.orchestrator.retry_generation(record.lesson_id, TEACHER_ID)
  await harness.runner.drain(timeout=5)

  prompt = model.calls[0][0].content
  assert '"Titolo aggiornato"' in prompt
  assert '"Verifica scritta"' in prompt
  assert harness.store.topics[topic.topic_id].status == TopicStatus.GENERATED


@pytest.mark.anyio
@pytest.mark.parametrize("status", [LessonStatus.GENERATING, LessonStatus.DRAFT])
async def test_retry_requires_failed_status(harness, status) -> None:
  record = harness.store.add_lesson(status=status)

  with pytest.raises(ConflictError):
    await harness.orchestrator.retry_generation(record.lesson_id, TEACHER_ID)
  assert harness.store.lessons[record.lesson_id].status == status


@pytest.mark.anyio
async def test_retry_checks_existence_and_ownership(harness) -> None:
  record = harness.store.add_lesson(status=LessonStatus.FAILED, teacher_id=OTHER_TEACHER_ID)

  with pytest.raises(NotFoundError):
    await harness.orchestrator.retry_generation("missing", TEACHER_ID)
  with pytest.raises(ForbiddenError):
    await harness.orchestrator.retry_generation(record.lesson_id, TEACHER_ID)


@pytest.mark.anyio
async def test_deleted_record_is_not_resurrected(harness) -> None:
  harness.set_personal_key()
  harness.script(AiProvider.CLAUDE, completion(lesson_json()))
  request = harness.request()
  lesson_id = await harness.orchestrator.create_pending(request)

  await harness.lessons.delete_lesson(lesson_id)
  await harness.orchestrator.run_generation(lesson_id, request)

  assert lesson_id not in harness.store.lessons


@pytest.mark.anyio
async def test_run_generation_never_raises_when_failure_cannot_be_saved(harness, monkeypatch) -> None:
  request = harness.request()
  lesson_id = await harness.orchestrator.create_pending(request)

  async def _broken_fail(lesson_id, *, reason):
    raise RuntimeError("database unavailable")

  monkeypatch.setattr(harness.lessons, "fail", _broken_fail)
  await harness.orchestrator.run_generation(lesson_id, request)

  assert harness.store.lessons[lesson_id].status == LessonStatus.GENERATING


@pytest.mark.anyio
async def test_complete_with_continuations_respects_zero_budget() -> None:
  model = ScriptedModel([completion("{", truncated=True)])

  with pytest.raises(ResponseTooLongError):
    await complete_with_continuations(model, "prompt", max_output_tokens=100, max_continuations=0)

  assert len(model.calls) == 1
