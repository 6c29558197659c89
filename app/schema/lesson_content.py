"""Structured lesson payload returned by the AI and stored on the lesson record."""

from __future__ import annotations

import logging
import re
from typing import Any, Literal

import msgspec

from app.ai.errors import ContentParseError

SectionType = Literal["introduction", "explanation", "example", "exercise", "summary", "deepening"]

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*\n?")
_FENCE_CLOSE = re.compile(r"\n?```\s*$")

logger = logging.getLogger(__name__)


class LessonSection(msgspec.Struct):
  id: str
  type: SectionType
  title: str
  content: str
  order: int


class MindMapNode(msgspec.Struct, omit_defaults=True):
  id: str
  label: str
  description: str | None = None
  explanation: str | None = None
  color: str | None = None
  children: list[MindMapNode] = []


class CrossLink(msgspec.Struct, rename="camel", omit_defaults=True):
  from_id: str
  to_id: str
  label: str | None = None


class MindMapData(msgspec.Struct, rename="camel", omit_defaults=True):
  root: MindMapNode
  cross_links: list[CrossLink] = []


class LessonContent(msgspec.Struct, rename="camel", omit_defaults=True):
  """Lesson body: ordered sections plus didactic metadata, and a tree for concept maps."""

  sections: list[LessonSection]
  objectives: list[str]
  prerequisites: list[str]
  estimated_duration: int
  target_grade: str
  keywords: list[str]
  mind_map: MindMapData | None = None


def empty_content() -> dict[str, Any]:
  """Return the placeholder payload stored while a generation is in flight."""
  return {"sections": [], "objectives": [], "prerequisites": [], "estimatedDuration": 0, "targetGrade": "", "keywords": []}


def strip_json_fences(raw: str) -> str:
  """Remove a leading/trailing fenced-code wrapper if the model added one."""
  text = raw.strip()
  if text.startswith("```"):
    text = _FENCE_OPEN.sub("", text, count=1)
    text = _FENCE_CLOSE.sub("", text, count=1)
  return text.strip()


def parse_lesson_content(raw: str) -> LessonContent:
  """Decode the assembled model output into a LessonContent or raise ContentParseError."""
  text = strip_json_fences(raw)
  try:
    content = msgspec.json.decode(text, type=LessonContent)
  except msgspec.ValidationError as exc:
    raise ContentParseError(f"AI response does not match the lesson structure: {exc}") from exc
  except msgspec.DecodeError as exc:
    raise ContentParseError(f"AI response is not valid JSON: {exc}") from exc

  seen: set[str] = set()
  for section in content.sections:
    if section.id in seen:
      raise ContentParseError(f"AI response repeats section id '{section.id}'.")
    seen.add(section.id)

  if not content.sections:
    logger.warning("Parsed lesson content has no sections")
  return content


def content_to_builtins(content: LessonContent) -> dict[str, Any]:
  """Convert parsed content to JSON-ready builtins with camelCase keys."""
  return msgspec.to_builtins(content)
