"""Test configuration for importing the application package."""

from __future__ import annotations

import os

# Settings are read at import time by app.main; provide the required CORS origin first.
os.environ.setdefault("AULA_ALLOWED_ORIGINS", "http://localhost:3000")
os.environ.pop("AULA_PG_DSN", None)
os.environ.pop("DATABASE_URL", None)

import pytest  # noqa: E402

from tests.fakes import Harness, make_harness  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def harness() -> Harness:
  return make_harness()
