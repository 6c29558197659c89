"""Retry helper for provider rate limiting."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)

DEFAULT_DELAYS: tuple[float, ...] = (1.0, 2.0, 4.0)


def is_rate_limit_error(exc: BaseException) -> bool:
  """Return True for 429 / quota style failures that are worth retrying."""
  error_msg = str(exc)
  return "429" in error_msg or "Too Many Requests" in error_msg or "RESOURCE_EXHAUSTED" in error_msg or "Resource Exhausted" in error_msg


async def retry_with_backoff(func: Callable[..., Awaitable[T]], *args: Any, delays: Sequence[float] = DEFAULT_DELAYS, **kwargs: Any) -> T:
  """Call `func`, retrying rate-limit errors after each delay (plus jitter)."""
  for attempt, delay in enumerate(delays):
    try:
      return await func(*args, **kwargs)
    except Exception as e:
      if not is_rate_limit_error(e):
        raise
      wait = delay + random.uniform(0, delay / 2)
      logger.warning("Rate limited (attempt %s/%s); retrying in %.1fs: %s", attempt + 1, len(delays), wait, e)
      await asyncio.sleep(wait)

  # Final attempt propagates whatever it raises.
  return await func(*args, **kwargs)
