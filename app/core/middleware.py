import logging
import re
import time
import uuid
from typing import Any

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Receive, Scope, Send

logger = logging.getLogger("app.core.middleware")

# Upstream ids are reused only when they look like ids; anything else is replaced.
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{8,64}$")
_QUIET_PATHS = frozenset({"/health"})
# Responses under these prefixes describe credentials and must not be cached.
_NO_STORE_PREFIXES = ("/v1/settings", "/admin")


def _resolve_request_id(scope: Scope) -> str:
  incoming = Headers(scope=scope).get("x-request-id")
  if incoming and _REQUEST_ID_PATTERN.fullmatch(incoming):
    return incoming
  return str(uuid.uuid4())


class RequestLoggingMiddleware:
  """Log one line per request and response, tagged with a request id.

  Query strings and bodies are never logged: settings endpoints receive
  plaintext API keys.
  """

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    request_id = _resolve_request_id(scope)
    scope.setdefault("state", {})["request_id"] = request_id

    method = scope.get("method", "UNKNOWN")
    path = scope.get("path", "")
    level = logging.DEBUG if path in _QUIET_PATHS else logging.INFO
    started = time.perf_counter()
    logger.log(level, "Incoming request request_id=%s %s %s", request_id, method, path)

    status_code = 0

    async def send_wrapper(message: dict[str, Any]) -> None:
      nonlocal status_code
      if message.get("type") == "http.response.start":
        status_code = message.get("status", 0)
        MutableHeaders(scope=message)["x-request-id"] = request_id
      await send(message)

    try:
      await self.app(scope, receive, send_wrapper)
    finally:
      elapsed_ms = (time.perf_counter() - started) * 1000
      if status_code >= 500 or status_code == 0:
        level = logging.WARNING
      logger.log(level, "Response request_id=%s %s %s status=%s (took %.2fms)", request_id, method, path, status_code, elapsed_ms)


class SecurityHeadersMiddleware:
  """Strip server banners, set nosniff and mark credential responses no-store."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    no_store = scope.get("path", "").startswith(_NO_STORE_PREFIXES)

    async def send_wrapper(message: dict[str, Any]) -> None:
      if message["type"] == "http.response.start":
        headers = MutableHeaders(scope=message)
        for banner in ("x-powered-by", "server"):
          if banner in headers:
            del headers[banner]
        headers["x-content-type-options"] = "nosniff"
        if no_store:
          headers["cache-control"] = "no-store"
      await send(message)

    await self.app(scope, receive, send_wrapper)
