import logging
import time
import uuid
from typing import Any

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Receive, Scope, Send

logger = logging.getLogger("lessonsmith.core.middleware")


class RequestLoggingMiddleware:
  """Stamp every HTTP request with a request id and log its timing."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    # Exception handlers read the id back from request.state.
    request_id = str(uuid.uuid4())
    scope.setdefault("state", {})["request_id"] = request_id
    start_time = time.time()
    logger.info("Incoming request request_id=%s %s %s", request_id, scope.get("method", "UNKNOWN"), scope.get("path", ""))

    status_code: int | None = None

    async def send_wrapper(message: dict[str, Any]) -> None:
      nonlocal status_code
      if message.get("type") == "http.response.start":
        status_code = message.get("status")
        response_headers = MutableHeaders(scope=message)
        if "x-request-id" not in response_headers:
          response_headers["x-request-id"] = request_id
      await send(message)

    await self.app(scope, receive, send_wrapper)
    process_time = (time.time() - start_time) * 1000
    logger.info("Response request_id=%s status=%s (took %.2fms)", request_id, status_code or 0, process_time)
