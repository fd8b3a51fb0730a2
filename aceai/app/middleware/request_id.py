"""Per-request ID and access logging for the proxy.

The ID comes from the caller's ``X-Request-ID`` header when present, so a
browser-side error report can be matched with the proxy's log lines; it is
bound to the log context for everything that runs inside the request.
"""

import time
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from aceai.app.core.logging import bind_log_context, get_logger

logger = get_logger(__name__)

MAX_REQUEST_ID_LENGTH = 128


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tags each request with an ID and logs one line when it completes.

    The ID is stored on ``request.state.request_id`` and echoed in the
    response header. Oversized incoming IDs are replaced.
    """

    def __init__(self, app, header_name: str = "X-Request-ID"):
        super().__init__(app)
        self.header_name = header_name

    def _resolve_id(self, request: Request) -> str:
        incoming = request.headers.get(self.header_name, "").strip()
        if incoming and len(incoming) <= MAX_REQUEST_ID_LENGTH:
            return incoming
        return str(uuid.uuid4())

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = self._resolve_id(request)
        request.state.request_id = request_id

        with bind_log_context(
            request_id=request_id, path=request.url.path, method=request.method
        ):
            started = time.perf_counter()
            response = await call_next(request)
            elapsed_ms = round((time.perf_counter() - started) * 1000, 2)

            response.headers[self.header_name] = request_id
            logger.info(
                f"{request.method} {request.url.path} -> {response.status_code}",
                extra={"status_code": response.status_code, "duration_ms": elapsed_ms},
            )
        return response


def get_request_id(request: Request) -> str:
    """ID assigned by :class:`RequestIdMiddleware`, or ``"unknown"`` outside it."""
    return getattr(request.state, "request_id", "unknown")
