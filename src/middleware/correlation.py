"""Request ID Middleware.

Every request gets an id that is:
- Taken from the incoming X-Request-ID header, or generated
- Available to code through get_request_id()
- Included in log messages via RequestIdFilter
- Echoed in response headers and error envelopes

Usage:
    app.add_middleware(RequestIdMiddleware)
    configure_logging("INFO")
"""

from __future__ import annotations

import logging
import uuid
from contextvars import ContextVar, Token
from typing import Any, Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)


# Context variable for request ID (isolated per asyncio task)
_request_id_ctx: ContextVar[Optional[str]] = ContextVar(
    "request_id",
    default=None,
)

REQUEST_ID_HEADER = "X-Request-ID"


def get_request_id() -> Optional[str]:
    """Request ID for the current context, or None outside a request."""
    return _request_id_ctx.get()


def set_request_id(request_id: str) -> Token[Optional[str]]:
    return _request_id_ctx.set(request_id)


def reset_request_id(token: Token[Optional[str]]) -> None:
    _request_id_ctx.reset(token)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Middleware assigning a request ID to each request."""

    def __init__(
        self,
        app,
        header_name: str = REQUEST_ID_HEADER,
        generator: Optional[Callable[[], str]] = None,
    ):
        """Initialize middleware.

        Args:
            app: ASGI application.
            header_name: Header carrying the request ID.
            generator: Optional custom ID generator function.
        """
        super().__init__(app)
        self.header_name = header_name
        self.generator = generator or (lambda: str(uuid.uuid4()))

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Any],
    ) -> Response:
        request_id = request.headers.get(self.header_name) or self.generator()
        token = set_request_id(request_id)

        try:
            request.state.request_id = request_id
            response = await call_next(request)
            response.headers[self.header_name] = request_id
            return response
        finally:
            reset_request_id(token)


class RequestIdFilter(logging.Filter):
    """Logging filter that adds request_id to log records.

    Usage:
        handler = logging.StreamHandler()
        handler.addFilter(RequestIdFilter())
        handler.setFormatter(logging.Formatter('%(asctime)s [%(request_id)s] %(message)s'))
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "-"
        return True


def configure_logging(
    level: str = "INFO",
    log_format: Optional[str] = None,
) -> None:
    """Configure root logging with request ID support.

    Args:
        level: Logging level name.
        log_format: Custom log format (must include %(request_id)s).
    """
    if log_format is None:
        log_format = (
            "%(asctime)s [%(request_id)s] %(levelname)s "
            "%(name)s: %(message)s"
        )

    handler = logging.StreamHandler()
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(logging.Formatter(log_format))

    root_logger = logging.getLogger()
    # Replace a handler installed by a previous call
    for existing in list(root_logger.handlers):
        if any(isinstance(f, RequestIdFilter) for f in existing.filters):
            root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())
