"""Authentication, CORS and request-logging layers for the WSGI application."""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Iterable, Iterator
from typing import Any

from werkzeug.wrappers import Request

logger = logging.getLogger("impersonate_service")

WSGIApp = Callable[[dict, Callable[..., Any]], Iterable[bytes]]

CORS_HEADERS = (
    ("Access-Control-Allow-Origin", "*"),
    ("Access-Control-Allow-Methods", "GET, POST, OPTIONS"),
    ("Access-Control-Allow-Headers", "Authorization, Content-Type"),
)


def check_auth(request: Request, token: str) -> None:
    """Accept a request carrying the service token, or raise PermissionError.

    A ``token`` query parameter is checked first; without one, an
    ``Authorization: Bearer <token>`` header is required.
    """
    query_token = request.args.get("token", "")
    if query_token:
        if query_token == token:
            return
        raise PermissionError("invalid authentication token")

    header = request.headers.get("Authorization", "")
    if not header:
        raise PermissionError("missing authentication token")

    scheme, separator, credentials = header.partition(" ")
    if not separator or scheme != "Bearer":
        raise PermissionError("invalid authorization header format")
    if credentials != token:
        raise PermissionError("invalid authentication token")


def _with_defaults(
    defaults: Iterable[tuple[str, str]], headers: list[tuple[str, str]]
) -> list[tuple[str, str]]:
    """Put default headers in front of those the application set, which win."""
    present = {name.lower() for name, _ in headers}
    return [h for h in defaults if h[0].lower() not in present] + list(headers)


def _status_code(status: str) -> int:
    try:
        return int(status.split(None, 1)[0])
    except (ValueError, IndexError):
        return 0


class CORSMiddleware:
    """Adds CORS headers to every response and answers preflight requests."""

    def __init__(self, app: WSGIApp) -> None:
        self.app = app

    def __call__(self, environ: dict, start_response: Callable[..., Any]) -> Iterable[bytes]:
        if environ.get("REQUEST_METHOD") == "OPTIONS":
            start_response("204 No Content", list(CORS_HEADERS))
            return []

        def _start(status: str, headers: list[tuple[str, str]], exc_info: Any = None) -> Any:
            return start_response(status, _with_defaults(CORS_HEADERS, headers), exc_info)

        return self.app(environ, _start)


class _ClosingIterable:
    """Response body that runs a callback once the server closes it."""

    def __init__(self, result: Iterable[bytes], on_close: Callable[[], None]) -> None:
        self._result = result
        self._on_close = on_close

    def __iter__(self) -> Iterator[bytes]:
        return iter(self._result)

    def close(self) -> None:
        try:
            close = getattr(self._result, "close", None)
            if close is not None:
                close()
        finally:
            self._on_close()


class LoggingMiddleware:
    """Tags each request with an X-Request-ID and logs it when it finishes."""

    def __init__(self, app: WSGIApp) -> None:
        self.app = app

    def __call__(self, environ: dict, start_response: Callable[..., Any]) -> Iterable[bytes]:
        start = time.monotonic()
        request_id = str(uuid.uuid4())
        environ["HTTP_X_REQUEST_ID"] = request_id
        status_code = 200

        def _start(status: str, headers: list[tuple[str, str]], exc_info: Any = None) -> Any:
            nonlocal status_code
            status_code = _status_code(status)
            merged = _with_defaults((("X-Request-ID", request_id),), headers)
            return start_response(status, merged, exc_info)

        def _finish() -> None:
            elapsed = time.monotonic() - start
            logger.info(
                "[%s] %s %s - %d - %.3fms",
                request_id,
                environ.get("REQUEST_METHOD", ""),
                environ.get("PATH_INFO", ""),
                status_code,
                elapsed * 1000,
            )

        result = self.app(environ, _start)
        return _ClosingIterable(result, _finish)