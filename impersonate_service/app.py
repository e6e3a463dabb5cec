"""HTTP endpoints of the impersonation service."""

from __future__ import annotations

import json
import re
import time
from collections.abc import Callable, Iterable
from typing import Any

from werkzeug.exceptions import HTTPException, NotFound
from werkzeug.routing import Map, Rule
from werkzeug.wrappers import Request, Response

from .config import VERSION, Config
from .executor import ExecutionError, execute
from .metrics import Collector
from .middleware import check_auth
from .models import (
    BrowserCatalog,
    BrowserConfig,
    ImpersonateRequest,
    ImpersonateResponse,
    ValidationError,
    error_response,
    get_aliases,
    get_default_browser,
    resolve_browser_name,
)

Executor = Callable[[ImpersonateRequest, BrowserConfig], ImpersonateResponse]

_JSON_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}
_JSON_ESCAPE_RE = re.compile("[<>&\u2028\u2029]")

_PROTECTED = frozenset({"browsers", "metrics", "impersonate"})


def _encode_json(data: Any) -> bytes:
    text = json.dumps(data, ensure_ascii=False, separators=(",", ":"))
    text = _JSON_ESCAPE_RE.sub(lambda m: _JSON_ESCAPES[m.group()], text)
    return (text + "\n").encode("utf-8", errors="replace")


def _json_response(status: int, data: Any) -> Response:
    return Response(_encode_json(data), status=status, content_type="application/json")


def _error(status: int, error_type: str, message: str) -> Response:
    return _json_response(status, error_response(error_type, message))


def _not_found() -> Response:
    response = Response(
        b"404 page not found\n", status=404, content_type="text/plain; charset=utf-8"
    )
    response.headers["X-Content-Type-Options"] = "nosniff"
    return response


class ServiceApp:
    """WSGI application serving health, browsers, metrics and impersonate."""

    def __init__(
        self,
        config: Config,
        catalog: BrowserCatalog,
        collector: Collector | None = None,
        executor: Executor | None = None,
    ) -> None:
        self.config = config
        self.catalog = catalog
        self.collector = collector if collector is not None else Collector()
        self.executor = executor if executor is not None else execute
        self._url_map = Map(
            [Rule(f"/{name}", endpoint=name) for name in ("health", "browsers", "metrics", "impersonate")]
        )
        self._handlers: dict[str, Callable[[Request], Response]] = {
            "health": self.health,
            "browsers": self.browsers,
            "metrics": self.metrics,
            "impersonate": self.impersonate,
        }

    def __call__(self, environ: dict, start_response: Callable[..., Any]) -> Iterable[bytes]:
        request = Request(environ)
        adapter = self._url_map.bind_to_environ(environ)
        try:
            endpoint, _ = adapter.match()
        except NotFound:
            return _not_found()(environ, start_response)
        except HTTPException as exc:
            return exc(environ, start_response)

        if endpoint in _PROTECTED:
            try:
                check_auth(request, self.config.token)
            except PermissionError as exc:
                return _error(401, "auth", str(exc))(environ, start_response)

        response = self._handlers[endpoint](request)
        return response(environ, start_response)

    def health(self, request: Request) -> Response:
        return _json_response(200, {"status": "ok", "version": VERSION})

    def browsers(self, request: Request) -> Response:
        return _json_response(
            200,
            {
                "browsers": [browser.to_dict() for browser in self.catalog.all()],
                "aliases": dict(sorted(get_aliases().items())),
                "default": get_default_browser(),
            },
        )

    def metrics(self, request: Request) -> Response:
        payload = self.collector.snapshot().to_dict()
        payload["browsers_used"] = dict(sorted(payload["browsers_used"].items()))
        return _json_response(200, payload)

    def impersonate(self, request: Request) -> Response:
        start = time.monotonic()
        try:
            raw = request.stream.read(max(0, self.config.max_request_body_size))
        except OSError:
            return _error(400, "validation", "failed to read request body")

        try:
            impersonate_request = ImpersonateRequest.from_json(raw)
        except ValidationError as exc:
            return _error(400, "validation", f"invalid JSON: {exc}")

        try:
            impersonate_request.validate(self.config.max_timeout)
        except ValidationError as exc:
            return _error(400, "validation", str(exc))

        browser_name = resolve_browser_name(impersonate_request.browser)
        try:
            browser_config = self.catalog.get(browser_name)
        except ValidationError as exc:
            return _error(400, "validation", str(exc))

        try:
            result = self.executor(impersonate_request, browser_config)
        except ExecutionError as exc:
            self.collector.record_request(browser_name, False, time.monotonic() - start)
            return _error(500, "internal", f"failed to execute request: {exc}")

        self.collector.record_request(browser_name, result.success, time.monotonic() - start)
        payload = result.to_dict()
        if "headers" in payload:
            payload["headers"] = dict(sorted(payload["headers"].items()))
        return _json_response(200, payload)