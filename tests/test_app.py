import json

import pytest
from werkzeug.test import Client

from impersonate_service.app import ServiceApp
from impersonate_service.config import VERSION, Config
from impersonate_service.executor import ExecutionError
from impersonate_service.metrics import Collector
from impersonate_service.models import (
    BrowserCatalog,
    BrowserConfig,
    BrowserInfo,
    ImpersonateResponse,
    error_response,
    get_aliases,
    get_default_browser,
)

AUTH = {"Authorization": "Bearer token"}

CHROME = BrowserConfig(
    name="chrome116",
    browser=BrowserInfo(name="chrome", version="116.0", os="win10"),
    binary="curl-impersonate-chrome",
    wrapper_script="curl_chrome116",
)


class RecordingExecutor:
    def __init__(self, result=None, error=None):
        self.result = result or ImpersonateResponse(success=True, status_code=200)
        self.error = error
        self.calls = []

    def __call__(self, request, browser_config):
        self.calls.append((request, browser_config))
        if self.error is not None:
            raise self.error
        return self.result


def make_client(executor=None, **config_overrides):
    config = Config(token="token", **config_overrides)
    collector = Collector()
    app = ServiceApp(config, BrowserCatalog([CHROME]), collector, executor or RecordingExecutor())
    return Client(app), collector


def body_of(response):
    return json.loads(response.get_data())


def test_health_needs_no_auth():
    client, _ = make_client()
    response = client.get("/health")
    assert response.status_code == 200
    assert response.headers["Content-Type"] == "application/json"
    assert body_of(response) == {"status": "ok", "version": VERSION}


def test_unknown_path_is_404():
    client, _ = make_client()
    response = client.get("/nowhere", headers=AUTH)
    assert response.status_code == 404
    assert response.get_data() == b"404 page not found\n"


def test_browsers_requires_auth():
    client, _ = make_client()
    response = client.get("/browsers")
    assert response.status_code == 401
    assert body_of(response) == error_response("auth", "missing authentication token")


def test_browsers_lists_catalog():
    client, _ = make_client()
    response = client.get("/browsers", headers=AUTH)
    assert response.status_code == 200
    data = body_of(response)
    assert data["browsers"] == [CHROME.to_dict()]
    assert data["aliases"] == get_aliases()
    assert data["default"] == get_default_browser()


def test_query_token_accepted():
    client, _ = make_client()
    assert client.get("/browsers?token=token").status_code == 200


def test_wrong_query_token_rejected():
    client, _ = make_client()
    response = client.get("/metrics?token=placeholder")
    assert response.status_code == 401
    assert body_of(response) == error_response("auth", "invalid authentication token")


def test_bad_header_format_rejected():
    client, _ = make_client()
    response = client.get("/metrics", headers={"Authorization": "Basic token"})
    assert body_of(response) == error_response("auth", "invalid authorization header format")


def test_metrics_start_empty():
    client, _ = make_client()
    data = body_of(client.get("/metrics", headers=AUTH))
    assert data["requests_total"] == 0
    assert data["requests_success"] == 0
    assert data["requests_failed"] == 0
    assert data["browsers_used"] == {}


def test_invalid_json():
    client, _ = make_client()
    response = client.post("/impersonate", data=b"{not json", headers=AUTH)
    assert response.status_code == 400
    data = body_of(response)
    assert data["error_type"] == "validation"
    assert data["error"].startswith("invalid JSON: ")


def test_body_is_truncated_to_limit():
    client, _ = make_client(max_request_body_size=5)
    response = client.post("/impersonate", json={"url": "https://example.com"}, headers=AUTH)
    assert response.status_code == 400
    assert body_of(response)["error"].startswith("invalid JSON: ")


def test_missing_url():
    client, _ = make_client()
    response = client.post("/impersonate", json={"method": "GET"}, headers=AUTH)
    assert response.status_code == 400
    assert body_of(response) == error_response("validation", "url is required")


def test_timeout_over_maximum():
    client, _ = make_client()
    response = client.post(
        "/impersonate", json={"url": "https://example.com", "timeout": 200}, headers=AUTH
    )
    assert body_of(response) == error_response(
        "validation", "timeout exceeds maximum allowed (120 seconds)"
    )


def test_unknown_browser():
    client, _ = make_client()
    response = client.post(
        "/impersonate", json={"url": "https://example.com", "browser": "nope"}, headers=AUTH
    )
    assert response.status_code == 400
    assert body_of(response) == error_response("validation", "unknown browser: nope")


def test_alias_and_defaults_reach_executor():
    executor = RecordingExecutor()
    client, collector = make_client(executor)
    response = client.post(
        "/impersonate",
        json={"url": "https://example.com", "browser": "chrome-latest"},
        headers=AUTH,
    )
    assert response.status_code == 200
    (request, browser_config), = executor.calls
    assert browser_config == CHROME
    assert request.method == "GET"
    assert request.timeout == 30
    assert request.follow_redirects is True
    snapshot = collector.snapshot()
    assert snapshot.requests_success == 1
    assert snapshot.browsers_used == {"chrome116": 1}


def test_success_response_passes_through_with_sorted_headers():
    result = ImpersonateResponse(
        success=True,
        status_code=200,
        headers={"X-B": ["1"], "A": ["2", "3"]},
        body="hello",
        final_url="https://example.com",
    )
    client, _ = make_client(RecordingExecutor(result=result))
    response = client.post("/impersonate", json={"url": "https://example.com"}, headers=AUTH)
    raw = response.get_data()
    assert json.loads(raw) == result.to_dict()
    assert raw.index(b'"A"') < raw.index(b'"X-B"')


def test_html_characters_escaped():
    result = ImpersonateResponse(success=True, status_code=200, body="<a&b>")
    client, _ = make_client(RecordingExecutor(result=result))
    response = client.post("/impersonate", json={"url": "https://example.com"}, headers=AUTH)
    raw = response.get_data()
    assert b"\\u003ca\\u0026b\\u003e" in raw
    assert body_of(response)["body"] == "<a&b>"


def test_network_failure_still_200():
    result = ImpersonateResponse(success=False, error="Could not resolve host", error_type="dns")
    client, collector = make_client(RecordingExecutor(result=result))
    response = client.post("/impersonate", json={"url": "https://example.com"}, headers=AUTH)
    assert response.status_code == 200
    assert body_of(response) == result.to_dict()
    assert collector.snapshot().requests_failed == 1


def test_execution_error_is_internal():
    client, collector = make_client(RecordingExecutor(error=ExecutionError("boom")))
    response = client.post("/impersonate", json={"url": "https://example.com"}, headers=AUTH)
    assert response.status_code == 500
    assert body_of(response) == error_response("internal", "failed to execute request: boom")
    snapshot = collector.snapshot()
    assert snapshot.requests_failed == 1
    assert snapshot.browsers_used == {"chrome116": 1}


@pytest.mark.parametrize("path", ["/browsers", "/metrics", "/impersonate"])
def test_protected_paths_reject_missing_token(path):
    client, _ = make_client()
    response = client.post(path)
    assert response.status_code == 401
    assert body_of(response)["error_type"] == "auth"