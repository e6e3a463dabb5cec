import json
import uuid

import pytest
from werkzeug.test import Client

from impersonate_service.config import VERSION, Config
from impersonate_service.metrics import Collector
from impersonate_service.models import BrowserCatalog, BrowserConfig
from impersonate_service.server import build_application, main, verify_binaries


def test_verify_binaries_reports_missing(tmp_path):
    present = tmp_path / "curl_chrome116"
    present.write_text("#!/bin/sh\n")
    missing = tmp_path / "curl_ff109"
    with pytest.raises(FileNotFoundError) as info:
        verify_binaries([str(present), str(missing)])
    assert str(info.value) == f"wrapper script not found: {missing}"


def test_verify_binaries_first_missing_named(tmp_path):
    first = tmp_path / "a"
    second = tmp_path / "b"
    with pytest.raises(FileNotFoundError, match="wrapper script not found: .*a$"):
        verify_binaries([str(first), str(second)])


def _client():
    config = Config(token="token")
    catalog = BrowserCatalog([BrowserConfig(name="chrome116", wrapper_script="curl_chrome116")])
    return Client(build_application(config, catalog, Collector()))


def test_application_has_cors_and_request_id():
    response = _client().get("/health")
    assert response.status_code == 200
    assert json.loads(response.get_data()) == {"status": "ok", "version": VERSION}
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    assert uuid.UUID(response.headers["X-Request-ID"]).version == 4


def test_application_preflight():
    response = _client().options("/impersonate")
    assert response.status_code == 204
    assert response.headers["Access-Control-Allow-Methods"] == "GET, POST, OPTIONS"
    assert "X-Request-ID" not in response.headers


def test_application_protects_metrics():
    client = _client()
    assert client.get("/metrics").status_code == 401
    response = client.get("/metrics", headers={"Authorization": "Bearer token"})
    assert json.loads(response.get_data())["requests_total"] == 0


def test_main_without_token_fails(monkeypatch):
    monkeypatch.delenv("TOKEN", raising=False)
    assert main([]) == 1


def test_main_with_missing_browsers_file_fails(monkeypatch, tmp_path):
    monkeypatch.setenv("TOKEN", "token")
    monkeypatch.setenv("BROWSERS_JSON_PATH", str(tmp_path / "absent.json"))
    assert main([]) == 1


def test_main_with_broken_browsers_file_fails(monkeypatch, tmp_path):
    broken = tmp_path / "browsers.json"
    broken.write_text("{not json")
    monkeypatch.setenv("TOKEN", "token")
    monkeypatch.setenv("BROWSERS_JSON_PATH", str(broken))
    assert main([]) == 1