"""Service configuration read from environment variables."""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass

VERSION = "1.0.0"

_INT_PATTERN = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


@dataclass
class Config:
    """Runtime settings of the service."""

    token: str
    port: str = "8080"
    log_level: str = "info"
    max_request_body_size: int = 10 * 1024 * 1024
    max_response_body_size: int = 50 * 1024 * 1024
    max_timeout: int = 120
    default_timeout: int = 30
    browsers_json_path: str = "/etc/impersonate/browsers.json"


def _env_str(env: Mapping[str, str], key: str, default: str) -> str:
    return env.get(key, "") or default


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    value = env.get(key, "")
    if value and _INT_PATTERN.fullmatch(value):
        number = int(value)
        if _INT64_MIN <= number <= _INT64_MAX:
            return number
    return default


def load(environ: Mapping[str, str] | None = None) -> Config:
    """Build a Config from the environment; TOKEN is required."""
    env = os.environ if environ is None else environ
    token = env.get("TOKEN", "")
    if not token:
        raise ValueError("TOKEN environment variable is required")
    return Config(
        token=token,
        port=_env_str(env, "PORT", "8080"),
        log_level=_env_str(env, "LOG_LEVEL", "info"),
        max_request_body_size=_env_int(env, "MAX_REQUEST_BODY_SIZE", 10485760),
        max_response_body_size=_env_int(env, "MAX_RESPONSE_BODY_SIZE", 52428800),
        max_timeout=_env_int(env, "MAX_TIMEOUT", 120),
        default_timeout=_env_int(env, "DEFAULT_TIMEOUT", 30),
        browsers_json_path=_env_str(
            env, "BROWSERS_JSON_PATH", "/etc/impersonate/browsers.json"
        ),
    )