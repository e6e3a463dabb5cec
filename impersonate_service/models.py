"""Browser catalog, request and response models."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

_BROWSER_ALIASES = {
    "chrome-latest": "chrome116",
    "firefox-latest": "ff117",
    "edge-latest": "edge101",
    "safari-latest": "safari15_5",
}
_DEFAULT_BROWSER = "chrome116"


class ValidationError(ValueError):
    """Raised when client-supplied data is malformed or invalid."""


def _fold(data: Any, fields: Iterable[str], what: str) -> dict[str, Any]:
    """Pick known fields out of a JSON object, matching keys case-insensitively."""
    if not isinstance(data, Mapping):
        raise ValidationError(f"cannot unmarshal {type(data).__name__} into {what}")
    lookup = {name.lower(): name for name in fields}
    picked: dict[str, Any] = {}
    for key, value in data.items():
        name = lookup.get(str(key).lower())
        if name is not None:
            picked[name] = value
    return picked


def _as_str(name: str, value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"field {name} must be a string")
    return value


def _as_int(name: str, value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"field {name} must be an integer")
    return value


def _as_bool(name: str, value: Any) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValidationError(f"field {name} must be a boolean")
    return value


def _as_str_map(name: str, value: Any) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValidationError(f"field {name} must be an object")
    return {str(k): _as_str(f"{name}.{k}", v) for k, v in value.items()}


@dataclass
class BrowserInfo:
    """Descriptive information about an impersonated browser."""

    name: str = ""
    version: str = ""
    os: str = ""
    device: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> BrowserInfo:
        fields = _fold(data, ("name", "version", "os", "device"), "BrowserInfo")
        return cls(**{k: _as_str(k, v) for k, v in fields.items()})

    def to_dict(self) -> dict[str, str]:
        result = {"name": self.name, "version": self.version, "os": self.os}
        if self.device:
            result["device"] = self.device
        return result


@dataclass
class BrowserConfig:
    """A browser target and the wrapper used to impersonate it."""

    name: str = ""
    browser: BrowserInfo = field(default_factory=BrowserInfo)
    binary: str = ""
    wrapper_script: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> BrowserConfig:
        fields = _fold(
            data, ("name", "browser", "binary", "wrapper_script"), "BrowserConfig"
        )
        kwargs: dict[str, Any] = {}
        for key, value in fields.items():
            if key == "browser":
                kwargs[key] = BrowserInfo() if value is None else BrowserInfo.from_dict(value)
            else:
                kwargs[key] = _as_str(key, value)
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "browser": self.browser.to_dict(),
            "binary": self.binary,
            "wrapper_script": self.wrapper_script,
        }


class BrowserCatalog:
    """The set of known browser configurations, keyed by name."""

    def __init__(self, browsers: Iterable[BrowserConfig] = ()) -> None:
        self._browsers: dict[str, BrowserConfig] = {}
        for browser in browsers:
            self._browsers[browser.name] = browser

    @classmethod
    def load(cls, path: str | Path) -> BrowserCatalog:
        """Read a browsers.json file."""
        text = Path(path).read_bytes()
        try:
            document = json.loads(text)
            if document is None:
                return cls()
            fields = _fold(document, ("browsers",), "BrowsersData")
            entries = fields.get("browsers") or []
            if not isinstance(entries, list):
                raise ValidationError("field browsers must be an array")
            return cls(BrowserConfig.from_dict(entry) for entry in entries)
        except (ValueError, UnicodeDecodeError) as exc:
            raise ValueError(f"failed to parse browsers.json: {exc}") from exc

    def get(self, name: str) -> BrowserConfig:
        """Return the configuration for a name or alias."""
        try:
            return self._browsers[resolve_browser_name(name)]
        except KeyError:
            raise ValidationError(f"unknown browser: {name}") from None

    def all(self) -> list[BrowserConfig]:
        return list(self._browsers.values())

    def __len__(self) -> int:
        return len(self._browsers)


def resolve_browser_name(name: str) -> str:
    """Map an alias or empty name to the actual browser name."""
    if not name:
        return _DEFAULT_BROWSER
    return _BROWSER_ALIASES.get(name, name)


def get_aliases() -> dict[str, str]:
    return dict(_BROWSER_ALIASES)


def get_default_browser() -> str:
    return _DEFAULT_BROWSER


_REQUEST_FIELDS = (
    "browser",
    "url",
    "method",
    "headers",
    "query_params",
    "body",
    "body_base64",
    "follow_redirects",
    "timeout",
)


@dataclass
class ImpersonateRequest:
    """A request to fetch a URL while impersonating a browser."""

    browser: str = ""
    url: str = ""
    method: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    query_params: dict[str, str] = field(default_factory=dict)
    body: str = ""
    body_base64: str = ""
    follow_redirects: bool = True
    timeout: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> ImpersonateRequest:
        if data is None:
            return cls()
        kwargs: dict[str, Any] = {}
        for name, value in _fold(data, _REQUEST_FIELDS, "ImpersonateRequest").items():
            if name in ("headers", "query_params"):
                kwargs[name] = _as_str_map(name, value)
            elif name == "follow_redirects":
                kwargs[name] = _as_bool(name, value)
            elif name == "timeout":
                kwargs[name] = _as_int(name, value)
            else:
                kwargs[name] = _as_str(name, value)
        return cls(**kwargs)

    @classmethod
    def from_json(cls, data: str | bytes) -> ImpersonateRequest:
        try:
            document = json.loads(data)
        except (ValueError, UnicodeDecodeError) as exc:
            raise ValidationError(str(exc)) from exc
        return cls.from_dict(document)

    def validate(self, max_timeout: int) -> None:
        """Check the request and fill in the method and timeout defaults."""
        if not self.url:
            raise ValidationError("url is required")
        if not self.method:
            self.method = "GET"
        if self.body and self.body_base64:
            raise ValidationError("body and body_base64 are mutually exclusive")
        if self.timeout <= 0:
            self.timeout = 30
        if self.timeout > max_timeout:
            raise ValidationError(
                f"timeout exceeds maximum allowed ({max_timeout} seconds)"
            )


@dataclass
class Timing:
    """Transfer timings in seconds."""

    total: float = 0.0
    namelookup: float = 0.0
    connect: float = 0.0
    starttransfer: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {
            "total": self.total,
            "namelookup": self.namelookup,
            "connect": self.connect,
            "starttransfer": self.starttransfer,
        }


@dataclass
class ImpersonateResponse:
    """Outcome of an impersonated request; empty fields are left out of JSON."""

    success: bool
    status_code: int = 0
    headers: dict[str, list[str]] = field(default_factory=dict)
    body: str = ""
    body_base64: bool = False
    final_url: str = ""
    timing: Timing | None = None
    error: str = ""
    error_type: str = ""

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"success": self.success}
        if self.status_code:
            result["status_code"] = self.status_code
        if self.headers:
            result["headers"] = {k: list(v) for k, v in self.headers.items()}
        if self.body:
            result["body"] = self.body
        if self.body_base64:
            result["body_base64"] = True
        if self.final_url:
            result["final_url"] = self.final_url
        if self.timing is not None:
            result["timing"] = self.timing.to_dict()
        if self.error:
            result["error"] = self.error
        if self.error_type:
            result["error_type"] = self.error_type
        return result


def error_response(error_type: str, message: str) -> dict[str, Any]:
    """The JSON body sent for a service-level error."""
    return {"success": False, "error": message, "error_type": error_type}