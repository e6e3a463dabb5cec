"""Run curl-impersonate wrapper scripts and turn their output into responses."""

from __future__ import annotations

import base64
import binascii
import json
import os
import re
import signal
import subprocess
from collections.abc import Mapping, Sequence
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from .models import BrowserConfig, ImpersonateRequest, ImpersonateResponse, Timing

DEFAULT_BIN_DIR = "/usr/local/bin"

TIMING_MARKER = b"\n---TIMING---\n"
TIMING_FORMAT = (
    "\n---TIMING---\n"
    '{"time_total":%{time_total},"time_namelookup":%{time_namelookup},'
    '"time_connect":%{time_connect},"time_starttransfer":%{time_starttransfer}}'
)

_TEXT_PREFIXES = (
    "text/",
    "application/json",
    "application/xml",
    "application/javascript",
    "application/x-www-form-urlencoded",
    "application/ld+json",
)

_TOKEN_CHARS = frozenset(
    "!#$%&'*+-.^_`|~"
    "0123456789"
    "abcdefghijklmnopqrstuvwxyz"
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
)

_HTTP2_STATUS = re.compile(r"HTTP/2\s+([+-]?\d+)")
_HTTP1_STATUS = re.compile(r"HTTP/1\.([+-]?\d+)\s+([+-]?\d+)")


class ExecutionError(Exception):
    """Raised when a request cannot be run or its output cannot be understood."""


def merge_query_params(url: str, query_params: Mapping[str, str] | None) -> str:
    """Add query parameters to a URL, replacing any with the same name."""
    if not query_params:
        return url
    try:
        parts = urlsplit(url)
    except ValueError as exc:
        raise ExecutionError(str(exc)) from exc
    query: dict[str, list[str]] = {}
    for key, value in parse_qsl(parts.query, keep_blank_values=True):
        query.setdefault(key, []).append(value)
    for key, value in query_params.items():
        query[key] = [value]
    encoded = urlencode(
        [(key, value) for key in sorted(query) for value in query[key]]
    )
    return urlunsplit(parts._replace(query=encoded))


def is_text_content(content_type: str) -> bool:
    """Whether a body of this content type is sent back as text."""
    if not content_type:
        return True
    return content_type.lower().startswith(_TEXT_PREFIXES)


def canonical_header_key(key: str) -> str:
    """Canonical MIME form of a header name; names with invalid characters are kept."""
    if not key or any(ch not in _TOKEN_CHARS for ch in key):
        return key
    return "-".join(part[:1].upper() + part[1:].lower() for part in key.split("-"))


def build_curl_args(request: ImpersonateRequest, final_url: str) -> list[str]:
    """Command-line arguments for the curl wrapper script."""
    args = [
        "-i",
        "-s",
        "-X",
        request.method,
        "--max-time",
        str(request.timeout),
        "-w",
        TIMING_FORMAT,
    ]
    if request.follow_redirects:
        args.append("-L")
    for key, value in request.headers.items():
        args.extend(("-H", f"{key}: {value}"))
    if request.body:
        args.extend(("--data", request.body))
    elif request.body_base64:
        try:
            decoded = base64.b64decode(request.body_base64, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ExecutionError(f"invalid base64 body: {exc}") from exc
        args.extend(("--data-binary", os.fsdecode(decoded)))
    args.append(final_url)
    return args


def _parse_timing(data: bytes) -> Timing:
    try:
        document = json.loads(data)
    except (ValueError, UnicodeDecodeError) as exc:
        raise ExecutionError(f"failed to parse timing: {exc}") from exc
    if document is None:
        return Timing()
    if not isinstance(document, dict):
        raise ExecutionError("failed to parse timing: expected an object")
    values = {str(k).lower(): v for k, v in document.items()}

    def number(name: str) -> float:
        value = values.get(name)
        if value is None:
            return 0.0
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ExecutionError(f"failed to parse timing: {name} is not a number")
        return float(value)

    return Timing(
        total=number("time_total"),
        namelookup=number("time_namelookup"),
        connect=number("time_connect"),
        starttransfer=number("time_starttransfer"),
    )


def _parse_status(status_line: str) -> int:
    if status_line.startswith("HTTP/2 "):
        match = _HTTP2_STATUS.match(status_line)
        return int(match.group(1)) if match else 0
    if status_line.startswith("HTTP/1"):
        match = _HTTP1_STATUS.match(status_line)
        return int(match.group(2)) if match else 0
    raise ExecutionError(f"unrecognized HTTP version: {status_line}")


def parse_success_response(output: bytes, requested_url: str) -> ImpersonateResponse:
    """Turn the output of a finished curl run into a response."""
    pieces = output.split(TIMING_MARKER)
    if len(pieces) != 2:
        raise ExecutionError("unexpected curl output format")
    response_data, timing_data = pieces
    timing = _parse_timing(timing_data)

    split = response_data.split(b"\r\n\r\n", 1)
    if len(split) < 2:
        split = response_data.split(b"\n\n", 1)
    if len(split) != 2:
        raise ExecutionError("failed to split headers and body")
    header_block, body = split

    header_lines = header_block.split(b"\n")
    status_code = _parse_status(
        header_lines[0].strip().decode("utf-8", errors="replace")
    )

    headers: dict[str, list[str]] = {}
    for raw in header_lines[1:]:
        line = raw.strip().decode("utf-8", errors="replace")
        if not line:
            continue
        name, sep, value = line.partition(":")
        if not sep:
            continue
        key = canonical_header_key(name.strip())
        headers.setdefault(key, []).append(value.strip())

    content_type = headers.get("Content-Type", [""])[0]
    if is_text_content(content_type):
        text, is_base64 = body.decode("utf-8", errors="replace"), False
    else:
        text, is_base64 = base64.b64encode(body).decode("ascii"), True

    return ImpersonateResponse(
        success=True,
        status_code=status_code,
        headers=headers,
        body=text,
        body_base64=is_base64,
        final_url=requested_url,
        timing=timing,
    )


def parse_error_response(output: bytes, error_message: str) -> ImpersonateResponse:
    """Turn the output of a failed curl run into an unsuccessful response."""
    message = output.decode("utf-8", errors="replace") or error_message
    if "timeout" in message or "timed out" in message:
        error_type = "timeout"
    elif "Could not resolve host" in message:
        error_type = "dns"
    elif "SSL" in message or "certificate" in message:
        error_type = "ssl"
    else:
        error_type = "network"
    return ImpersonateResponse(success=False, error=message, error_type=error_type)


def _exit_message(returncode: int) -> str:
    if returncode < 0:
        description = signal.strsignal(-returncode) or str(-returncode)
        return f"signal: {description.lower()}"
    return f"exit status {returncode}"


def execute(
    request: ImpersonateRequest,
    browser_config: BrowserConfig,
    bin_dir: str = DEFAULT_BIN_DIR,
) -> ImpersonateResponse:
    """Run the browser's wrapper script for a request and return its response."""
    try:
        final_url = merge_query_params(request.url, request.query_params)
    except ExecutionError as exc:
        raise ExecutionError(f"invalid URL: {exc}") from exc

    wrapper = f"{bin_dir.rstrip('/')}/{browser_config.wrapper_script}"
    args: Sequence[str] = build_curl_args(request, final_url)

    try:
        completed = subprocess.run(
            [wrapper, *args],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            check=False,
        )
    except OSError as exc:
        return parse_error_response(b"", str(exc))

    output = completed.stdout or b""
    if completed.returncode != 0:
        return parse_error_response(output, _exit_message(completed.returncode))
    return parse_success_response(output, final_url)