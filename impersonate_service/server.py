"""Command that starts the impersonation HTTP service."""

from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import threading
from collections.abc import Iterable, Sequence

from werkzeug.serving import WSGIRequestHandler, make_server

from .app import ServiceApp
from .config import VERSION, Config, load
from .metrics import Collector
from .middleware import CORSMiddleware, LoggingMiddleware
from .models import BrowserCatalog

logger = logging.getLogger("impersonate_service")

WRAPPER_SCRIPTS = (
    "/usr/local/bin/curl_chrome116",
    "/usr/local/bin/curl_ff109",
)


def verify_binaries(paths: Iterable[str] | None = None) -> None:
    """Raise FileNotFoundError if a required wrapper script is missing."""
    for path in WRAPPER_SCRIPTS if paths is None else paths:
        try:
            os.stat(path)
        except FileNotFoundError:
            raise FileNotFoundError(f"wrapper script not found: {path}") from None


def build_application(
    config: Config, catalog: BrowserCatalog, collector: Collector | None = None
) -> CORSMiddleware:
    """The service application wrapped in CORS and logging layers."""
    app = ServiceApp(config, catalog, collector if collector is not None else Collector())
    return CORSMiddleware(LoggingMiddleware(app))


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="impersonate-service",
        description="HTTP service that fetches URLs while impersonating browsers. "
        "Configured through environment variables.",
    )
    parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")

    try:
        config = load()
    except ValueError as exc:
        logger.error("Failed to load configuration: %s", exc)
        return 1

    logger.info("Starting curl-impersonate-service v%s", VERSION)
    logger.info("Port: %s", config.port)
    logger.info("Log Level: %s", config.log_level)

    try:
        catalog = BrowserCatalog.load(config.browsers_json_path)
    except OSError as exc:
        logger.error("Failed to load browsers.json: failed to read browsers.json: %s", exc)
        return 1
    except ValueError as exc:
        logger.error("Failed to load browsers.json: %s", exc)
        return 1
    logger.info("Loaded %d browser configurations", len(catalog))

    try:
        verify_binaries()
    except FileNotFoundError as exc:
        logger.error("Binary verification failed: %s", exc)
        return 1
    logger.info("Verified curl-impersonate binaries")

    application = build_application(config, catalog, Collector())
    io_timeout = config.max_timeout + 10

    class _Handler(WSGIRequestHandler):
        timeout = io_timeout

        def log_request(self, code: int | str = "-", size: int | str = "-") -> None:
            pass

    try:
        server = make_server(
            "0.0.0.0", int(config.port), application, threaded=True, request_handler=_Handler
        )
    except (ValueError, OSError) as exc:
        logger.error("Server failed: %s", exc)
        return 1

    stop = threading.Event()
    failures: list[BaseException] = []

    def _serve() -> None:
        try:
            server.serve_forever()
        except Exception as exc:  # noqa: BLE001 - reported to the main thread
            failures.append(exc)
            stop.set()

    def _on_signal(signum: int, frame: object) -> None:
        stop.set()

    previous = {sig: signal.signal(sig, _on_signal) for sig in (signal.SIGINT, signal.SIGTERM)}
    thread = threading.Thread(target=_serve, name="http-server", daemon=True)
    logger.info("Server listening on :%s", config.port)
    thread.start()
    try:
        while not stop.wait(0.5):
            pass
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    if failures:
        server.server_close()
        logger.error("Server failed: %s", failures[0])
        return 1

    logger.info("Shutting down server...")
    server.shutdown()
    server.server_close()
    thread.join(30)
    logger.info("Server exited")
    return 0


if __name__ == "__main__":
    sys.exit(main())