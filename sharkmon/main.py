"""
sharkmon entrypoint: command line, logging setup, and run modes.

Two ways of consuming snapshots:

1. **Serve mode** (default): a FastAPI app served by uvicorn exposes
   ``/``, ``/power`` and ``/status``; the aggregator runs inside the app
   lifespan.  With ``--verbose`` each snapshot is also echoed to stdout
   from a worker thread, so a blocked stdout never stalls HTTP responses.
2. **Log mode** (``--no-web`` or ``--output PATH``): no web server; every
   snapshot is written as one JSON line to stdout or to PATH.  Graceful
   shutdown on SIGTERM/SIGINT sets a shared asyncio.Event, which lets the
   aggregator finish its current step and close the meter session.

Structured JSON logging goes to stderr so stdout carries only data.

CHANGELOG:
- 2026-10-18: Move the serve-mode stdout echo off the event loop
- 2026-10-18: Add file output mode
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from collections.abc import Sequence
from datetime import UTC, datetime

from pydantic import ValidationError

from sharkmon import __version__
from sharkmon.aggregator import Aggregator
from sharkmon.config import MeterSettings, RunMode
from sharkmon.link import MeterLink
from sharkmon.store import SnapshotStore
from sharkmon.writer import BackgroundWriter, SnapshotWriter, open_writer

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


class _JsonFormatter(logging.Formatter):
    """Minimal JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def configure_logging(level: int = logging.INFO) -> None:
    """Configure structured JSON logging on stderr.

    Args:
        level: Root logger level.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    # pymodbus logs every failed connect attempt itself; the aggregator already does.
    logging.getLogger("pymodbus").setLevel(max(level, logging.WARNING))


def log_config_summary(settings: MeterSettings) -> None:
    """Log the effective configuration at startup."""
    logger.info(
        "sharkmon %s starting with config: "
        "meter_address=%s, meter_slave_id=%s, mode=%s, "
        "poll_interval_s=%s, window_size=%s, read_timeout_s=%s, "
        "connect_timeout_s=%s, max_backoff_s=%s, failure_threshold=%s, "
        "http_host=%s, http_port=%s, log_path=%s, verbose=%s",
        __version__,
        settings.meter_address,
        settings.meter_slave_id,
        settings.mode,
        settings.poll_interval_s,
        settings.window_size,
        settings.read_timeout_s,
        settings.connect_timeout_s,
        settings.max_backoff_s,
        settings.failure_threshold,
        settings.http_host,
        settings.http_port,
        settings.log_path,
        settings.verbose,
    )


# ---------------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sharkmon",
        description="Shark 100S power meter web gateway",
    )
    parser.add_argument(
        "meter",
        nargs="?",
        help=(
            "IP address/hostname and port of meter, e.g., 192.168.1.100:502 "
            "(default: $METER_ADDRESS)"
        ),
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", default=None,
        help="Debug logging; echo every reading to stdout",
    )
    output = parser.add_mutually_exclusive_group()
    output.add_argument(
        "-n", "--no-web", action="store_true",
        help="Disable built in web server, print readings to stdout",
    )
    output.add_argument(
        "-o", "--output", metavar="PATH",
        help="Disable built in web server, append readings to PATH",
    )
    parser.add_argument("-p", "--port", type=int, help="HTTP port (default 8081)")
    parser.add_argument("--host", help="HTTP bind address (default 0.0.0.0)")
    parser.add_argument(
        "-i", "--interval", type=float, metavar="SECONDS",
        help="Seconds between polls (default 1.0)",
    )
    parser.add_argument(
        "-w", "--window", type=int, metavar="N",
        help="Number of samples in the rolling average (default 5)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def settings_from_args(args: argparse.Namespace) -> MeterSettings:
    """Build settings from parsed arguments, falling back to the environment.

    Only flags actually given on the command line override env values.
    """
    overrides: dict[str, object] = {}
    if args.meter is not None:
        overrides["meter_address"] = args.meter
    if args.port is not None:
        overrides["http_port"] = args.port
    if args.host is not None:
        overrides["http_host"] = args.host
    if args.interval is not None:
        overrides["poll_interval_s"] = args.interval
    if args.window is not None:
        overrides["window_size"] = args.window
    if args.verbose:
        overrides["verbose"] = True
    if args.no_web:
        overrides["mode"] = RunMode.LOG_CONSOLE
    elif args.output is not None:
        overrides["mode"] = RunMode.LOG_FILE
        overrides["log_path"] = args.output
    return MeterSettings(**overrides)


def parse_settings(argv: Sequence[str] | None = None) -> MeterSettings:
    """Parse *argv* into settings, exiting with status 2 on invalid input."""
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return settings_from_args(args)
    except ValidationError as exc:
        parser.error(f"invalid configuration:\n{exc}")


# ---------------------------------------------------------------------------
# Component wiring
# ---------------------------------------------------------------------------


def build_aggregator(
    settings: MeterSettings,
    store: SnapshotStore,
    *,
    link: MeterLink | None = None,
) -> Aggregator:
    """Create the meter link and aggregator described by *settings*."""
    if link is None:
        link = MeterLink(
            host=settings.meter_host,
            port=settings.meter_port,
            slave_id=settings.meter_slave_id,
            read_timeout_s=settings.read_timeout_s,
            connect_timeout_s=settings.connect_timeout_s,
        )
    return Aggregator(
        link=link,
        store=store,
        window_size=settings.window_size,
        poll_interval_s=settings.poll_interval_s,
        max_backoff_s=settings.max_backoff_s,
        failure_threshold=settings.failure_threshold,
    )


# ---------------------------------------------------------------------------
# Run modes
# ---------------------------------------------------------------------------


async def run_logger(
    aggregator: Aggregator,
    settings: MeterSettings,
    shutdown_event: asyncio.Event,
) -> None:
    """Run the aggregator, writing every snapshot as a JSON line.

    Args:
        aggregator: The polling loop.
        settings: Selects stdout (``log-console``) or a file (``log-file``).
        shutdown_event: Event to signal graceful shutdown.
    """
    path = settings.log_path if settings.mode is RunMode.LOG_FILE else None
    with open_writer(path) as writer:
        aggregator.add_sink(writer)
        await aggregator.run(shutdown_event)


def add_echo_sink(aggregator: Aggregator, settings: MeterSettings) -> BackgroundWriter | None:
    """In verbose serve mode, echo each snapshot to stdout off the event loop."""
    if not settings.verbose:
        return None
    echo = BackgroundWriter(SnapshotWriter(sys.stdout))
    aggregator.add_sink(echo)
    return echo


async def run_server(aggregator: Aggregator, store: SnapshotStore, settings: MeterSettings) -> None:
    """Serve the web app; the aggregator runs in the app lifespan."""
    import uvicorn

    from sharkmon.api import create_app

    echo = add_echo_sink(aggregator, settings)

    app = create_app(
        store,
        aggregator=aggregator,
        stale_after_s=settings.stale_after_s,
        refresh_s=settings.poll_interval_s,
    )
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=settings.http_host,
            port=settings.http_port,
            log_level="warning",
            log_config=None,
        )
    )
    logger.info(
        "Dashboard available at http://%s:%d", settings.http_host, settings.http_port
    )
    try:
        await server.serve()
    finally:
        if echo is not None:
            echo.close()


async def async_main(settings: MeterSettings) -> None:
    """Async entrypoint: build components and run the selected mode."""
    store = SnapshotStore()
    aggregator = build_aggregator(settings, store)

    if settings.mode is RunMode.SERVE:
        await run_server(aggregator, store, settings)
        return

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda: _handle_signal(shutdown_event))

    await run_logger(aggregator, settings, shutdown_event)


def _handle_signal(shutdown_event: asyncio.Event) -> None:
    """Handle SIGTERM/SIGINT by setting the shutdown event."""
    logger.info("Received shutdown signal, initiating graceful shutdown")
    shutdown_event.set()


def main(argv: Sequence[str] | None = None) -> None:
    """Synchronous entrypoint for the ``sharkmon`` command."""
    settings = parse_settings(argv)
    configure_logging(logging.DEBUG if settings.verbose else logging.INFO)
    log_config_summary(settings)
    asyncio.run(async_main(settings))


if __name__ == "__main__":
    main()
