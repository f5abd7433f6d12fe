"""
Unit tests for the sharkmon entrypoint module.

Tests verify:
- CLI flags select the run mode and override environment settings.
- Invalid configuration exits with status 2.
- JSON log formatting and startup config summary.
- Log mode writes one JSON line per snapshot to stdout or a file and
  stops on the shutdown event.
- Verbose serve mode echoes through a background writer.

CHANGELOG:
- 2026-10-18: Cover the verbose serve-mode echo sink
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

import pytest

from sharkmon.aggregator import Aggregator
from sharkmon.config import MeterSettings, RunMode
from sharkmon.link import MeterLink
from sharkmon.main import (
    _JsonFormatter,
    add_echo_sink,
    build_aggregator,
    configure_logging,
    log_config_summary,
    parse_settings,
    run_logger,
)
from sharkmon.models import Snapshot
from sharkmon.store import SnapshotStore
from sharkmon.writer import BackgroundWriter
from tests.fakes import FakeLink, make_raw

# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


class TestParseSettings:
    """argv -> MeterSettings."""

    def test_positional_meter_default_serve(self) -> None:
        settings = parse_settings(["192.168.1.100:502"])

        assert settings.meter_address == "192.168.1.100:502"
        assert settings.mode is RunMode.SERVE
        assert settings.http_port == 8081
        assert settings.verbose is False

    def test_no_web_selects_console_mode(self) -> None:
        settings = parse_settings(["-n", "meter:502"])
        assert settings.mode is RunMode.LOG_CONSOLE

    def test_output_selects_file_mode(self, tmp_path: Path) -> None:
        out = str(tmp_path / "power.jsonl")
        settings = parse_settings(["-o", out, "meter:502"])

        assert settings.mode is RunMode.LOG_FILE
        assert settings.log_path == out

    def test_flags_override_values(self) -> None:
        settings = parse_settings(
            ["-v", "-p", "9090", "--host", "127.0.0.1", "-i", "2.5", "-w", "10", "m:502"]
        )

        assert settings.verbose is True
        assert settings.http_port == 9090
        assert settings.http_host == "127.0.0.1"
        assert settings.poll_interval_s == 2.5
        assert settings.window_size == 10

    def test_meter_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("METER_ADDRESS", "10.1.1.1:502")
        monkeypatch.setenv("HTTP_PORT", "9000")

        settings = parse_settings([])

        assert settings.meter_host == "10.1.1.1"
        assert settings.http_port == 9000

    def test_missing_meter_exits_2(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            parse_settings([])

        assert exc_info.value.code == 2
        assert "meter_address" in capsys.readouterr().err

    def test_bad_window_exits_2(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            parse_settings(["-w", "0", "meter:502"])
        assert exc_info.value.code == 2

    def test_no_web_and_output_are_exclusive(self) -> None:
        with pytest.raises(SystemExit):
            parse_settings(["-n", "-o", "x.jsonl", "meter:502"])


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


class TestLogging:
    """Structured JSON logs on stderr."""

    def test_formatter_emits_json(self) -> None:
        record = logging.LogRecord(
            "sharkmon.test", logging.WARNING, __file__, 1, "hello %s", ("meter",), None
        )
        entry = json.loads(_JsonFormatter().format(record))

        assert entry["level"] == "WARNING"
        assert entry["logger"] == "sharkmon.test"
        assert entry["msg"] == "hello meter"
        assert "T" in entry["ts"]

    def test_formatter_includes_exception(self) -> None:
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord(
                "x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info()
            )
        entry = json.loads(_JsonFormatter().format(record))
        assert "RuntimeError: boom" in entry["exception"]

    def test_configure_logging_installs_single_handler(self) -> None:
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_logging(logging.DEBUG)
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, _JsonFormatter)
            assert root.level == logging.DEBUG
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)

    def test_config_summary_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        settings = MeterSettings(meter_address="10.0.0.9:502")
        with caplog.at_level(logging.INFO, logger="sharkmon.main"):
            log_config_summary(settings)
        assert "meter_address=10.0.0.9:502" in caplog.text


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


class TestBuildAggregator:
    """Settings flow into the link and aggregator."""

    def test_builds_meter_link_from_settings(self) -> None:
        settings = MeterSettings(meter_address="meter.local:5020", window_size=7)
        aggregator = build_aggregator(settings, SnapshotStore())

        assert isinstance(aggregator, Aggregator)
        assert aggregator.window_size == 7
        assert isinstance(aggregator._link, MeterLink)
        assert aggregator._link.address == "meter.local:5020"


class TestEchoSink:
    """Verbose serve mode echoes snapshots through a background writer."""

    def test_quiet_adds_nothing(self) -> None:
        settings = MeterSettings(meter_address="m:502")
        aggregator = build_aggregator(settings, SnapshotStore(), link=FakeLink())  # type: ignore[arg-type]

        assert add_echo_sink(aggregator, settings) is None
        assert aggregator._sinks == []

    def test_verbose_adds_background_writer(self) -> None:
        settings = MeterSettings(meter_address="m:502", verbose=True)
        aggregator = build_aggregator(settings, SnapshotStore(), link=FakeLink())  # type: ignore[arg-type]

        echo = add_echo_sink(aggregator, settings)
        try:
            assert isinstance(echo, BackgroundWriter)
            assert aggregator._sinks == [echo]
        finally:
            assert echo is not None
            echo.close()


# ---------------------------------------------------------------------------
# Log mode
# ---------------------------------------------------------------------------


def _stop_after(n: int, shutdown: asyncio.Event):
    seen: list[Snapshot] = []

    def _sink(snapshot: Snapshot) -> None:
        seen.append(snapshot)
        if len(seen) >= n:
            shutdown.set()

    return _sink


class TestRunLogger:
    """Log mode emits one JSON line per successful cycle."""

    @pytest.mark.asyncio
    async def test_console_mode_three_lines(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        settings = MeterSettings(
            meter_address="m:502", mode=RunMode.LOG_CONSOLE, poll_interval_s=0.01
        )
        link = FakeLink(readings=[make_raw(watts=w) for w in (100.0, 200.0, 300.0)])
        aggregator = build_aggregator(settings, SnapshotStore(), link=link)  # type: ignore[arg-type]
        shutdown = asyncio.Event()
        aggregator.add_sink(_stop_after(3, shutdown))

        await asyncio.wait_for(run_logger(aggregator, settings, shutdown), timeout=2.0)

        lines = capsys.readouterr().out.splitlines()
        assert len(lines) == 3
        assert [json.loads(line)["watts"] for line in lines] == pytest.approx(
            [100.0, 150.0, 200.0]
        )
        assert not link.connected

    @pytest.mark.asyncio
    async def test_file_mode_appends_lines(self, tmp_path: Path) -> None:
        path = tmp_path / "power.jsonl"
        settings = MeterSettings(
            meter_address="m:502",
            mode=RunMode.LOG_FILE,
            log_path=str(path),
            poll_interval_s=0.01,
        )
        link = FakeLink(readings=[make_raw(), make_raw()])
        aggregator = build_aggregator(settings, SnapshotStore(), link=link)  # type: ignore[arg-type]
        shutdown = asyncio.Event()
        aggregator.add_sink(_stop_after(2, shutdown))

        await asyncio.wait_for(run_logger(aggregator, settings, shutdown), timeout=2.0)

        lines = path.read_text().splitlines()
        assert len(lines) == 2
        for line in lines:
            assert set(json.loads(line)) == {"watts", "volts", "frequency"}
