"""
Shared test fixtures for sharkmon tests.

Provides environment isolation for MeterSettings and a deterministic clock.
All sharkmon env vars are cleaned before each test to ensure isolation.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import pytest

from tests.fakes import StepClock

# All MeterSettings environment variable names, used for cleanup.
_ALL_ENV_VARS = (
    "METER_ADDRESS",
    "METER_SLAVE_ID",
    "POLL_INTERVAL_S",
    "WINDOW_SIZE",
    "READ_TIMEOUT_S",
    "CONNECT_TIMEOUT_S",
    "MAX_BACKOFF_S",
    "FAILURE_THRESHOLD",
    "STALE_AFTER_S",
    "HTTP_HOST",
    "HTTP_PORT",
    "MODE",
    "LOG_PATH",
    "VERBOSE",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: str) -> None:
    """Remove all sharkmon env vars and isolate from .env files before each test.

    Changes working directory to tmp_path so no .env file is accidentally
    loaded by Pydantic BaseSettings.
    """
    for var in _ALL_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def clock() -> StepClock:
    """Clock starting at 2026-10-18T12:00:00Z, one second per call."""
    return StepClock()
