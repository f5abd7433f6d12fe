"""
sharkmon configuration loaded from environment variables and CLI flags.

Uses Pydantic BaseSettings for automatic env var loading and validation.
Values come from environment variables or a ``.env`` file; the CLI passes
its flags as keyword arguments, which take precedence over the environment.

CHANGELOG:
- 2026-10-18: Require read timeout below the poll interval
- 2026-10-18: Make backoff cap and reconnect threshold tunable
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import enum

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sharkmon.link import READ_TIMEOUT_S


class RunMode(enum.StrEnum):
    """How published snapshots are consumed."""

    SERVE = "serve"
    LOG_CONSOLE = "log-console"
    LOG_FILE = "log-file"


def split_address(address: str) -> tuple[str, int]:
    """Split ``host:port`` (or ``[v6addr]:port``) into its parts.

    Raises:
        ValueError: If the port is missing, not an integer, or out of range.
    """
    host, sep, port_text = address.strip().rpartition(":")
    if not sep or not host:
        raise ValueError(f"Meter address must be host:port (got: '{address}')")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        port = int(port_text)
    except ValueError:
        raise ValueError(f"Meter port must be an integer (got: '{port_text}')") from None
    if port < 1 or port > 65535:
        raise ValueError("Meter port must be between 1 and 65535")
    return host, port


class MeterSettings(BaseSettings):
    """Runtime configuration for a single meter.

    Attributes:
        meter_address: ``host:port`` of the meter's Modbus TCP endpoint.
        meter_slave_id: Modbus unit ID (default 1).
        poll_interval_s: Seconds between reads.
        window_size: Number of samples in the rolling average.
        read_timeout_s: Upper bound for one whole meter read. Must be
            shorter than ``poll_interval_s``; when unset it is half the
            interval, capped at 0.5 s.
        connect_timeout_s: Upper bound for establishing a session.
        max_backoff_s: Cap for the reconnect backoff.
        failure_threshold: Consecutive missed samples before reconnecting.
        stale_after_s: Snapshot age after which ``/status`` reports stale.
        http_host: Bind address of the web server.
        http_port: Port of the web server.
        mode: ``serve``, ``log-console`` or ``log-file``.
        log_path: Output file for ``log-file`` mode.
        verbose: Debug logging; in serve mode also echo snapshots to stdout.
    """

    meter_address: str
    meter_slave_id: int = 1
    poll_interval_s: float = 1.0
    window_size: int = 5
    read_timeout_s: float | None = None
    connect_timeout_s: float = 3.0
    max_backoff_s: float = 30.0
    failure_threshold: int = 3
    stale_after_s: float = 5.0
    http_host: str = "0.0.0.0"
    http_port: int = 8081
    mode: RunMode = RunMode.SERVE
    log_path: str | None = None
    verbose: bool = False

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    @property
    def meter_host(self) -> str:
        return split_address(self.meter_address)[0]

    @property
    def meter_port(self) -> int:
        return split_address(self.meter_address)[1]

    @field_validator("meter_address")
    @classmethod
    def meter_address_must_be_host_port(cls, v: str) -> str:
        """Validate that the meter address parses as ``host:port``."""
        split_address(v)
        return v.strip()

    @field_validator("meter_slave_id")
    @classmethod
    def meter_slave_id_must_be_valid(cls, v: int) -> int:
        """Validate Modbus slave ID is in valid range (1-247)."""
        if v < 1 or v > 247:
            raise ValueError("METER_SLAVE_ID must be between 1 and 247")
        return v

    @field_validator(
        "poll_interval_s", "read_timeout_s", "connect_timeout_s", "stale_after_s"
    )
    @classmethod
    def durations_must_be_positive(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("durations must be > 0")
        return v

    @field_validator("window_size")
    @classmethod
    def window_size_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("WINDOW_SIZE must be >= 1")
        return v

    @field_validator("failure_threshold")
    @classmethod
    def failure_threshold_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("FAILURE_THRESHOLD must be >= 1")
        return v

    @field_validator("http_port")
    @classmethod
    def http_port_must_be_valid(cls, v: int) -> int:
        """Validate HTTP port is in valid range."""
        if v < 1 or v > 65535:
            raise ValueError("HTTP_PORT must be between 1 and 65535")
        return v

    @model_validator(mode="after")
    def _check_cross_field(self) -> MeterSettings:
        """Timeouts and backoff must fit the interval; file mode needs a path."""
        if self.max_backoff_s < self.poll_interval_s:
            raise ValueError("MAX_BACKOFF_S must be >= POLL_INTERVAL_S")
        if self.read_timeout_s is None:
            self.read_timeout_s = min(READ_TIMEOUT_S, self.poll_interval_s / 2)
        elif self.read_timeout_s >= self.poll_interval_s:
            raise ValueError("READ_TIMEOUT_S must be < POLL_INTERVAL_S")
        if self.mode is RunMode.LOG_FILE and not self.log_path:
            raise ValueError("LOG_PATH is required in log-file mode")
        return self
