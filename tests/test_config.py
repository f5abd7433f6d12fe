"""
Unit tests for sharkmon configuration (MeterSettings).

Tests verify:
- Config loads from environment variables with correct defaults.
- METER_ADDRESS is required and must parse as host:port.
- Numeric constraints are enforced, including read timeout < poll interval.
- Keyword arguments (CLI flags) override the environment.
- log-file mode requires LOG_PATH.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

import pytest
from pydantic import ValidationError

from sharkmon.config import MeterSettings, RunMode, split_address


class TestLoadsFromEnv:
    """Config loads values from environment variables."""

    def test_defaults_applied(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("METER_ADDRESS", "192.168.1.100:502")

        settings = MeterSettings()

        assert settings.meter_host == "192.168.1.100"
        assert settings.meter_port == 502
        assert settings.meter_slave_id == 1
        assert settings.poll_interval_s == 1.0
        assert settings.window_size == 5
        assert settings.read_timeout_s == 0.5
        assert settings.max_backoff_s == 30.0
        assert settings.failure_threshold == 3
        assert settings.http_port == 8081
        assert settings.mode is RunMode.SERVE
        assert settings.log_path is None
        assert settings.verbose is False

    def test_all_env_vars_read(self, monkeypatch: pytest.MonkeyPatch) -> None:
        env = {
            "METER_ADDRESS": "meter.local:5020",
            "METER_SLAVE_ID": "3",
            "POLL_INTERVAL_S": "2",
            "WINDOW_SIZE": "10",
            "MAX_BACKOFF_S": "60",
            "FAILURE_THRESHOLD": "5",
            "HTTP_PORT": "9000",
            "MODE": "log-file",
            "LOG_PATH": "/tmp/power.jsonl",
        }
        for key, value in env.items():
            monkeypatch.setenv(key, value)

        settings = MeterSettings()

        assert settings.meter_host == "meter.local"
        assert settings.meter_port == 5020
        assert settings.meter_slave_id == 3
        assert settings.poll_interval_s == 2.0
        assert settings.window_size == 10
        assert settings.max_backoff_s == 60.0
        assert settings.failure_threshold == 5
        assert settings.http_port == 9000
        assert settings.mode is RunMode.LOG_FILE
        assert settings.log_path == "/tmp/power.jsonl"

    def test_kwargs_override_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("METER_ADDRESS", "10.0.0.1:502")
        monkeypatch.setenv("HTTP_PORT", "9000")

        settings = MeterSettings(meter_address="10.0.0.2:502", http_port=8082)

        assert settings.meter_host == "10.0.0.2"
        assert settings.http_port == 8082


class TestValidation:
    """Invalid values are rejected at startup."""

    def test_missing_address_raises(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            MeterSettings()
        assert "meter_address" in str(exc_info.value).lower()

    @pytest.mark.parametrize("address", ["192.168.1.100", ":502", "host:abc", "host:70000"])
    def test_bad_address_rejected(self, address: str) -> None:
        with pytest.raises(ValidationError):
            MeterSettings(meter_address=address)

    @pytest.mark.parametrize(
        ("field", "value"),
        [
            ("window_size", 0),
            ("poll_interval_s", 0),
            ("read_timeout_s", -1),
            ("failure_threshold", 0),
            ("meter_slave_id", 248),
            ("http_port", 0),
        ],
    )
    def test_out_of_range_rejected(self, field: str, value: object) -> None:
        with pytest.raises(ValidationError):
            MeterSettings(meter_address="h:502", **{field: value})

    def test_backoff_cap_below_interval_rejected(self) -> None:
        with pytest.raises(ValidationError, match="MAX_BACKOFF_S"):
            MeterSettings(meter_address="h:502", poll_interval_s=5, max_backoff_s=2)

    @pytest.mark.parametrize("read_timeout_s", [1.0, 2.0])
    def test_read_timeout_not_below_interval_rejected(self, read_timeout_s: float) -> None:
        with pytest.raises(ValidationError, match="READ_TIMEOUT_S"):
            MeterSettings(
                meter_address="h:502", poll_interval_s=1.0, read_timeout_s=read_timeout_s
            )

    def test_read_timeout_defaults_to_half_short_interval(self) -> None:
        settings = MeterSettings(meter_address="h:502", poll_interval_s=0.2)
        assert settings.read_timeout_s == pytest.approx(0.1)

    def test_read_timeout_default_capped(self) -> None:
        settings = MeterSettings(meter_address="h:502", poll_interval_s=10.0)
        assert settings.read_timeout_s == 0.5

    def test_file_mode_requires_path(self) -> None:
        with pytest.raises(ValidationError, match="LOG_PATH"):
            MeterSettings(meter_address="h:502", mode=RunMode.LOG_FILE)


class TestSplitAddress:
    """host:port parsing."""

    def test_ipv4(self) -> None:
        assert split_address("192.168.1.100:502") == ("192.168.1.100", 502)

    def test_bracketed_ipv6(self) -> None:
        assert split_address("[fe80::1]:502") == ("fe80::1", 502)

    def test_whitespace_stripped(self) -> None:
        assert split_address(" meter:502 ") == ("meter", 502)
