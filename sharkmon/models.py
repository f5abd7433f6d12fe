"""
Pydantic models for meter samples, published snapshots, and API payloads.

``PowerSample`` is a single reading after raw register words have been
decoded and scaled.  ``Snapshot`` is the rolling average handed to every
consumer; it is frozen so that it can be shared between the polling task
and request handlers without copying.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class PowerSample(BaseModel):
    """A single converted reading from the meter.

    Attributes:
        watts: Total real power in watts.
        volts: Phase voltage in volts.
        frequency: Line frequency in hertz.
    """

    model_config = ConfigDict(frozen=True)

    watts: float
    volts: float
    frequency: float


class Snapshot(BaseModel):
    """The published rolling average of the most recent samples.

    Attributes:
        watts: Mean real power over the window, in watts.
        volts: Mean voltage over the window, in volts.
        frequency: Mean frequency over the window, in hertz.
        observed_at: UTC time at which the snapshot was computed.
        sample_count: Number of samples the mean was taken over.
    """

    model_config = ConfigDict(frozen=True)

    watts: float
    volts: float
    frequency: float
    observed_at: datetime
    sample_count: int

    def power_dict(self) -> dict[str, float]:
        """Return the ``{watts, volts, frequency}`` payload shape."""
        return self.model_dump(include={"watts", "volts", "frequency"})

    def age_s(self, now: datetime) -> float:
        """Seconds elapsed between ``observed_at`` and *now*."""
        return (now - self.observed_at).total_seconds()


class PowerReading(BaseModel):
    """Response body of ``GET /power``.

    All fields are ``None`` until the first snapshot has been published.
    """

    watts: float | None = None
    volts: float | None = None
    frequency: float | None = None


class MeterStatus(BaseModel):
    """Response body of ``GET /status``."""

    state: str
    has_data: bool
    observed_at: datetime | None = None
    age_s: float | None = None
    stale: bool
    sample_count: int | None = None
    window_size: int | None = None
    consecutive_failures: int | None = None
