"""
Polling loop that turns per-second meter readings into a rolling snapshot.

The aggregator owns the :class:`~sharkmon.link.MeterLink` and drives it
through a small state machine::

    DISCONNECTED -> CONNECTING -> POLLING -> (failures) RECONNECTING -> CONNECTING

Each call to :meth:`Aggregator.step` performs exactly one transition and
returns how long to wait before the next one, which keeps the reconnection
logic testable without real network I/O.  :meth:`Aggregator.run` wraps
``step`` in a loop that stops on a shutdown event.

Resilience rules:

- Connect failures back off starting at the poll interval, doubling up to
  ``max_backoff_s``.
- A failed or malformed read is a missed sample: the window and the
  published snapshot are left untouched.
- ``failure_threshold`` consecutive missed samples drop the session and
  force a reconnect.
- Nothing raised by a single step ever ends the loop.

CHANGELOG:
- 2026-10-18: Replace exponential moving average with fixed-window mean
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
from collections import deque
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from statistics import fmean
from typing import TYPE_CHECKING

from sharkmon.link import DeviceConnectionError, ReadError
from sharkmon.models import PowerSample, Snapshot
from sharkmon.normalizer import convert

if TYPE_CHECKING:
    from sharkmon.link import MeterLink
    from sharkmon.store import SnapshotStore

logger = logging.getLogger(__name__)

SnapshotSink = Callable[[Snapshot], None]
"""Callable invoked with every freshly published snapshot."""

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_POLL_INTERVAL_S: float = 1.0
DEFAULT_MAX_BACKOFF_S: float = 30.0
DEFAULT_FAILURE_THRESHOLD: int = 3


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


class LinkState(enum.StrEnum):
    """Connection state of the aggregator's meter session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    POLLING = "polling"
    RECONNECTING = "reconnecting"


# ---------------------------------------------------------------------------
# Rolling window
# ---------------------------------------------------------------------------


class RollingWindow:
    """Fixed-size buffer of the most recent samples.

    Args:
        size: Maximum number of samples kept. The oldest sample is evicted
            once the window is full.
    """

    def __init__(self, size: int) -> None:
        if size < 1:
            raise ValueError(f"Window size must be >= 1, got {size}")
        self._samples: deque[PowerSample] = deque(maxlen=size)

    @property
    def size(self) -> int:
        return self._samples.maxlen or 0

    def __len__(self) -> int:
        return len(self._samples)

    def push(self, sample: PowerSample) -> None:
        self._samples.append(sample)

    def samples(self) -> list[PowerSample]:
        """Return the window contents, oldest first."""
        return list(self._samples)

    def mean(self) -> PowerSample:
        """Arithmetic mean of every field over the current contents.

        Raises:
            ValueError: If the window is empty.
        """
        if not self._samples:
            raise ValueError("Cannot average an empty window")
        return PowerSample(
            watts=fmean(s.watts for s in self._samples),
            volts=fmean(s.volts for s in self._samples),
            frequency=fmean(s.frequency for s in self._samples),
        )


# ---------------------------------------------------------------------------
# Aggregator
# ---------------------------------------------------------------------------


class Aggregator:
    """Drives acquisition at a fixed cadence and publishes rolling averages.

    Args:
        link: The meter link. Owned exclusively by this aggregator.
        store: Store receiving every new snapshot.
        window_size: Number of samples averaged.
        poll_interval_s: Seconds between reads while polling.
        max_backoff_s: Cap for the reconnect backoff.
        failure_threshold: Consecutive missed samples that force a reconnect.
        sinks: Callables receiving each published snapshot (console/file
            writers).
        clock: Source of ``observed_at`` timestamps.
    """

    def __init__(
        self,
        *,
        link: MeterLink,
        store: SnapshotStore,
        window_size: int,
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
        max_backoff_s: float = DEFAULT_MAX_BACKOFF_S,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        sinks: Iterable[SnapshotSink] = (),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if failure_threshold < 1:
            raise ValueError(f"failure_threshold must be >= 1, got {failure_threshold}")
        self._link = link
        self._store = store
        self._window = RollingWindow(window_size)
        self._poll_interval_s = poll_interval_s
        self._max_backoff_s = max(max_backoff_s, poll_interval_s)
        self._failure_threshold = failure_threshold
        self._sinks = list(sinks)
        self._clock = clock

        self._state = LinkState.DISCONNECTED
        self._consecutive_failures: int = 0
        self._backoff_s: float = poll_interval_s
        self._last_observed_at: datetime | None = None

    # -- Introspection --------------------------------------------------

    @property
    def state(self) -> LinkState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def backoff_s(self) -> float:
        """Delay applied after the next failed connect."""
        return self._backoff_s

    @property
    def window_size(self) -> int:
        return self._window.size

    @property
    def window(self) -> RollingWindow:
        return self._window

    def add_sink(self, sink: SnapshotSink) -> None:
        self._sinks.append(sink)

    # -- State machine --------------------------------------------------

    async def step(self) -> float:
        """Perform one state transition.

        Returns:
            Seconds to wait before the next step.
        """
        if self._state is LinkState.POLLING:
            return await self._poll()
        return await self._connect()

    async def _connect(self) -> float:
        self._set_state(LinkState.CONNECTING)
        try:
            await self._link.connect()
        except DeviceConnectionError as exc:
            delay = self._backoff_s
            self._backoff_s = min(self._backoff_s * 2, self._max_backoff_s)
            self._set_state(LinkState.RECONNECTING)
            logger.warning("%s; retrying in %.1fs", exc, delay)
            return delay

        self._backoff_s = self._poll_interval_s
        self._consecutive_failures = 0
        self._set_state(LinkState.POLLING)
        return 0.0

    async def _poll(self) -> float:
        try:
            raw = await self._link.read()
            sample = convert(raw)
        except ReadError as exc:
            await self._record_miss(exc)
            return self._poll_interval_s

        self._consecutive_failures = 0
        self._window.push(sample)
        snapshot = self._build_snapshot()
        self._store.publish(snapshot)
        self._last_observed_at = snapshot.observed_at
        logger.debug(
            "Published snapshot watts=%.1f volts=%.1f frequency=%.2f (n=%d)",
            snapshot.watts,
            snapshot.volts,
            snapshot.frequency,
            snapshot.sample_count,
        )
        self._notify_sinks(snapshot)
        return self._poll_interval_s

    async def _record_miss(self, exc: ReadError) -> None:
        self._consecutive_failures += 1
        logger.warning(
            "Missed sample (%d/%d consecutive): %s",
            self._consecutive_failures,
            self._failure_threshold,
            exc,
        )
        if self._consecutive_failures >= self._failure_threshold:
            logger.warning(
                "Read failure threshold reached, dropping session to reconnect"
            )
            await self._drop_session()

    async def _drop_session(self) -> None:
        await self._link.close()
        self._consecutive_failures = 0
        self._set_state(LinkState.RECONNECTING)

    def _build_snapshot(self) -> Snapshot:
        mean = self._window.mean()
        observed_at = self._clock()
        if self._last_observed_at is not None and observed_at < self._last_observed_at:
            observed_at = self._last_observed_at
        return Snapshot(
            watts=mean.watts,
            volts=mean.volts,
            frequency=mean.frequency,
            observed_at=observed_at,
            sample_count=len(self._window),
        )

    def _notify_sinks(self, snapshot: Snapshot) -> None:
        for sink in self._sinks:
            try:
                sink(snapshot)
            except Exception:
                logger.warning("Snapshot sink %r failed", sink, exc_info=True)

    def _set_state(self, state: LinkState) -> None:
        if state is not self._state:
            logger.info("Meter link state: %s -> %s", self._state, state)
            self._state = state

    # -- Loop runner ----------------------------------------------------

    async def run(self, shutdown_event: asyncio.Event) -> None:
        """Run the state machine until *shutdown_event* is set.

        The wait after each step is shortened by the time the step took so
        reads keep a fixed cadence.  The session is always closed on exit.

        Args:
            shutdown_event: Event signalling graceful shutdown.
        """
        loop = asyncio.get_running_loop()
        logger.info(
            "Aggregator started (interval=%ss, window=%d)",
            self._poll_interval_s,
            self._window.size,
        )
        try:
            while not shutdown_event.is_set():
                started = loop.time()
                try:
                    delay = await self.step()
                except Exception:
                    logger.error("Aggregation cycle error", exc_info=True)
                    await self._drop_session()
                    delay = self._poll_interval_s
                if self._state is LinkState.POLLING:
                    delay = max(0.0, delay - (loop.time() - started))
                # Use wait with timeout so we can check shutdown between sleeps
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(shutdown_event.wait(), timeout=delay)
        finally:
            await self._link.close()
            self._state = LinkState.DISCONNECTED
            logger.info("Aggregator stopped")
