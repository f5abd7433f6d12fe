"""
Single-slot store holding the currently published Snapshot.

The aggregator is the only writer; HTTP handlers and other consumers read.
Publishing replaces one reference with another frozen Snapshot, so a reader
always sees either nothing or one complete snapshot, never a mix of two.
Reads take no lock and never wait on the writer.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sharkmon.models import Snapshot


class SnapshotStore:
    """Holds the current :class:`~sharkmon.models.Snapshot`, if any."""

    def __init__(self) -> None:
        self._current: Snapshot | None = None
        self._published_count: int = 0
        self._write_lock = threading.Lock()

    def publish(self, snapshot: Snapshot) -> None:
        """Replace the current snapshot.

        Args:
            snapshot: The new snapshot. Must not be older than the current one.

        Raises:
            ValueError: If ``snapshot.observed_at`` precedes the current
                snapshot's timestamp.
        """
        with self._write_lock:
            previous = self._current
            if previous is not None and snapshot.observed_at < previous.observed_at:
                raise ValueError(
                    f"Snapshot observed at {snapshot.observed_at.isoformat()} is "
                    f"older than current {previous.observed_at.isoformat()}"
                )
            self._current = snapshot
            self._published_count += 1

    def current(self) -> Snapshot | None:
        """Return the current snapshot, or ``None`` before the first publish."""
        return self._current

    @property
    def published_count(self) -> int:
        return self._published_count
