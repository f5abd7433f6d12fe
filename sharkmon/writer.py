"""
JSON-lines writer for console and file output modes.

A :class:`SnapshotWriter` is registered as an aggregator sink and writes one
JSON object per published snapshot, using the same
``{"watts", "volts", "frequency"}`` shape as ``GET /power``.  Each line is
flushed immediately so that tailing processes see it without delay.

In serve mode the stdout echo is wrapped in a :class:`BackgroundWriter` so
the write and flush happen off the event loop that answers HTTP requests.

CHANGELOG:
- 2026-10-18: Add BackgroundWriter for the serve-mode stdout echo
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import contextlib
import json
import logging
import sys
from collections.abc import Iterator
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

if TYPE_CHECKING:
    from sharkmon.models import Snapshot

logger = logging.getLogger(__name__)


class SnapshotWriter:
    """Writes each snapshot as one JSON line to a text stream.

    Args:
        stream: Destination stream, e.g. ``sys.stdout`` or an open file.
    """

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream
        self._lines_written: int = 0

    @property
    def lines_written(self) -> int:
        return self._lines_written

    def __call__(self, snapshot: Snapshot) -> None:
        self.write(snapshot)

    def write(self, snapshot: Snapshot) -> None:
        """Serialise *snapshot* and write it as a single flushed line."""
        self._stream.write(json.dumps(snapshot.power_dict()) + "\n")
        self._stream.flush()
        self._lines_written += 1

    def __repr__(self) -> str:
        return f"SnapshotWriter({getattr(self._stream, 'name', self._stream)!r})"


class BackgroundWriter:
    """Sink that hands snapshots to a :class:`SnapshotWriter` on a worker thread.

    Used when the writer shares the event loop with the web server: a slow or
    blocked stream delays only the worker, never request handling.  A single
    worker keeps lines in publish order.

    Args:
        writer: The writer that performs the actual I/O.
    """

    def __init__(self, writer: SnapshotWriter) -> None:
        self._writer = writer
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="sharkmon-writer"
        )

    @property
    def writer(self) -> SnapshotWriter:
        return self._writer

    def __call__(self, snapshot: Snapshot) -> None:
        future = self._executor.submit(self._writer.write, snapshot)
        future.add_done_callback(_log_write_failure)

    def close(self) -> None:
        """Write any queued lines, then stop the worker."""
        self._executor.shutdown(wait=True)

    def __repr__(self) -> str:
        return f"BackgroundWriter({self._writer!r})"


def _log_write_failure(future: Future[None]) -> None:
    exc = future.exception()
    if exc is not None:
        logger.warning("Background snapshot write failed: %r", exc)


@contextlib.contextmanager
def open_writer(path: str | Path | None = None) -> Iterator[SnapshotWriter]:
    """Yield a writer on stdout, or on *path* opened for appending.

    Args:
        path: Output file. ``None`` writes to standard output, which is left
            open on exit.
    """
    if path is None:
        yield SnapshotWriter(sys.stdout)
        return

    with Path(path).open("a", encoding="utf-8") as fh:
        yield SnapshotWriter(fh)
