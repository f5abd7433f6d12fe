"""
Read-only routes backed by the snapshot store.

- ``GET /``: HTML dashboard rendered from the current snapshot.
- ``GET /power``: ``{"watts", "volts", "frequency"}`` JSON.
- ``GET /status``: staleness and link state for monitoring.

Handlers only call ``store.current()``, which never waits on the polling
task, so a slow poll cannot delay a response and vice versa.  Before the
first snapshot every route answers with an explicit waiting state rather
than zeroed data.  Once the snapshot is older than ``stale_after_s`` the
dashboard shows a stale badge and ``/power`` reports ``stale`` in its status
header.

CHANGELOG:
- 2026-10-18: Surface staleness on the dashboard and in the /power header
- 2026-10-18: Add /status endpoint with staleness flag
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Request, Response
from fastapi.responses import HTMLResponse

from sharkmon.aggregator import LinkState, utc_now
from sharkmon.models import MeterStatus, PowerReading

if TYPE_CHECKING:
    from sharkmon.models import Snapshot

router = APIRouter(tags=["power"])

STATUS_HEADER = "X-Sharkmon-Status"


def _current(request: Request) -> Snapshot | None:
    return request.app.state.store.current()


def _age(request: Request, snapshot: Snapshot) -> tuple[float, bool]:
    """Return ``(age_s, stale)`` for *snapshot* measured against now."""
    age_s = max(0.0, snapshot.age_s(utc_now()))
    return age_s, age_s > request.app.state.stale_after_s


@router.get("/", response_class=HTMLResponse)
async def dashboard(request: Request) -> HTMLResponse:
    """Render the dashboard, or a waiting placeholder before any data."""
    snapshot = _current(request)
    age_s, stale = _age(request, snapshot) if snapshot is not None else (None, False)
    return request.app.state.templates.TemplateResponse(
        request,
        "dashboard.html",
        {
            "snapshot": snapshot,
            "age_s": age_s,
            "stale": stale,
            "refresh_ms": int(request.app.state.refresh_s * 1000),
        },
    )


@router.get("/power", response_model=PowerReading)
async def power(request: Request, response: Response) -> PowerReading:
    """Return the current averaged reading.

    Returns:
        PowerReading: The snapshot's watts, volts and frequency, or all
        ``null`` with ``X-Sharkmon-Status: waiting`` before the first poll.
        The header is ``stale`` once the snapshot is older than
        ``stale_after_s`` and ``ok`` otherwise.
    """
    snapshot = _current(request)
    if snapshot is None:
        response.headers[STATUS_HEADER] = "waiting"
        return PowerReading()
    _, stale = _age(request, snapshot)
    response.headers[STATUS_HEADER] = "stale" if stale else "ok"
    return PowerReading(**snapshot.power_dict())


@router.get("/status", response_model=MeterStatus)
async def status(request: Request) -> MeterStatus:
    """Report link state and how old the current snapshot is."""
    snapshot = _current(request)
    aggregator = request.app.state.aggregator

    state = aggregator.state if aggregator is not None else LinkState.DISCONNECTED
    result = MeterStatus(
        state=str(state),
        has_data=snapshot is not None,
        stale=True,
        window_size=aggregator.window_size if aggregator is not None else None,
        consecutive_failures=(
            aggregator.consecutive_failures if aggregator is not None else None
        ),
    )
    if snapshot is None:
        return result

    age_s, stale = _age(request, snapshot)
    return result.model_copy(
        update={
            "observed_at": snapshot.observed_at,
            "age_s": round(age_s, 3),
            "stale": stale,
            "sample_count": snapshot.sample_count,
        }
    )
