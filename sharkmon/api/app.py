"""
FastAPI application factory for the sharkmon web surface.

The app reads snapshots from a :class:`~sharkmon.store.SnapshotStore` held on
``app.state``.  When an aggregator is supplied, the application lifespan
starts its polling loop as a background task and stops it, closing the meter
session, when the server shuts down.

CHANGELOG:
- 2026-10-18: Run the aggregator inside the application lifespan
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.templating import Jinja2Templates

from sharkmon import __version__
from sharkmon.api.health import router as health_router
from sharkmon.api.power import router as power_router

if TYPE_CHECKING:
    from sharkmon.aggregator import Aggregator
    from sharkmon.store import SnapshotStore

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: start and stop the polling task.

    Startup:
        - Starts ``app.state.aggregator.run()`` when an aggregator is set.

    Shutdown:
        - Signals the aggregator and waits for it to close the session.
    """
    aggregator: Aggregator | None = app.state.aggregator
    if aggregator is None:
        logger.info("sharkmon API ready (no aggregator attached)")
        yield
        return

    shutdown_event = asyncio.Event()
    task = asyncio.create_task(aggregator.run(shutdown_event), name="aggregator")
    logger.info("sharkmon API ready, aggregator running")
    try:
        yield
    finally:
        logger.info("sharkmon API shutting down")
        shutdown_event.set()
        await task


def create_app(
    store: SnapshotStore,
    *,
    aggregator: Aggregator | None = None,
    stale_after_s: float = 5.0,
    refresh_s: float = 1.0,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        store: Source of the current snapshot.
        aggregator: Polling loop to run for the lifetime of the app, if any.
        stale_after_s: Snapshot age after which ``/status`` reports stale.
        refresh_s: Dashboard refresh period in seconds.
    """
    app = FastAPI(
        title="sharkmon",
        description="Shark 100S power meter web gateway.",
        version=__version__,
        lifespan=lifespan,
    )

    @app.middleware("http")
    async def disable_browser_cache(request: Request, call_next):
        response = await call_next(request)
        if request.method in {"GET", "HEAD"}:
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
        return response

    app.state.store = store
    app.state.aggregator = aggregator
    app.state.stale_after_s = stale_after_s
    app.state.refresh_s = refresh_s
    app.state.templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

    app.include_router(health_router)
    app.include_router(power_router)

    return app
