"""
Health check endpoint for the sharkmon web server.

Provides a simple GET /health endpoint that returns {"status": "ok"} with
HTTP 200 whenever the server is up, independent of meter connectivity.
Meter staleness is reported separately by GET /status.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from fastapi import APIRouter

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    """Return a simple health status.

    Returns:
        dict: ``{"status": "ok"}`` indicating the service is alive.
    """
    return {"status": "ok"}
