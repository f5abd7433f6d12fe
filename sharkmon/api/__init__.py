"""
Web surface package.

Exports the FastAPI application factory used by the serve mode.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from sharkmon.api.app import create_app

__all__ = ["create_app"]
