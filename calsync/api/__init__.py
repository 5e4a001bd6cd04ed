"""
calsync API module.

Provides FastAPI HTTP endpoints for calendar connection, sync and feeds.
"""

from calsync.api.main import app, run_server

__all__ = ["app", "run_server"]
