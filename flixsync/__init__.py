"""Public import surface for the flixsync client."""

from __future__ import annotations

from app.client import FlixClient, open_client
from app.main import app, create_app

__all__ = ["FlixClient", "app", "create_app", "open_client"]
