"""Distribution package for HydraWatch; re-exports the FastAPI app."""

from __future__ import annotations

from app.main import app, create_app

from .__main__ import main

__all__ = ["app", "create_app", "main"]
