"""Reference HTTP API backing the project client."""

from __future__ import annotations

from .main import create_app, run

__all__ = ["create_app", "run"]
