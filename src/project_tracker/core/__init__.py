"""Shared configuration, logging and storage helpers."""

from __future__ import annotations

from .config import Settings, get_settings
from .kv import KeyValueStore

__all__ = ["KeyValueStore", "Settings", "get_settings"]
