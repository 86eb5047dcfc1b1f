"""API route modules."""

from . import admin, health, sessions

__all__ = ["admin", "health", "sessions"]
