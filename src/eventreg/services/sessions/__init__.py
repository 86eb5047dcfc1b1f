"""Form session lifecycle."""

from .registry import FormSession, SessionRegistry

__all__ = ["FormSession", "SessionRegistry"]
