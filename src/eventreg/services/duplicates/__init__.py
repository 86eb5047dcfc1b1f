"""Duplicate registration detection."""

from .engine import DuplicateDetectionEngine, ThrottlePolicy

__all__ = ["DuplicateDetectionEngine", "ThrottlePolicy"]
