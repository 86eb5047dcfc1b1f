"""Registration submission."""

from .gate import SubmissionGate, SubmissionOutcome, SubmissionStatus
from .validation import validate_draft

__all__ = ["SubmissionGate", "SubmissionOutcome", "SubmissionStatus", "validate_draft"]
