"""
Data privacy exceptions.
"""

from typing import Any, Dict, Optional


class DataPrivacyError(Exception):
    """Base exception for data privacy operations with metadata."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class PreconditionViolation(DataPrivacyError):
    """The operation is not allowed for these arguments; nothing was written."""
