"""Custom exceptions for Manneri."""

from typing import Any


class ManneriError(Exception):
    """Base exception for all Manneri errors."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.details = details or {}


class ConfigValidationError(ManneriError):
    """Raised when a detector configuration is invalid."""


class PersistenceError(ManneriError):
    """Raised when a persistence provider cannot read or write its store."""


class TranscriptError(ManneriError):
    """Raised when a conversation transcript cannot be read."""
