"""
Exception hierarchy for invoketrack.

Failures raised by tracked user code are never wrapped in these types; they
only describe problems of the tracking machinery itself.
"""

from typing import Any, Dict, Optional


class InvokeTrackError(Exception):
    """
    Base exception for all invoketrack errors.

    Attributes:
        message: Human-readable error message
        metadata: Additional context about the error
    """

    def __init__(self, message: str, metadata: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.metadata = metadata or {}

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for serialization.

        Returns:
            Dictionary representation of the error
        """
        return {
            "error": self.message,
            "error_type": type(self).__name__,
            "metadata": self.metadata,
        }


class ClosedError(InvokeTrackError):
    """Raised to waiters of a component that has been closed."""


class ConfigurationError(InvokeTrackError):
    """Invalid configuration value, e.g. an unknown stack kind."""

    def __init__(self, message: str, setting: str, value: Any):
        super().__init__(message, metadata={"setting": setting, "value": value})
        self.setting = setting
        self.value = value
