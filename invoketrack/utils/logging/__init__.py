"""
Logging infrastructure for invoketrack.

Components narrate through a ``StructuredLogger``; when the caller does not
provide one, ``OFF_LOGGER`` keeps them silent.
"""

from .structured import (
    OFF_LOGGER,
    OffLogger,
    StructuredLogger,
    create_development_formatter,
    get_structured_logger,
    sanitize_arguments,
    sanitize_value,
)

__all__ = [
    # Primary API
    "StructuredLogger",
    "get_structured_logger",
    "OFF_LOGGER",
    "OffLogger",
    # Rendering helpers
    "create_development_formatter",
    "sanitize_arguments",
    "sanitize_value",
]
