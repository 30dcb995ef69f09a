"""
Structured logging utilities for event-based tracker narration.

Provides structured event logging with bound context fields, a no-op logger
used when callers do not supply one, and a human-readable development
formatter for invocation and operation events.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from ...exceptions import InvokeTrackError


class LogConfig:
    """Argument rendering rules for logged invocation data."""

    SENSITIVE_KEYS = {"password", "token", "secret", "key", "api_key", "auth"}
    LARGE_CONTENT_KEYS = {"content", "text", "data", "body"}
    MAX_ARG_LENGTH = 100


class StructuredLogger:
    """
    Structured logger that creates consistent, searchable log events.

    Every event carries the fields bound through ``bind()`` so components can
    identify themselves (tracker id, operation, invocation index) without
    creating a stdlib logger per invocation.
    """

    def __init__(self, name: str, context: Optional[Dict[str, Any]] = None):
        self.logger = logging.getLogger(name)
        self.context: Dict[str, Any] = dict(context or {})

    @property
    def name(self) -> str:
        return self.logger.name

    def bind(self, **context: Any) -> "StructuredLogger":
        """Return a logger that adds ``context`` to every event."""
        return StructuredLogger(self.logger.name, {**self.context, **context})

    def is_enabled(self, level: int) -> bool:
        """Check whether events at ``level`` would be emitted."""
        return self.logger.isEnabledFor(level)

    def event(
        self,
        event_name: str,
        data: Optional[Dict[str, Any]] = None,
        level: int = logging.INFO,
    ) -> None:
        """
        Log a structured event with optional data.

        Args:
            event_name: Name of the event (e.g., 'invocation_started')
            data: Dictionary of structured data to include
            level: Log level (defaults to INFO)
        """
        if not self.logger.isEnabledFor(level):
            return

        structured_data: Dict[str, Any] = {"event": event_name, **self.context}
        if data:
            structured_data.update(data)

        record = self.logger.makeRecord(
            self.logger.name, level, "(structured)", 0, event_name, (), None
        )
        record.structured_data = structured_data

        self.logger.handle(record)

    def debug(self, event_name: str, data: Optional[Dict[str, Any]] = None) -> None:
        self.event(event_name, data, logging.DEBUG)

    def info(self, event_name: str, data: Optional[Dict[str, Any]] = None) -> None:
        self.event(event_name, data, logging.INFO)

    def warning(self, event_name: str, data: Optional[Dict[str, Any]] = None) -> None:
        self.event(event_name, data, logging.WARNING)

    def error(self, event_name: str, data: Optional[Dict[str, Any]] = None) -> None:
        self.event(event_name, data, logging.ERROR)

    def failure(
        self,
        event_name: str,
        error: BaseException,
        data: Optional[Dict[str, Any]] = None,
        level: int = logging.ERROR,
    ) -> None:
        """Log a failed operation with error details."""
        failure_data: Dict[str, Any] = {
            "success": False,
            "error_type": type(error).__name__,
            "error_message": str(error),
        }
        if isinstance(error, InvokeTrackError):
            failure_data["error_details"] = error.to_dict()
        if data:
            failure_data.update(data)
        self.event(event_name, failure_data, level)


class OffLogger(StructuredLogger):
    """A logger that never emits anything."""

    def __init__(self) -> None:
        super().__init__("invoketrack.off")

    def bind(self, **context: Any) -> "StructuredLogger":
        return self

    def is_enabled(self, level: int) -> bool:
        return False

    def event(
        self,
        event_name: str,
        data: Optional[Dict[str, Any]] = None,
        level: int = logging.INFO,
    ) -> None:
        return None


OFF_LOGGER = OffLogger()

_loggers: Dict[str, StructuredLogger] = {}


def get_structured_logger(name: str = "invoketrack") -> StructuredLogger:
    """Get or create the structured logger registered under ``name``."""
    structured_logger = _loggers.get(name)
    if structured_logger is None:
        structured_logger = StructuredLogger(name)
        _loggers[name] = structured_logger
    return structured_logger


def sanitize_value(key: str, value: Any) -> Any:
    """Sanitize a single value for logging."""
    if any(sensitive in key.lower() for sensitive in LogConfig.SENSITIVE_KEYS):
        return "[REDACTED]"

    if key.lower() in LogConfig.LARGE_CONTENT_KEYS and isinstance(value, str):
        if len(value) > LogConfig.MAX_ARG_LENGTH:
            return f"<{len(value)} chars>"
        return value

    if isinstance(value, (str, int, float, bool, type(None))):
        if isinstance(value, str) and len(value) > LogConfig.MAX_ARG_LENGTH:
            return f"{value[:LogConfig.MAX_ARG_LENGTH]}..."
        return value
    return f"<{type(value).__name__}>"


def sanitize_arguments(args: tuple, kwargs: Dict[str, Any]) -> Dict[str, Any]:
    """Render positional and keyword arguments as loggable values."""
    safe_args: Dict[str, Any] = {}
    for position, value in enumerate(args):
        safe_args[f"arg_pos_{position}"] = sanitize_value(str(position), value)
    for key, value in kwargs.items():
        safe_args[f"arg_{key}"] = sanitize_value(key, value)
    return safe_args


def create_development_formatter() -> logging.Formatter:
    """
    Create a human-readable formatter for development environments.

    Structured invocation and operation events are rendered as one compact
    line each; any other record falls back to a plain layout.
    """

    class DevelopmentFormatter(logging.Formatter):
        def format(self, record: logging.LogRecord) -> str:
            timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[
                :-3
            ]

            data: Optional[dict] = getattr(record, "structured_data", None)

            if not data:
                return f"{timestamp} | {record.levelname:5} | {record.getMessage()}"

            event = data.get("event", "")

            if event == "invocation_started":
                message_content = self._format_invocation_start(data)
            elif event == "invocation_completed":
                message_content = self._format_invocation_success(data)
            elif event == "invocation_errored":
                message_content = self._format_invocation_error(data)
            elif event in ("operation_tracked", "operation_settled"):
                message_content = self._format_operation_event(data, event)
            elif event == "listener_failed":
                message_content = self._format_listener_failure(data)
            else:
                message_content = self._format_generic_event(data, event)

            return f"{timestamp} | {record.levelname:5} | {message_content}"

        def _invocation_name(self, data: dict) -> str:
            operation = data.get("operation", "")
            index = data.get("index")
            if index is None:
                return operation or "invocation"
            return f"{operation}#{index}"

        def _format_duration(self, duration_ms: float) -> str:
            if duration_ms >= 1000:
                return f"{duration_ms / 1000:.1f}s"
            return f"{duration_ms:.1f}ms"

        def _format_invocation_start(self, data: dict) -> str:
            name = self._invocation_name(data)
            parent = data.get("parent_id")
            args_count = data.get("args_count", 0)
            suffix = f" under {parent}" if parent else ""
            return f"🚀 {name} started with {args_count} args{suffix}"

        def _format_invocation_success(self, data: dict) -> str:
            name = self._invocation_name(data)
            duration = self._format_duration(data.get("duration_ms", 0.0))
            mode = " (async)" if data.get("was_async") else ""
            return f"✅ {duration} {name} completed{mode}"

        def _format_invocation_error(self, data: dict) -> str:
            name = self._invocation_name(data)
            duration = self._format_duration(data.get("duration_ms", 0.0))
            error_type = data.get("error_type", "Error")
            error_message = data.get("error_message", "")

            if len(error_message) > 60:
                error_message = error_message[:57] + "..."

            return f"❌ {duration} {name} failed ({error_type}: {error_message})"

        def _format_operation_event(self, data: dict, event: str) -> str:
            label = data.get("label")
            label_part = f" '{label}'" if label else ""
            if event == "operation_tracked":
                source = "supplier" if data.get("supplier") else "awaitable"
                return f"⏳ tracking{label_part} ({source})"

            duration = self._format_duration(data.get("duration_ms", 0.0))
            outcome = "rejected" if data.get("failed") else "resolved"
            return f"🏁{label_part} {outcome} in {duration}"

        def _format_listener_failure(self, data: dict) -> str:
            error_type = data.get("error_type", "Error")
            error_message = data.get("error_message", "")
            return f"⚠️ listener failed ({error_type}: {error_message})"

        def _format_generic_event(self, data: dict, event: str) -> str:
            if not event:
                return "📝 log_event"

            details = {
                key: value
                for key, value in data.items()
                if key != "event" and isinstance(value, (str, int, float, bool))
            }
            if not details:
                return f"📝 {event}"

            rendered = ", ".join(f"{key}={value}" for key, value in details.items())
            return f"📝 {event}: {rendered}"

    return DevelopmentFormatter()
