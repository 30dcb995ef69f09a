"""
Package settings and logging configuration.
"""

import logging
import sys
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

STACK_KINDS = ("context", "plain")


class Settings(BaseSettings):
    """Tracker defaults with environment variable support."""

    # Tracking
    default_stack: str = Field(
        default="context",
        description="Stack created by trackers that are not given one (context|plain)",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Package log level")
    logger_name: str = Field(
        default="invoketrack", description="Root logger name for tracker narration"
    )
    log_invocation_args: bool = Field(
        default=False, description="Include sanitized call arguments in logs"
    )

    class Config:
        env_prefix = "INVOKETRACK_"
        env_file = ".env"
        extra = "ignore"

    @field_validator("default_stack")
    @classmethod
    def _check_stack_kind(cls, value: str) -> str:
        value = value.lower()
        if value not in STACK_KINDS:
            raise ValueError(f"default_stack must be one of {STACK_KINDS}")
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        value = value.upper()
        if not isinstance(logging.getLevelName(value), int):
            raise ValueError(f"unknown log level '{value}'")
        return value


def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure logging with development-friendly structured output.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL); defaults
            to the configured ``log_level``
    """
    settings = get_settings()
    log_level = getattr(logging, (level or settings.log_level).upper())

    from ..utils.logging.structured import create_development_formatter

    formatter = create_development_formatter()

    # Configure only our package logger
    app_logger = logging.getLogger(settings.logger_name)
    app_logger.setLevel(log_level)

    for handler in app_logger.handlers[:]:
        app_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    app_logger.addHandler(console_handler)

    # Prevent propagation to root logger to avoid duplication
    app_logger.propagate = False


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next access re-reads the environment."""
    global _settings
    _settings = None
