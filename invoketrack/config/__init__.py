"""
Configuration management for invoketrack.
"""

from .settings import Settings, configure_logging, get_settings, reset_settings

__all__ = ["Settings", "get_settings", "reset_settings", "configure_logging"]
