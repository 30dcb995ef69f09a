"""
Shared utilities: per-task context storage and structured logging.
"""
