"""
Event notification primitive shared by all tracker components.
"""

from .notifier import EventNotifier, Subscription

__all__ = ["EventNotifier", "Subscription"]
