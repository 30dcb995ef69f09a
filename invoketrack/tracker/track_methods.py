"""
Bulk tracking of object methods.
"""

import inspect
from typing import Any, Iterable, Optional, Set

from .invocation import InvocationTracker

_BUILT_IN_TYPES = (list, dict, set, frozenset, tuple, str, bytes, bytearray)


def track_methods(
    tracker: InvocationTracker,
    target: Any,
    methods: Optional[Iterable[str]] = None,
    include_private: bool = False,
) -> Set[str]:
    """
    Replace methods of ``target`` with tracked versions, in place.

    Each method is tracked under its own name. Instances of built-in
    containers are left untouched.

    Args:
        tracker: Tracker used to wrap the methods
        target: Object whose methods are replaced
        methods: Names to track; unknown or non-callable names are ignored.
            When omitted, every public callable attribute is tracked.
        include_private: Also track ``_``-prefixed names (never dunders) when
            ``methods`` is omitted

    Returns:
        The names of the methods that were wrapped
    """
    if target is None or isinstance(target, _BUILT_IN_TYPES):
        return set()

    if methods is not None:
        selected = {name for name in methods if _is_method(target, name)}
    else:
        selected = {
            name
            for name in dir(target)
            if not name.startswith("__")
            and (include_private or not name.startswith("_"))
            and _is_method(target, name)
        }

    for name in selected:
        setattr(target, name, tracker.track(name, getattr(target, name)))

    return selected


def _is_method(target: Any, name: str) -> bool:
    # Properties are never evaluated; other attributes that fail to resolve
    # are not methods.
    try:
        if isinstance(inspect.getattr_static(target, name), property):
            return False
    except AttributeError:
        pass

    try:
        value = getattr(target, name)
    except Exception:
        return False
    return callable(value) and not isinstance(value, type)
