"""
Type coercion utilities for the telemetry collector.

Settings arrive from Django settings modules and environment variables, so
values are coerced defensively before they reach the runtime.
"""

from typing import Any, List, Optional


def coerce_int(value: Any, default: int = 0) -> int:
    """
    Coerce a value to an integer.

    Examples:
        >>> coerce_int("42")
        42
        >>> coerce_int(None, default=10)
        10
    """
    if value is None:
        return default
    try:
        return int(value)
    except (ValueError, TypeError):
        return default


def coerce_bool(value: Any, default: bool = False) -> bool:
    """
    Coerce a value to a boolean.

    Strings are read the way environment variables are usually written:
    ``"true"``, ``"1"``, ``"yes"`` and ``"on"`` are truthy.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    try:
        return bool(value)
    except (ValueError, TypeError):
        return default


def coerce_optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def coerce_str_list(value: Any, *, lower: bool = False) -> List[str]:
    """Coerce a scalar or iterable into a list of non-empty strings."""
    if not value:
        return []
    if isinstance(value, (list, tuple, set)):
        items = value
    else:
        items = [value]
    normalized: List[str] = []
    for item in items:
        if item is None:
            continue
        text = str(item).strip()
        if not text:
            continue
        normalized.append(text.lower() if lower else text)
    return normalized


__all__ = [
    "coerce_bool",
    "coerce_int",
    "coerce_optional_str",
    "coerce_str_list",
]
