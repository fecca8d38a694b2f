"""
Redaction of sensitive values before a payload leaves the process.

The default policy drops excluded keys and masks the values of masked keys
anywhere in the payload. Projects can swap it for their own callable through
the ``redaction.filter`` setting.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Optional

from django.utils.module_loading import import_string

from .config import TelemetrySettings

logger = logging.getLogger(__name__)

PayloadFilter = Callable[[dict[str, Any], TelemetrySettings], dict[str, Any]]


def filter_sensitive_data(
    data: Any,
    exclude: Iterable[str] = (),
    mask: Iterable[str] = (),
    mask_value: str = "*******",
) -> Any:
    """Recursively drop ``exclude`` keys and mask ``mask`` keys (case-insensitive)."""
    exclude_keys = {str(key).lower() for key in exclude}
    mask_keys = {str(key).lower() for key in mask}
    return _filter(data, exclude_keys, mask_keys, mask_value)


def _filter(data: Any, exclude: set[str], mask: set[str], mask_value: str) -> Any:
    if isinstance(data, dict):
        filtered: dict[Any, Any] = {}
        for key, value in data.items():
            key_lower = str(key).lower()
            if key_lower in exclude:
                continue
            if key_lower in mask:
                filtered[key] = mask_value
                continue
            filtered[key] = _filter(value, exclude, mask, mask_value)
        return filtered
    if isinstance(data, (list, tuple)):
        return [_filter(item, exclude, mask, mask_value) for item in data]
    return data


def default_payload_filter(payload: dict[str, Any], settings: TelemetrySettings) -> dict[str, Any]:
    redaction = settings.redaction
    return filter_sensitive_data(
        payload,
        exclude=redaction.exclude,
        mask=redaction.mask,
        mask_value=redaction.mask_value,
    )


def get_payload_filter(settings: TelemetrySettings) -> PayloadFilter:
    filter_path = settings.redaction.filter_path
    if not filter_path:
        return default_payload_filter
    try:
        return import_string(filter_path)
    except ImportError as exc:
        logger.warning("Failed to import redaction filter '%s': %s", filter_path, exc)
        return default_payload_filter


def redact_payload(payload: dict[str, Any], settings: TelemetrySettings) -> Optional[dict[str, Any]]:
    payload_filter = get_payload_filter(settings)
    return payload_filter(payload, settings)


__all__ = [
    "default_payload_filter",
    "filter_sensitive_data",
    "get_payload_filter",
    "redact_payload",
]
