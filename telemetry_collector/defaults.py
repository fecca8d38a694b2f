"""
Default configuration for the telemetry-collector library.

Every setting the collector consumes is listed here. Projects override any
subset through the ``TELEMETRY_COLLECTOR`` dict in their Django settings;
nested dicts are merged key by key.
"""

from __future__ import annotations

from typing import Any

LIBRARY_NAME = "telemetry-collector"

DEFAULT_ENDPOINT = "https://apextoolbox.com/api/v1/telemetry"
DEFAULT_MASK_VALUE = "*******"

# Environment variables consulted when the matching setting is left empty.
ENV_ENABLED = "TELEMETRY_COLLECTOR_ENABLED"
ENV_TOKEN = "TELEMETRY_COLLECTOR_TOKEN"
ENV_ENDPOINT = "TELEMETRY_COLLECTOR_ENDPOINT"
ENV_QUEUE_WORKER = "TELEMETRY_COLLECTOR_QUEUE_WORKER"


# --------------------------------------------------------------------------- #
# Library-wide defaults (grouped by feature area)
# --------------------------------------------------------------------------- #
LIBRARY_DEFAULTS: dict[str, Any] = {
    "enabled": True,
    "token": "",
    "endpoint": None,
    "timeout_seconds": 5,
    "environment": None,
    "path_filters": {
        "include": ["api/*"],
        "exclude": ["api/health", "api/ping"],
    },
    "query_settings": {
        "capture_queries": True,
        "n_plus_one_threshold": 3,
        "caller_ignore_paths": [],
        "caller_frame_limit": 50,
    },
    "log_settings": {
        "capture_logs": True,
        "level": "INFO",
    },
    "http_settings": {
        "instrument_requests": True,
    },
    "exception_settings": {
        "capture_uncaught": True,
        "code_context_lines": 5,
    },
    "redaction": {
        "filter": None,
        "mask_value": DEFAULT_MASK_VALUE,
        "exclude": [
            "password",
            "password_confirmation",
            "token",
            "access_token",
            "refresh_token",
            "api_key",
            "secret",
            "private_key",
            "authorization",
            "cookie",
            "credit_card",
            "card_number",
            "cvv",
            "pin",
            "otp",
        ],
        "mask": [
            "ssn",
            "social_security",
            "phone",
            "email",
            "address",
            "postal_code",
            "zip_code",
        ],
    },
}


def merge_settings(*settings_dicts: dict[str, Any]) -> dict[str, Any]:
    """
    Merge multiple settings dictionaries with deep merging for nested dicts.
    Later dictionaries override earlier ones.
    """
    result: dict[str, Any] = {}
    for settings_dict in settings_dicts:
        for key, value in settings_dict.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = merge_settings(result[key], value)
            else:
                result[key] = value
    return result


__all__ = [
    "DEFAULT_ENDPOINT",
    "DEFAULT_MASK_VALUE",
    "LIBRARY_DEFAULTS",
    "LIBRARY_NAME",
    "merge_settings",
]
