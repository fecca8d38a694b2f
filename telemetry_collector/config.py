"""Configuration helpers for the telemetry collector."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Optional

from django.conf import settings as django_settings
from django.core.exceptions import ImproperlyConfigured

from .defaults import (
    DEFAULT_ENDPOINT,
    DEFAULT_MASK_VALUE,
    ENV_ENABLED,
    ENV_ENDPOINT,
    ENV_TOKEN,
    LIBRARY_DEFAULTS,
    merge_settings,
)
from .utils.coercion import (
    coerce_bool,
    coerce_int,
    coerce_optional_str,
    coerce_str_list,
)

SETTINGS_NAME = "TELEMETRY_COLLECTOR"


@dataclass(frozen=True)
class RedactionSettings:
    filter_path: Optional[str] = None
    mask_value: str = DEFAULT_MASK_VALUE
    exclude: list[str] = field(default_factory=list)
    mask: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class TelemetrySettings:
    enabled: bool = True
    token: Optional[str] = None
    endpoint: str = DEFAULT_ENDPOINT
    timeout_seconds: int = 5
    environment: Optional[str] = None
    include_paths: list[str] = field(default_factory=list)
    exclude_paths: list[str] = field(default_factory=list)
    capture_queries: bool = True
    n_plus_one_threshold: int = 3
    caller_ignore_paths: list[str] = field(default_factory=list)
    caller_frame_limit: int = 50
    capture_logs: bool = True
    log_level: str = "INFO"
    instrument_requests: bool = True
    capture_uncaught: bool = True
    code_context_lines: int = 5
    redaction: RedactionSettings = field(default_factory=RedactionSettings)

    @property
    def is_active(self) -> bool:
        """Collection only happens when enabled and a token is configured."""
        return bool(self.enabled and self.token)


def telemetry_enabled(settings: Optional[TelemetrySettings] = None) -> bool:
    if settings is None:
        settings = get_telemetry_settings()
    return settings.is_active


def get_telemetry_settings() -> TelemetrySettings:
    external = getattr(django_settings, SETTINGS_NAME, None)
    if external is not None and not isinstance(external, dict):
        raise ImproperlyConfigured(f"{SETTINGS_NAME} must be a dict")
    merged = merge_settings(LIBRARY_DEFAULTS, external or {})
    return _build_settings(merged)


def _build_settings(config: dict[str, Any]) -> TelemetrySettings:
    path_filters = config.get("path_filters") or {}
    query_settings = config.get("query_settings") or {}
    log_settings = config.get("log_settings") or {}
    http_settings = config.get("http_settings") or {}
    exception_settings = config.get("exception_settings") or {}

    threshold = _coerce_threshold(query_settings.get("n_plus_one_threshold", 3))

    return TelemetrySettings(
        enabled=_resolve_enabled(config.get("enabled", True)),
        token=coerce_optional_str(config.get("token")) or coerce_optional_str(
            os.environ.get(ENV_TOKEN)
        ),
        endpoint=_resolve_endpoint(config.get("endpoint")),
        timeout_seconds=coerce_int(config.get("timeout_seconds"), 5) or 5,
        environment=coerce_optional_str(config.get("environment"))
        or coerce_optional_str(getattr(django_settings, "ENVIRONMENT", None)),
        include_paths=coerce_str_list(path_filters.get("include")),
        exclude_paths=coerce_str_list(path_filters.get("exclude")),
        capture_queries=coerce_bool(query_settings.get("capture_queries"), True),
        n_plus_one_threshold=threshold,
        caller_ignore_paths=coerce_str_list(query_settings.get("caller_ignore_paths")),
        caller_frame_limit=max(50, coerce_int(query_settings.get("caller_frame_limit"), 50)),
        capture_logs=coerce_bool(log_settings.get("capture_logs"), True),
        log_level=str(log_settings.get("level") or "INFO").upper(),
        instrument_requests=coerce_bool(http_settings.get("instrument_requests"), True),
        capture_uncaught=coerce_bool(exception_settings.get("capture_uncaught"), True),
        code_context_lines=max(0, coerce_int(exception_settings.get("code_context_lines"), 5)),
        redaction=_build_redaction(config.get("redaction") or {}),
    )


def _resolve_enabled(value: Any) -> bool:
    env_value = os.environ.get(ENV_ENABLED)
    if env_value is not None and env_value.strip():
        return coerce_bool(value, True) and coerce_bool(env_value, True)
    return coerce_bool(value, True)


def _resolve_endpoint(value: Any) -> str:
    return (
        coerce_optional_str(value)
        or coerce_optional_str(os.environ.get(ENV_ENDPOINT))
        or DEFAULT_ENDPOINT
    )


def _coerce_threshold(value: Any) -> int:
    try:
        threshold = int(value)
    except (TypeError, ValueError):
        raise ImproperlyConfigured(
            f"n_plus_one_threshold must be an integer, got {value!r}"
        )
    if threshold < 1:
        raise ImproperlyConfigured(
            f"n_plus_one_threshold must be at least 1, got {threshold}"
        )
    return threshold


def _build_redaction(config: dict[str, Any]) -> RedactionSettings:
    return RedactionSettings(
        filter_path=coerce_optional_str(config.get("filter")),
        mask_value=str(config.get("mask_value", DEFAULT_MASK_VALUE)),
        exclude=coerce_str_list(config.get("exclude"), lower=True),
        mask=coerce_str_list(config.get("mask"), lower=True),
    )


__all__ = [
    "RedactionSettings",
    "SETTINGS_NAME",
    "TelemetrySettings",
    "get_telemetry_settings",
    "telemetry_enabled",
]
