"""Delivery of collected payloads to the ingestion endpoint."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import requests
from django.core.serializers.json import DjangoJSONEncoder

from .config import TelemetrySettings, get_telemetry_settings
from .defaults import LIBRARY_NAME

logger = logging.getLogger(__name__)


def send_payload(payload: dict[str, Any], settings: Optional[TelemetrySettings] = None) -> bool:
    """
    POST ``payload`` to the configured endpoint.

    One attempt only. Failures are logged and reported through the return
    value, never raised, so the host application is not disturbed.
    """
    if settings is None:
        settings = get_telemetry_settings()
    if not settings.token:
        logger.debug("No telemetry token configured; payload dropped")
        return False

    try:
        body = encode_payload(payload)
        response = requests.post(
            settings.endpoint,
            data=body,
            headers=build_headers(settings),
            timeout=settings.timeout_seconds,
        )
    except Exception as exc:
        logger.warning("Telemetry delivery to %s failed: %s", settings.endpoint, exc)
        return False

    if not response.ok:
        logger.warning(
            "Telemetry delivery to %s failed (status %s)",
            settings.endpoint,
            response.status_code,
        )
        return False
    return True


def build_headers(settings: TelemetrySettings) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {settings.token}",
        "Content-Type": "application/json",
        "Accept": "application/json",
        "User-Agent": LIBRARY_NAME,
    }


def encode_payload(payload: dict[str, Any]) -> str:
    try:
        return json.dumps(payload, cls=DjangoJSONEncoder)
    except TypeError:
        return json.dumps(_stringify_payload(payload), cls=DjangoJSONEncoder)


def _stringify_payload(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _stringify_payload(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_stringify_payload(item) for item in value]
    try:
        json.dumps(value, cls=DjangoJSONEncoder)
        return value
    except TypeError:
        return str(value)


def is_telemetry_url(url: str, settings: Optional[TelemetrySettings] = None) -> bool:
    """True when ``url`` points at the ingestion endpoint itself."""
    if not url:
        return False
    if settings is None:
        settings = get_telemetry_settings()
    return str(url).startswith(settings.endpoint)


__all__ = ["build_headers", "encode_payload", "is_telemetry_url", "send_payload"]
