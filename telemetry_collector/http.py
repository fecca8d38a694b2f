"""
Instrumentation of outgoing HTTP calls made with ``requests``.

Only call metadata is recorded (method, URL, status, timing); headers and
bodies are never read.
"""

import logging
import threading
import time

import requests
from django.utils import timezone

from .context import current_unit
from .transport import is_telemetry_url

logger = logging.getLogger(__name__)

_original_send = None
_lock = threading.Lock()


def _record(unit, request, status_code, duration_ms, error=None) -> None:
    data = {
        "method": request.method,
        "uri": request.url,
        "status_code": status_code,
        "duration": round(duration_ms, 2),
        "timestamp": timezone.now().isoformat(),
    }
    if error is not None:
        data["error"] = error
    unit.payload.add_outgoing_request(data)


def _instrumented_send(session, request, **kwargs):
    send = _original_send or requests.Session.send
    unit = current_unit()
    if unit is None or is_telemetry_url(request.url, unit.settings):
        return send(session, request, **kwargs)

    start = time.perf_counter()
    try:
        response = send(session, request, **kwargs)
    except Exception as exc:
        try:
            _record(unit, request, None, (time.perf_counter() - start) * 1000, error=str(exc))
        except Exception:
            logger.debug("Failed to record outgoing request", exc_info=True)
        raise

    try:
        _record(unit, request, response.status_code, (time.perf_counter() - start) * 1000)
    except Exception:
        logger.debug("Failed to record outgoing request", exc_info=True)
    return response


def instrument_requests() -> bool:
    """Wrap ``requests.Session.send``. Returns False when already wrapped."""
    global _original_send
    with _lock:
        if _original_send is not None:
            return False
        _original_send = requests.Session.send
        requests.Session.send = _instrumented_send
    logger.debug("requests instrumentation installed")
    return True


def uninstrument_requests() -> None:
    global _original_send
    with _lock:
        if _original_send is None:
            return
        requests.Session.send = _original_send
        _original_send = None


def is_instrumented() -> bool:
    return _original_send is not None


__all__ = ["instrument_requests", "is_instrumented", "uninstrument_requests"]
