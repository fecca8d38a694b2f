"""
Middleware opening one unit of work per tracked HTTP request.
"""

import fnmatch
import logging
import time
from typing import Iterable

from django.utils.deprecation import MiddlewareMixin

from .config import TelemetrySettings, get_telemetry_settings
from .context import UNIT_HTTP, discard_unit, finish_unit, start_unit
from .exceptions import capture_exception

logger = logging.getLogger(__name__)


class TelemetryMiddleware(MiddlewareMixin):
    """
    Collect queries, logs, outgoing calls and exceptions for each request.

    Add ``"telemetry_collector.middleware.TelemetryMiddleware"`` near the top
    of ``MIDDLEWARE`` so that queries run by later middleware are included.
    """

    def process_request(self, request):
        """Handle the start of a request."""
        settings = get_telemetry_settings()
        if not self.should_track(request, settings):
            return None

        request._telemetry_start_time = time.time()
        request._telemetry_unit = start_unit(
            kind=UNIT_HTTP,
            name=f"{request.method} {request.path}",
            settings=settings,
        )
        return None

    def process_exception(self, request, exception):
        """Attach the exception to the request's payload."""
        unit = getattr(request, "_telemetry_unit", None)
        if unit is None:
            return None
        try:
            capture_exception(exception, unit=unit)
        except Exception:
            logger.debug("Failed to capture request exception", exc_info=True)
        return None

    def process_response(self, request, response):
        """Handle the end of a request."""
        unit = getattr(request, "_telemetry_unit", None)
        if unit is None:
            return response
        request._telemetry_unit = None

        try:
            start_time = getattr(request, "_telemetry_start_time", None) or unit.start_time
            unit.payload.collect(request, response, start_time, time.time())
        except Exception as exc:
            logger.warning("Failed to collect request telemetry: %s", exc)
            discard_unit(unit)
            return response

        finish_unit(unit)
        return response

    def should_track(self, request, settings: TelemetrySettings) -> bool:
        if not settings.is_active:
            return False

        path = request.path.lstrip("/") or "/"
        if any(self.matches_pattern(pattern, path) for pattern in settings.exclude_paths):
            return False
        return any(self.matches_pattern(pattern, path) for pattern in settings.include_paths)

    @staticmethod
    def matches_pattern(pattern: str, path: str) -> bool:
        if pattern == "*":
            return True
        return fnmatch.fnmatchcase(path, pattern.lstrip("/") or "/")


def path_is_tracked(path: str, include: Iterable[str], exclude: Iterable[str]) -> bool:
    """Apply include/exclude path filters outside a request (used by tooling)."""
    normalized = path.lstrip("/") or "/"
    matches = TelemetryMiddleware.matches_pattern
    if any(matches(pattern, normalized) for pattern in exclude):
        return False
    return any(matches(pattern, normalized) for pattern in include)
