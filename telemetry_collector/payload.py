"""
Per-unit payload assembly.

A :class:`PayloadCollector` gathers everything observed during one unit of
work (request metadata, log records, outgoing HTTP calls, N+1 findings and
the exception, if any) and sends it as one JSON document.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Optional

from .config import TelemetrySettings, get_telemetry_settings
from .queries.types import DiagnosticRecord
from .redaction import redact_payload
from .transport import send_payload
from .utils.network import get_client_ip

logger = logging.getLogger(__name__)


class PayloadCollector:
    """Diagnostic sink and payload builder for a single unit of work."""

    def __init__(
        self,
        trace_id: str,
        context: str = "http",
        settings_loader: Callable[[], TelemetrySettings] = get_telemetry_settings,
    ):
        self.trace_id = trace_id
        self.context = context
        self._settings_loader = settings_loader
        self.clear()

    # ------------------------------------------------------------------ #
    # Collection
    # ------------------------------------------------------------------ #
    def is_enabled(self) -> bool:
        return self._settings_loader().is_active

    def collect(self, request, response, start_time: float, end_time: float) -> None:
        """Store metadata describing the incoming request and its response."""
        if not self.is_enabled():
            return

        self.incoming_request = {
            "method": request.method,
            "uri": request.get_full_path(),
            "ip_address": get_client_ip(request),
            "user_agent": request.META.get("HTTP_USER_AGENT"),
            "status_code": getattr(response, "status_code", None) if response is not None else None,
            "duration": round((end_time - start_time) * 1000),
        }

    def add_log(self, log_data: dict[str, Any]) -> None:
        if not self.is_enabled():
            return
        self.logs.append(log_data)

    def add_outgoing_request(self, request_data: dict[str, Any]) -> None:
        if not self.is_enabled():
            return
        self.outgoing_requests.append(request_data)

    def add_query(self, record: DiagnosticRecord) -> None:
        if not self.is_enabled():
            return
        self.queries.append(record)

    def replace_queries(self, records: Iterable[DiagnosticRecord]) -> None:
        """Swap the stored N+1 findings for ``records``."""
        if not self.is_enabled():
            return
        self.queries = list(records)

    def set_exception(self, exception_data: dict[str, Any]) -> None:
        if not self.is_enabled():
            return
        self.exception = exception_data

    def has_data(self) -> bool:
        return bool(
            self.incoming_request
            or self.logs
            or self.outgoing_requests
            or self.queries
            or self.exception
        )

    # ------------------------------------------------------------------ #
    # Delivery
    # ------------------------------------------------------------------ #
    def build_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "trace_id": self.trace_id,
            "context": self.context,
        }
        if self.incoming_request:
            payload["request"] = self.incoming_request
        if self.logs:
            payload["logs"] = list(self.logs)
        if self.outgoing_requests:
            payload["outgoing_requests"] = list(self.outgoing_requests)
        if self.queries:
            payload["queries"] = [record.to_dict() for record in self.queries]
        if self.exception:
            payload["exception"] = self.exception
        return payload

    def send(self) -> bool:
        """Send the payload once. Returns True when it was delivered."""
        settings = self._settings_loader()
        if not settings.is_active or self.sent:
            return False
        if not self.has_data():
            return False

        try:
            payload = redact_payload(self.build_payload(), settings)
        except Exception as exc:
            logger.warning("Failed to build telemetry payload: %s", exc)
            return False

        delivered = send_payload(payload, settings)
        self.sent = True
        return delivered

    def clear(self) -> None:
        self.incoming_request: Optional[dict[str, Any]] = None
        self.logs: list[dict[str, Any]] = []
        self.outgoing_requests: list[dict[str, Any]] = []
        self.queries: list[DiagnosticRecord] = []
        self.exception: Optional[dict[str, Any]] = None
        self.sent = False


__all__ = ["PayloadCollector"]
