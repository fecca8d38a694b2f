"""
Logging handler forwarding records into the current unit of work.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from .context import current_unit

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime", "taskName"}

# Loggers whose records never reach a payload.
_SKIPPED_LOGGERS = ("telemetry_collector", "django.db.backends")


class TelemetryLogHandler(logging.Handler):
    """Attach log records to the active unit's payload."""

    def emit(self, record: logging.LogRecord) -> None:
        if _is_skipped_logger(record.name):
            return
        unit = current_unit()
        if unit is None:
            return
        try:
            unit.payload.add_log(self.prepare_log_data(record))
        except Exception:
            self.handleError(record)

    def prepare_log_data(self, record: logging.LogRecord) -> dict[str, Any]:
        return {
            "level": record.levelname,
            "message": record.getMessage(),
            "context": _extract_context(record),
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "channel": record.name,
            "source_class": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }


def _is_skipped_logger(name: str) -> bool:
    return any(name == prefix or name.startswith(f"{prefix}.") for prefix in _SKIPPED_LOGGERS)


def _extract_context(record: logging.LogRecord) -> dict[str, Any]:
    context = {
        key: value
        for key, value in vars(record).items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    }
    if record.exc_info and record.exc_info[1] is not None:
        context["exception"] = repr(record.exc_info[1])
    return context


_installed_handler = None


def install_log_handler(level: str = "INFO") -> logging.Handler:
    """Attach a single :class:`TelemetryLogHandler` to the root logger."""
    global _installed_handler
    if _installed_handler is not None:
        return _installed_handler
    handler = TelemetryLogHandler(level=level.upper())
    logging.getLogger().addHandler(handler)
    _installed_handler = handler
    return handler


def uninstall_log_handler() -> None:
    global _installed_handler
    if _installed_handler is None:
        return
    logging.getLogger().removeHandler(_installed_handler)
    _installed_handler = None


__all__ = ["TelemetryLogHandler", "install_log_handler", "uninstall_log_handler"]
