"""
Unit-of-work lifecycle.

Every HTTP request, management command or queue job runs inside its own
:class:`UnitOfWork`, which owns a query ledger and a payload collector. The
active unit is tracked in a context variable, so concurrent threads and
asyncio tasks never see each other's queries.
"""

from __future__ import annotations

import contextvars
import logging
import time
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional

from .config import TelemetrySettings, get_telemetry_settings
from .payload import PayloadCollector
from .queries.collector import QueryCollector, add_query_hook, ensure_query_hook, make_query_hook
from .queries.detector import NPlusOneDetector
from .queries.ledger import QueryLedger

logger = logging.getLogger(__name__)

UNIT_HTTP = "http"
UNIT_CONSOLE = "console"
UNIT_QUEUE = "queue"

_current_unit: contextvars.ContextVar[Optional["UnitOfWork"]] = contextvars.ContextVar(
    "telemetry_collector_unit", default=None
)


class UnitOfWork:
    """State collected for one request, command or job."""

    def __init__(
        self,
        kind: str = UNIT_HTTP,
        name: Optional[str] = None,
        settings: Optional[TelemetrySettings] = None,
    ):
        self.settings = settings or get_telemetry_settings()
        self.kind = kind
        self.name = name
        self.trace_id = str(uuid.uuid4())
        self.start_time = time.time()
        self.ledger = QueryLedger()
        self.payload = PayloadCollector(
            self.trace_id, context=kind, settings_loader=lambda: self.settings
        )
        self.detector = NPlusOneDetector(threshold=self.settings.n_plus_one_threshold)
        self.query_collector = QueryCollector(
            self.ledger,
            caller_ignore_paths=self.settings.caller_ignore_paths,
            frame_limit=self.settings.caller_frame_limit,
        )
        self.parent: Optional[UnitOfWork] = None
        self.finished = False

    def __repr__(self) -> str:
        return f"<UnitOfWork {self.kind}:{self.name or '-'} {self.trace_id}>"

    def flush(self) -> bool:
        """Run N+1 detection, hand each finding to the payload and send it."""
        findings = self.detector.detect(self.ledger)
        self.payload.replace_queries(())
        for finding in findings:
            self.payload.add_query(finding)
        return self.payload.send()

    def clear(self) -> None:
        self.ledger.clear()
        self.payload.clear()


def current_unit() -> Optional[UnitOfWork]:
    return _current_unit.get()


def _active_query_collector() -> Optional[QueryCollector]:
    unit = _current_unit.get()
    if unit is None or unit.finished:
        return None
    return unit.query_collector


# Shared by every connection; routes each statement to the current unit only.
query_hook = make_query_hook(_active_query_collector)


def hook_new_connection(sender, connection, **kwargs) -> None:
    """``connection_created`` receiver adding the query hook to new connections."""
    add_query_hook(connection, query_hook)


def start_unit(
    kind: str = UNIT_HTTP,
    name: Optional[str] = None,
    settings: Optional[TelemetrySettings] = None,
) -> UnitOfWork:
    """Create a fresh unit, hook the database and make it current."""
    unit = UnitOfWork(kind=kind, name=name, settings=settings)
    unit.clear()
    if unit.settings.is_active and unit.settings.capture_queries:
        try:
            ensure_query_hook(query_hook)
            unit.query_collector.install()
        except Exception as exc:
            logger.warning("Could not install query collector: %s", exc)
    unit.parent = _current_unit.get()
    _current_unit.set(unit)
    return unit


def finish_unit(unit: Optional[UnitOfWork]) -> bool:
    """Flush ``unit`` and release it. Returns True when a payload was sent."""
    if unit is None or unit.finished:
        return False
    try:
        return unit.flush()
    except Exception as exc:
        logger.warning("Failed to flush telemetry for %r: %s", unit, exc)
        return False
    finally:
        discard_unit(unit)


def discard_unit(unit: Optional[UnitOfWork]) -> None:
    """Release ``unit`` without sending anything."""
    if unit is None or unit.finished:
        return
    unit.finished = True
    unit.query_collector.uninstall()
    unit.clear()
    if _current_unit.get() is unit:
        _current_unit.set(unit.parent)


@contextmanager
def telemetry_unit(
    kind: str = UNIT_CONSOLE, name: Optional[str] = None
) -> Iterator[UnitOfWork]:
    """
    Run a block of code as one unit of work.

    Exceptions escaping the block are captured into the payload and
    re-raised once the unit has been flushed.
    """
    unit = start_unit(kind=kind, name=name)
    try:
        yield unit
    except Exception as exc:
        from .exceptions import capture_exception

        capture_exception(exc, unit=unit)
        raise
    finally:
        finish_unit(unit)


__all__ = [
    "UNIT_CONSOLE",
    "UNIT_HTTP",
    "UNIT_QUEUE",
    "UnitOfWork",
    "current_unit",
    "discard_unit",
    "finish_unit",
    "hook_new_connection",
    "query_hook",
    "start_unit",
    "telemetry_unit",
]
