"""
Django database hook feeding a query ledger.

Each connection carries a single hook, added once and never removed. The hook
asks a resolver for the collector of the active unit of work and records the
statement there only, so units sharing a thread (ASGI runs every sync view
and ORM call on one thread) never see each other's queries.
"""

import logging
import time
from typing import Callable, Iterable, Optional

from django.db import connections

from ..utils.frames import DEFAULT_FRAME_LIMIT, resolve_caller
from .ledger import QueryLedger

logger = logging.getLogger(__name__)


class QueryCollector:
    """Time statements routed to it and log them into ``ledger``."""

    def __init__(
        self,
        ledger: QueryLedger,
        caller_ignore_paths: Iterable[str] = (),
        frame_limit: int = DEFAULT_FRAME_LIMIT,
    ):
        self.ledger = ledger
        self.caller_ignore_paths = tuple(caller_ignore_paths)
        self.frame_limit = frame_limit
        self._installed = False

    def execute_wrapper(self, execute, sql, params, many, context):
        start = time.perf_counter()
        try:
            return execute(sql, params, many, context)
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            self.record(sql, duration_ms, params)

    def record(self, sql, duration_ms: float, params=None) -> None:
        try:
            caller_file, caller_line = resolve_caller(
                limit=self.frame_limit, ignore_paths=self.caller_ignore_paths
            )
        except Exception:
            logger.debug("Caller resolution failed", exc_info=True)
            caller_file, caller_line = None, None
        self.ledger.log(
            sql,
            duration_ms,
            caller_file=caller_file,
            caller_line=caller_line,
            bindings=params,
        )

    def install(self) -> None:
        """Start accepting statements from the connection hook."""
        self._installed = True

    def uninstall(self) -> None:
        self._installed = False

    @property
    def installed(self) -> bool:
        return self._installed


def make_query_hook(resolver: Callable[[], Optional[QueryCollector]]) -> Callable:
    """
    Build an ``execute_wrapper`` hook delegating to ``resolver()``.

    Statements run while the resolver returns None, or an uninstalled
    collector, pass straight through.
    """

    def query_hook(execute, sql, params, many, context):
        collector = resolver()
        if collector is None or not collector.installed:
            return execute(sql, params, many, context)
        return collector.execute_wrapper(execute, sql, params, many, context)

    return query_hook


def add_query_hook(connection, hook: Callable) -> bool:
    """Add ``hook`` to ``connection`` unless it is already there."""
    wrappers = getattr(connection, "execute_wrappers", None)
    if wrappers is None or hook in wrappers:
        return False
    # Kept first so ``execute_wrapper()`` blocks, which pop the last entry on
    # exit, never remove it.
    wrappers.insert(0, hook)
    return True


def ensure_query_hook(hook: Callable, aliases: Optional[Iterable[str]] = None) -> None:
    """Add ``hook`` to every configured connection of the current thread."""
    for alias in aliases or connections:
        add_query_hook(connections[alias], hook)


__all__ = ["QueryCollector", "add_query_hook", "ensure_query_hook", "make_query_hook"]
