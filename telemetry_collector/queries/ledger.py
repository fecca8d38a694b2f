"""
Per-unit-of-work query ledger.
"""

from collections import Counter
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Optional

from django.utils import timezone

from .normalizer import fingerprint_sql, normalize_sql
from .types import QueryRecord

_PASSTHROUGH_TYPES = (str, int, float, bool)


class QueryLedger:
    """
    Ordered, append-only record of the SQL executed by one unit of work.

    Sequence indexes start at 1 and grow by one per logged statement until
    ``clear`` resets them. Pattern counts always mirror the records held.
    """

    def __init__(self):
        self._records: list[QueryRecord] = []
        self._sequence = 0
        self._pattern_counts: Counter = Counter()

    def __len__(self) -> int:
        return len(self._records)

    def log(
        self,
        sql: str,
        duration_ms: float,
        caller_file: Optional[str] = None,
        caller_line: Optional[int] = None,
        bindings: Optional[Iterable[Any]] = None,
    ) -> QueryRecord:
        self._sequence += 1
        sql_text = "" if sql is None else str(sql)
        normalized = normalize_sql(sql_text)
        fingerprint = fingerprint_sql(normalized)

        record = QueryRecord(
            sql=sql_text,
            normalized_sql=normalized,
            fingerprint=fingerprint,
            duration_ms=_coerce_duration(duration_ms),
            sequence_index=self._sequence,
            occurred_at=timezone.now(),
            caller_file=caller_file,
            caller_line=caller_line,
            bindings=format_bindings(bindings),
        )
        self._records.append(record)
        self._pattern_counts[fingerprint] += 1
        return record

    def clear(self) -> None:
        self._records = []
        self._sequence = 0
        self._pattern_counts = Counter()

    def queries(self) -> tuple[QueryRecord, ...]:
        return tuple(self._records)

    def pattern_counts(self) -> dict[str, int]:
        return dict(self._pattern_counts)


def format_bindings(bindings: Optional[Iterable[Any]]) -> tuple:
    """Render bound parameters into JSON-friendly values."""
    if not bindings:
        return ()
    if isinstance(bindings, (str, bytes)):
        return (_format_binding(bindings),)
    if isinstance(bindings, dict):
        bindings = bindings.values()
    try:
        items = list(bindings)
    except TypeError:
        items = [bindings]
    return tuple(_format_binding(value) for value in items)


def _format_binding(value: Any) -> Any:
    if value is None or isinstance(value, _PASSTHROUGH_TYPES):
        return value
    if isinstance(value, (datetime, date)):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, bytes):
        return f"<{len(value)} bytes>"
    return type(value).__name__


def _coerce_duration(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


__all__ = ["QueryLedger", "format_bindings"]
