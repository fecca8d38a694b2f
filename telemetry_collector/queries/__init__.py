"""
Query capture and N+1 detection package.
"""

from .collector import QueryCollector, add_query_hook, ensure_query_hook, make_query_hook
from .detector import DEFAULT_THRESHOLD, NPlusOneDetector, detect_n_plus_one
from .ledger import QueryLedger, format_bindings
from .normalizer import fingerprint_sql, normalize_sql
from .types import (
    DiagnosticRecord,
    Offender,
    QueryRecord,
    Span,
    SpanEvidence,
    SpanType,
)

__all__ = [
    "DEFAULT_THRESHOLD",
    "DiagnosticRecord",
    "NPlusOneDetector",
    "Offender",
    "QueryCollector",
    "QueryLedger",
    "QueryRecord",
    "Span",
    "SpanEvidence",
    "SpanType",
    "add_query_hook",
    "detect_n_plus_one",
    "ensure_query_hook",
    "fingerprint_sql",
    "format_bindings",
    "make_query_hook",
    "normalize_sql",
]
