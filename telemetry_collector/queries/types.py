"""
Query ledger and N+1 diagnostic types.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class SpanType(Enum):
    """Kinds of entries in a span evidence excerpt."""
    PREVIOUS = "previous"
    REPEATING = "repeating"
    REPEATING_COLLAPSED = "repeating_collapsed"
    NEXT = "next"


@dataclass(frozen=True)
class QueryRecord:
    """One executed SQL statement within a unit of work."""
    sql: str
    normalized_sql: str
    fingerprint: str
    duration_ms: float
    sequence_index: int
    occurred_at: datetime
    caller_file: Optional[str] = None
    caller_line: Optional[int] = None
    bindings: tuple = ()


@dataclass(frozen=True)
class Span:
    span_type: SpanType
    index: Optional[int] = None
    sql: Optional[str] = None
    duration_ms: Optional[float] = None
    collapsed_count: Optional[int] = None

    @classmethod
    def from_record(cls, span_type: SpanType, record: QueryRecord) -> "Span":
        return cls(
            span_type=span_type,
            index=record.sequence_index,
            sql=record.normalized_sql,
            duration_ms=record.duration_ms,
        )

    @classmethod
    def collapsed(cls, collapsed_count: int) -> "Span":
        return cls(
            span_type=SpanType.REPEATING_COLLAPSED,
            collapsed_count=collapsed_count,
        )

    def to_dict(self) -> dict[str, Any]:
        if self.span_type is SpanType.REPEATING_COLLAPSED:
            return {
                "type": self.span_type.value,
                "collapsed_count": self.collapsed_count,
            }
        return {
            "type": self.span_type.value,
            "index": self.index,
            "sql": self.sql,
            "duration": self.duration_ms,
        }


@dataclass(frozen=True)
class Offender:
    sql: str
    count: int
    total_duration_ms: float


@dataclass(frozen=True)
class SpanEvidence:
    """Compact excerpt of the query sequence around a repeated pattern."""
    offender: Offender
    spans: list[Span] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "offender": {
                "sql": self.offender.sql,
                "count": self.offender.count,
                "total_duration": self.offender.total_duration_ms,
            },
            "spans": [span.to_dict() for span in self.spans],
        }


@dataclass(frozen=True)
class DiagnosticRecord:
    """An N+1 finding. ``sql`` and ``duration_ms`` describe the first occurrence."""
    sql: str
    duration_ms: float
    duplicate_count: int
    span_evidence: SpanEvidence
    occurred_at: datetime
    caller_file: Optional[str] = None
    caller_line: Optional[int] = None
    bindings: tuple = ()
    is_n1: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "sql": self.sql,
            "bindings": list(self.bindings),
            "duration": self.duration_ms,
            "file_path": self.caller_file,
            "line_number": self.caller_line,
            "occurred_at": self.occurred_at.isoformat(),
            "is_n1": self.is_n1,
            "duplicate_count": self.duplicate_count,
            "span_evidence": self.span_evidence.to_dict(),
        }
