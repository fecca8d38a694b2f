"""
N+1 query detection.

The detector scans a ledger once per flush, finds query patterns repeated at
least ``threshold`` times and builds span evidence around each of them: the
two statements before the first repetition, the first and last repetition
with the middle collapsed into a count, and the two statements after.
"""

import logging
from typing import Optional

from .ledger import QueryLedger
from .types import DiagnosticRecord, Offender, QueryRecord, Span, SpanEvidence, SpanType

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 3
CONTEXT_SIZE = 2


class NPlusOneDetector:
    """Detect repeated query patterns in a :class:`QueryLedger`."""

    def __init__(self, threshold: int = DEFAULT_THRESHOLD, context_size: int = CONTEXT_SIZE):
        if threshold < 1:
            raise ValueError(f"threshold must be at least 1, got {threshold}")
        self.threshold = threshold
        self.context_size = context_size

    def detect(self, ledger: Optional[QueryLedger]) -> list[DiagnosticRecord]:
        """
        Return one diagnostic record per offending fingerprint.

        Records come out in the order their fingerprint first appears in the
        ledger. The ledger is only read, so repeated calls give the same
        result.
        """
        if ledger is None:
            return []
        records = ledger.queries()
        if not records:
            return []

        groups: dict[str, list[QueryRecord]] = {}
        for record in records:
            groups.setdefault(record.fingerprint, []).append(record)

        findings = [
            self._build_record(records, occurrences)
            for occurrences in groups.values()
            if len(occurrences) >= self.threshold
        ]
        if findings:
            logger.debug(
                "Detected %s N+1 pattern(s) across %s queries",
                len(findings),
                len(records),
            )
        return findings

    def _build_record(
        self, records: tuple[QueryRecord, ...], occurrences: list[QueryRecord]
    ) -> DiagnosticRecord:
        first = min(occurrences, key=lambda record: record.sequence_index)
        last = max(occurrences, key=lambda record: record.sequence_index)
        count = len(occurrences)
        total_duration = round(sum(record.duration_ms for record in occurrences), 2)

        evidence = SpanEvidence(
            offender=Offender(
                sql=first.normalized_sql,
                count=count,
                total_duration_ms=total_duration,
            ),
            spans=self._build_spans(records, first, last, count),
        )

        return DiagnosticRecord(
            sql=first.sql,
            duration_ms=first.duration_ms,
            duplicate_count=count,
            span_evidence=evidence,
            occurred_at=first.occurred_at,
            caller_file=first.caller_file,
            caller_line=first.caller_line,
            bindings=first.bindings,
        )

    def _build_spans(
        self,
        records: tuple[QueryRecord, ...],
        first: QueryRecord,
        last: QueryRecord,
        count: int,
    ) -> list[Span]:
        ordered = sorted(records, key=lambda record: record.sequence_index)
        before = [r for r in ordered if r.sequence_index < first.sequence_index]
        after = [r for r in ordered if r.sequence_index > last.sequence_index]

        spans: list[Span] = []
        if self.context_size:
            spans.extend(
                Span.from_record(SpanType.PREVIOUS, record)
                for record in before[-self.context_size:]
            )
        spans.append(Span.from_record(SpanType.REPEATING, first))
        if count > 2:
            spans.append(Span.collapsed(count - 2))
        if last.sequence_index != first.sequence_index:
            spans.append(Span.from_record(SpanType.REPEATING, last))
        spans.extend(
            Span.from_record(SpanType.NEXT, record)
            for record in after[: self.context_size]
        )
        return spans


def detect_n_plus_one(ledger: QueryLedger, threshold: int = DEFAULT_THRESHOLD) -> list[DiagnosticRecord]:
    return NPlusOneDetector(threshold=threshold).detect(ledger)


__all__ = ["CONTEXT_SIZE", "DEFAULT_THRESHOLD", "NPlusOneDetector", "detect_n_plus_one"]
