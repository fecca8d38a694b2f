"""
Unit tests for N+1 detection and span evidence.
"""

import pytest

from telemetry_collector.queries import (
    NPlusOneDetector,
    SpanType,
    detect_n_plus_one,
    normalize_sql,
)

pytestmark = pytest.mark.unit

USERS = "SELECT * FROM users WHERE id = {}"
POSTS = "SELECT * FROM posts WHERE user_id = {}"


def _span_summary(record):
    return [
        (span.span_type, span.index, span.collapsed_count)
        for span in record.span_evidence.spans
    ]


def test_empty_or_missing_ledger_yields_nothing(ledger):
    detector = NPlusOneDetector()
    assert detector.detect(ledger) == []
    assert detector.detect(None) == []


def test_three_occurrences_produce_one_record(log_queries):
    ledger = log_queries(
        (USERS.format(1), 0.5),
        (USERS.format(2), 0.6),
        (USERS.format(3), 0.7),
    )

    findings = detect_n_plus_one(ledger)

    assert len(findings) == 1
    record = findings[0]
    assert record.duplicate_count == 3
    assert record.is_n1 is True
    assert _span_summary(record) == [
        (SpanType.REPEATING, 1, None),
        (SpanType.REPEATING_COLLAPSED, None, 1),
        (SpanType.REPEATING, 3, None),
    ]


def test_span_evidence_around_repeated_pattern(log_queries):
    ledger = log_queries(
        (USERS.format(1), 0.5),
        (POSTS.format(1), 1.0),
        (POSTS.format(2), 1.1),
        (POSTS.format(3), 1.2),
        (POSTS.format(4), 0.9),
        ("SELECT * FROM comments", 0.4),
    )

    findings = NPlusOneDetector().detect(ledger)

    assert len(findings) == 1
    record = findings[0]
    assert record.duplicate_count == 4
    assert record.sql == POSTS.format(1)
    assert record.duration_ms == 1.0

    offender = record.span_evidence.offender
    assert offender.count == 4
    assert offender.total_duration_ms == 4.2
    assert offender.sql == normalize_sql(POSTS.format(1))

    assert _span_summary(record) == [
        (SpanType.PREVIOUS, 1, None),
        (SpanType.REPEATING, 2, None),
        (SpanType.REPEATING_COLLAPSED, None, 2),
        (SpanType.REPEATING, 5, None),
        (SpanType.NEXT, 6, None),
    ]
    spans = record.span_evidence.spans
    assert spans[0].sql == normalize_sql(USERS.format(1))
    assert spans[-1].duration_ms == 0.4


def test_distinct_queries_are_not_reported(log_queries):
    ledger = log_queries(
        ("SELECT * FROM users", 0.1),
        ("SELECT * FROM posts", 0.1),
        ("SELECT * FROM comments", 0.1),
    )

    assert detect_n_plus_one(ledger) == []


def test_cleared_records_never_appear_in_evidence(log_queries, ledger):
    log_queries((USERS.format(1), 0.1), (USERS.format(2), 0.1), (USERS.format(3), 0.1))
    ledger.clear()
    log_queries((POSTS.format(1), 0.2), (POSTS.format(2), 0.2), (POSTS.format(3), 0.2))

    findings = detect_n_plus_one(ledger)

    assert len(findings) == 1
    assert findings[0].span_evidence.offender.sql == normalize_sql(POSTS.format(1))
    assert [span.index for span in findings[0].span_evidence.spans if span.index] == [1, 3]


def test_threshold_boundary(log_queries):
    ledger = log_queries((USERS.format(1), 0.1), (USERS.format(2), 0.1))

    assert NPlusOneDetector(threshold=3).detect(ledger) == []

    findings = NPlusOneDetector(threshold=2).detect(ledger)
    assert len(findings) == 1
    assert findings[0].duplicate_count == 2
    assert _span_summary(findings[0]) == [
        (SpanType.REPEATING, 1, None),
        (SpanType.REPEATING, 2, None),
    ]


def test_single_occurrence_with_threshold_one_has_single_repeating_span(log_queries):
    ledger = log_queries(("SELECT * FROM users", 0.1))

    findings = NPlusOneDetector(threshold=1).detect(ledger)

    assert _span_summary(findings[0]) == [(SpanType.REPEATING, 1, None)]


def test_context_is_limited_to_two_nearest_statements(log_queries):
    ledger = log_queries(
        ("SELECT * FROM a", 0.1),
        ("SELECT * FROM b", 0.1),
        ("SELECT * FROM c", 0.1),
        (USERS.format(1), 0.1),
        (USERS.format(2), 0.1),
        (USERS.format(3), 0.1),
        ("SELECT * FROM d", 0.1),
        ("SELECT * FROM e", 0.1),
        ("SELECT * FROM f", 0.1),
    )

    record = detect_n_plus_one(ledger)[0]

    previous = [span.index for span in record.span_evidence.spans if span.span_type is SpanType.PREVIOUS]
    following = [span.index for span in record.span_evidence.spans if span.span_type is SpanType.NEXT]
    assert previous == [2, 3]
    assert following == [7, 8]


def test_no_context_before_or_after(log_queries):
    ledger = log_queries((USERS.format(1), 0.1), (USERS.format(2), 0.1), (USERS.format(3), 0.1))

    span_types = {span.span_type for span in detect_n_plus_one(ledger)[0].span_evidence.spans}

    assert SpanType.PREVIOUS not in span_types
    assert SpanType.NEXT not in span_types


def test_patterns_are_reported_in_first_seen_order(log_queries):
    ledger = log_queries(
        (POSTS.format(1), 0.1),
        (USERS.format(1), 0.1),
        (USERS.format(2), 0.1),
        (POSTS.format(2), 0.1),
        (USERS.format(3), 0.1),
        (POSTS.format(3), 0.1),
    )

    findings = detect_n_plus_one(ledger)

    assert [record.sql for record in findings] == [POSTS.format(1), USERS.format(1)]


def test_detection_is_repeatable(log_queries):
    ledger = log_queries((USERS.format(1), 0.1), (USERS.format(2), 0.2), (USERS.format(3), 0.3))
    detector = NPlusOneDetector()

    assert detector.detect(ledger) == detector.detect(ledger)
    assert len(ledger) == 3


def test_individual_span_durations_keep_precision(log_queries):
    ledger = log_queries((USERS.format(1), 0.123456), (USERS.format(2), 0.1), (USERS.format(3), 0.1))

    record = detect_n_plus_one(ledger)[0]

    assert record.span_evidence.spans[0].duration_ms == 0.123456
    assert record.span_evidence.offender.total_duration_ms == 0.32


def test_caller_gaps_pass_through(ledger):
    for user_id in range(3):
        ledger.log(USERS.format(user_id), 0.1, caller_file=None, caller_line=None)

    record = detect_n_plus_one(ledger)[0]

    assert record.caller_file is None
    assert record.caller_line is None


@pytest.mark.parametrize("threshold", [0, -1])
def test_invalid_threshold_is_rejected(threshold):
    with pytest.raises(ValueError):
        NPlusOneDetector(threshold=threshold)


def test_record_serialization(ledger):
    for user_id in range(1, 4):
        ledger.log(USERS.format(user_id), 1.5, "app/views.py", 30, bindings=[user_id])

    data = detect_n_plus_one(ledger)[0].to_dict()

    assert data["sql"] == USERS.format(1)
    assert data["bindings"] == [1]
    assert data["duration"] == 1.5
    assert data["file_path"] == "app/views.py"
    assert data["line_number"] == 30
    assert data["is_n1"] is True
    assert data["duplicate_count"] == 3
    assert data["span_evidence"]["offender"] == {
        "sql": normalize_sql(USERS.format(1)),
        "count": 3,
        "total_duration": 4.5,
    }
    assert data["span_evidence"]["spans"][1] == {"type": "repeating_collapsed", "collapsed_count": 1}
    assert data["span_evidence"]["spans"][0]["type"] == "repeating"
