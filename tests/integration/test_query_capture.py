"""
Integration tests for capturing real database queries.
"""

import contextvars
from unittest.mock import Mock, patch

import pytest
from django.contrib.auth import get_user_model
from django.db import connection

from telemetry_collector.context import (
    discard_unit,
    finish_unit,
    query_hook,
    start_unit,
    telemetry_unit,
)

pytestmark = [pytest.mark.integration, pytest.mark.django_db]


@pytest.fixture
def post():
    with patch("telemetry_collector.transport.requests.post") as mocked:
        mocked.return_value = Mock(ok=True, status_code=200)
        yield mocked


def test_orm_queries_are_logged_with_bindings_and_caller():
    User = get_user_model()
    unit = start_unit(name="orm")
    try:
        for user_id in (11, 12):
            User.objects.filter(pk=user_id).exists()
        records = unit.ledger.queries()
    finally:
        discard_unit(unit)

    assert [record.sequence_index for record in records] == [1, 2]
    assert records[0].fingerprint == records[1].fingerprint
    assert records[0].bindings[0] == 11
    assert records[0].duration_ms >= 0
    assert records[0].caller_file.endswith("test_query_capture.py")
    assert records[0].caller_line > 0


def test_queries_after_unit_ends_are_not_logged():
    unit = start_unit(name="short")
    discard_unit(unit)

    with connection.cursor() as cursor:
        cursor.execute("SELECT 1")

    assert len(unit.ledger) == 0


def test_raw_cursor_repetition_is_detected(post):
    with telemetry_unit(name="raw") as unit:
        with connection.cursor() as cursor:
            for value in range(3):
                cursor.execute("SELECT %s", [value])
        findings = unit.detector.detect(unit.ledger)

    assert len(findings) == 1
    assert findings[0].duplicate_count == 3
    assert findings[0].bindings == (0,)
    post.assert_called_once()


def test_finish_unit_clears_the_ledger(post):
    unit = start_unit(name="cleanup")
    get_user_model().objects.count()
    finish_unit(unit)

    assert len(unit.ledger) == 0
    assert unit.query_collector.installed is False



def _execute(sql):
    with connection.cursor() as cursor:
        cursor.execute(sql)


def _statements(unit):
    return [record.sql for record in unit.ledger.queries()]


def test_units_sharing_a_thread_keep_separate_ledgers():
    first_context = contextvars.copy_context()
    second_context = contextvars.copy_context()
    first = first_context.run(start_unit, name="first")
    second = second_context.run(start_unit, name="second")

    first_context.run(_execute, "SELECT 1")
    second_context.run(_execute, "SELECT 2")
    first_statements = _statements(first)
    first_context.run(discard_unit, first)

    second_context.run(_execute, "SELECT 3")
    second_statements = _statements(second)
    second_context.run(discard_unit, second)

    assert first_statements == ["SELECT 1"]
    assert second_statements == ["SELECT 2", "SELECT 3"]
    assert connection.execute_wrappers.count(query_hook) == 1


def test_nested_unit_records_only_its_own_queries():
    outer = start_unit(name="outer")
    try:
        _execute("SELECT 1")
        inner = start_unit(name="inner")
        _execute("SELECT 2")
        inner_statements = _statements(inner)
        discard_unit(inner)
        _execute("SELECT 3")
        outer_statements = _statements(outer)
    finally:
        discard_unit(outer)

    assert inner_statements == ["SELECT 2"]
    assert outer_statements == ["SELECT 1", "SELECT 3"]


def test_query_hook_survives_other_execute_wrappers():
    calls = []

    def counting_wrapper(execute, sql, params, many, context):
        calls.append(sql)
        return execute(sql, params, many, context)

    unit = start_unit(name="wrapped")
    try:
        with connection.execute_wrapper(counting_wrapper):
            _execute("SELECT 1")
        _execute("SELECT 2")
        statements = _statements(unit)
    finally:
        discard_unit(unit)

    assert calls == ["SELECT 1"]
    assert statements == ["SELECT 1", "SELECT 2"]
    assert query_hook in connection.execute_wrappers
