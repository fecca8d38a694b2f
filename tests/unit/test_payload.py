"""
Unit tests for payload assembly and one-shot delivery.
"""

import json
from unittest.mock import Mock, patch

import pytest
from django.http import HttpResponse
from django.test import RequestFactory, override_settings

from telemetry_collector.config import get_telemetry_settings
from telemetry_collector.payload import PayloadCollector
from telemetry_collector.queries import NPlusOneDetector, QueryLedger

pytestmark = pytest.mark.unit


def _collector(token="test-token", **overrides):
    config = {"token": token, **overrides}
    with override_settings(TELEMETRY_COLLECTOR=config):
        settings = get_telemetry_settings()
    return PayloadCollector("trace-1", context="http", settings_loader=lambda: settings)


@pytest.fixture
def post():
    with patch("telemetry_collector.transport.requests.post") as mocked:
        mocked.return_value = Mock(ok=True, status_code=200)
        yield mocked


def _sent_payload(post):
    return json.loads(post.call_args.kwargs["data"])


def test_empty_payload_is_not_sent(post):
    collector = _collector()

    assert collector.has_data() is False
    assert collector.send() is False
    post.assert_not_called()


def test_payload_is_sent_only_once(post):
    collector = _collector()
    collector.add_log({"level": "INFO", "message": "hello"})

    assert collector.send() is True
    assert collector.send() is False
    assert post.call_count == 1

    payload = _sent_payload(post)
    assert payload == {
        "trace_id": "trace-1",
        "context": "http",
        "logs": [{"level": "INFO", "message": "hello"}],
    }


def test_disabled_collector_ignores_data(post):
    collector = _collector(token="")
    collector.add_log({"message": "ignored"})
    collector.add_outgoing_request({"uri": "https://example.com"})
    collector.set_exception({"message": "boom"})

    assert collector.has_data() is False
    assert collector.send() is False
    post.assert_not_called()


def test_collect_records_request_metadata_only():
    collector = _collector()
    request = RequestFactory().post(
        "/api/orders?page=2",
        data={"password": "hunter2"},
        HTTP_USER_AGENT="pytest-agent",
        HTTP_X_FORWARDED_FOR="8.8.8.8, 10.0.0.2",
        REMOTE_ADDR="10.0.0.1",
    )
    response = HttpResponse(b"created", status=201)

    collector.collect(request, response, 1000.0, 1000.25)

    assert collector.incoming_request == {
        "method": "POST",
        "uri": "/api/orders?page=2",
        "ip_address": "8.8.8.8",
        "user_agent": "pytest-agent",
        "status_code": 201,
        "duration": 250,
    }


def test_replace_queries_serializes_findings(post):
    ledger = QueryLedger()
    for user_id in range(3):
        ledger.log(f"SELECT * FROM users WHERE id = {user_id}", 1.0)

    collector = _collector()
    collector.replace_queries(NPlusOneDetector().detect(ledger))
    collector.send()

    queries = _sent_payload(post)["queries"]
    assert len(queries) == 1
    assert queries[0]["duplicate_count"] == 3
    assert queries[0]["is_n1"] is True


def test_add_query_appends_finding(post):
    ledger = QueryLedger()
    for user_id in range(3):
        ledger.log(f"SELECT * FROM users WHERE id = {user_id}", 1.0)
    (finding,) = NPlusOneDetector().detect(ledger)

    collector = _collector()
    collector.add_query(finding)
    collector.send()

    queries = _sent_payload(post)["queries"]
    assert [query["duplicate_count"] for query in queries] == [3]


def test_sent_payload_is_redacted(post):
    collector = _collector()
    collector.add_log({"message": "login", "context": {"password": "hunter2", "email": "a@b.com"}})

    collector.send()

    context = _sent_payload(post)["logs"][0]["context"]
    assert "password" not in context
    assert context["email"] == "*******"


def test_clear_resets_state(post):
    collector = _collector()
    collector.add_log({"message": "one"})
    collector.send()
    collector.clear()

    assert collector.has_data() is False
    assert collector.sent is False
