import pytest

from telemetry_collector import context
from telemetry_collector.queries import QueryLedger


@pytest.fixture(autouse=True)
def isolated_unit():
    """Run every test without a current unit of work."""
    token = context._current_unit.set(None)
    yield
    context._current_unit.reset(token)


@pytest.fixture(autouse=True)
def telemetry_env(monkeypatch):
    for name in (
        "TELEMETRY_COLLECTOR_ENABLED",
        "TELEMETRY_COLLECTOR_TOKEN",
        "TELEMETRY_COLLECTOR_ENDPOINT",
        "TELEMETRY_COLLECTOR_QUEUE_WORKER",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def ledger():
    return QueryLedger()


@pytest.fixture
def log_queries(ledger):
    """Log ``(sql, duration_ms)`` pairs into the ledger fixture."""

    def _log(*statements):
        for sql, duration in statements:
            ledger.log(sql, duration)
        return ledger

    return _log
