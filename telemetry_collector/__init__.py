"""
Telemetry collector for Django projects.

Collects request metadata, log records, outgoing HTTP calls, exceptions and
N+1 query findings per unit of work (HTTP request, management command or
queue job) and ships them to an ingestion endpoint.
"""

__version__ = "0.1.0"

from .context import current_unit, telemetry_unit
from .exceptions import capture_exception
from .jobs import TelemetryCommandMixin, detect_context, track_job
from .queries import NPlusOneDetector, QueryLedger, detect_n_plus_one, normalize_sql

__all__ = [
    "NPlusOneDetector",
    "QueryLedger",
    "TelemetryCommandMixin",
    "capture_exception",
    "current_unit",
    "detect_context",
    "detect_n_plus_one",
    "normalize_sql",
    "telemetry_unit",
    "track_job",
]
