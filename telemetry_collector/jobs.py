"""
Unit-of-work boundaries for management commands and queue jobs.
"""

import functools
import os
import sys
from typing import Callable, Optional

from .context import UNIT_CONSOLE, UNIT_HTTP, UNIT_QUEUE, telemetry_unit
from .defaults import ENV_QUEUE_WORKER
from .utils.coercion import coerce_bool

# Substrings of the command line that identify a queue worker process.
QUEUE_WORKER_MARKERS = (
    "celery",
    "rqworker",
    "rq worker",
    "run_huey",
    "dramatiq",
    "qcluster",
    "process_tasks",
)


def detect_context(argv: Optional[list[str]] = None) -> str:
    """Guess whether the process serves HTTP, runs a command or works a queue."""
    if coerce_bool(os.environ.get(ENV_QUEUE_WORKER), False):
        return UNIT_QUEUE
    if argv is None:
        argv = list(getattr(sys, "argv", []) or [])
    command_line = " ".join(os.path.basename(arg) if i == 0 else arg for i, arg in enumerate(argv))
    if any(marker in command_line for marker in QUEUE_WORKER_MARKERS):
        return UNIT_QUEUE
    if "runserver" in command_line or "gunicorn" in command_line or "uvicorn" in command_line:
        return UNIT_HTTP
    if argv:
        return UNIT_CONSOLE
    return UNIT_HTTP


class TelemetryCommandMixin:
    """
    Mixin for ``BaseCommand`` subclasses: each invocation is a console unit.

        class Command(TelemetryCommandMixin, BaseCommand):
            ...
    """

    def execute(self, *args, **options):
        name = self.__class__.__module__.rsplit(".", 1)[-1]
        with telemetry_unit(kind=UNIT_CONSOLE, name=name):
            return super().execute(*args, **options)


def track_job(name: Optional[str] = None) -> Callable:
    """
    Decorator turning every call of a queue job into one unit of work.

    Args:
        name: Job name reported with the payload (defaults to the function name)
    """

    def decorator(func: Callable) -> Callable:
        job_name = name or getattr(func, "__qualname__", func.__name__)

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with telemetry_unit(kind=UNIT_QUEUE, name=job_name):
                return func(*args, **kwargs)

        return wrapper

    return decorator


__all__ = [
    "QUEUE_WORKER_MARKERS",
    "TelemetryCommandMixin",
    "detect_context",
    "track_job",
]
