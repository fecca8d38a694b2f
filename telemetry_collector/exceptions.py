"""
Exception capture.

Exceptions are turned into a structured description (stable hash, message,
origin and a stack trace annotated with source excerpts) and attached to the
current unit of work. Outside a unit the exception is sent on its own.
"""

from __future__ import annotations

import hashlib
import linecache
import logging
import platform
import sys
import traceback
from typing import Any, Optional

import django
from django.utils import timezone

from .config import get_telemetry_settings
from .utils.frames import is_application_file, relative_path

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_LINES = 5


def parse_exception(exception: BaseException, context_lines: Optional[int] = None) -> dict[str, Any]:
    settings = get_telemetry_settings()
    if context_lines is None:
        context_lines = settings.code_context_lines

    frames = list(traceback.walk_tb(exception.__traceback__))
    if frames:
        origin_frame, origin_line = frames[-1]
        file_path = origin_frame.f_code.co_filename
        line_number = origin_line
    else:
        file_path, line_number = None, None

    class_name = _qualified_class_name(exception)
    return {
        "hash": generate_exception_hash(class_name, file_path, line_number),
        "message": str(exception),
        "class": class_name,
        "file_path": relative_path(file_path),
        "line_number": line_number,
        "code": getattr(exception, "code", None),
        "stack_trace": prepare_stack_trace(frames, context_lines),
        "timestamp": timezone.now().isoformat(),
        "context": {
            "environment": settings.environment,
            "python_version": platform.python_version(),
            "django_version": django.get_version(),
        },
    }


def generate_exception_hash(
    class_name: str, file_path: Optional[str], line_number: Optional[int]
) -> str:
    """sha256 over class, origin file and line: stable across occurrences."""
    raw = f"{class_name}|{file_path or ''}|{line_number or 0}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def prepare_stack_trace(frames, context_lines: int = DEFAULT_CONTEXT_LINES) -> list[dict[str, Any]]:
    """Describe ``(frame, lineno)`` pairs innermost-first, without locals."""
    trace = []
    for frame, lineno in reversed(list(frames)):
        filename = frame.f_code.co_filename
        trace.append(
            {
                "file": relative_path(filename) or "",
                "line": lineno,
                "function": frame.f_code.co_name,
                "class": _frame_class_name(frame),
                "in_app": is_application_file(filename),
                "code_context": extract_code_context(filename, lineno, context_lines),
            }
        )
    return trace


def extract_code_context(
    filename: str, line_number: int, context_lines: int = DEFAULT_CONTEXT_LINES
) -> Optional[dict[str, Any]]:
    """Return the source lines around ``line_number``, or None when unreadable."""
    if not filename or not line_number:
        return None
    lines = linecache.getlines(filename)
    if not lines:
        return None

    start = max(1, line_number - context_lines)
    end = min(len(lines), line_number + context_lines)
    if start > end:
        return None
    return {
        "lines": [
            {
                "line_number": number,
                "code": lines[number - 1].rstrip("\n"),
                "is_error_line": number == line_number,
            }
            for number in range(start, end + 1)
        ],
        "context_start": start,
        "context_end": end,
    }


def capture_exception(exception: BaseException, unit=None) -> None:
    """
    Attach ``exception`` to ``unit`` (default: the current unit).

    Without an active unit a standalone payload is sent right away, which is
    how failures outside requests, commands and jobs still get reported.
    """
    from .context import current_unit, finish_unit, start_unit

    settings = get_telemetry_settings()
    if not settings.is_active:
        return

    try:
        data = parse_exception(exception, settings.code_context_lines)
    except Exception as exc:
        logger.warning("Failed to parse exception %r: %s", exception, exc)
        return

    target = unit or current_unit()
    if target is not None:
        target.payload.set_exception(data)
        return

    from .jobs import detect_context

    standalone = start_unit(kind=detect_context(), name=type(exception).__name__)
    standalone.payload.set_exception(data)
    finish_unit(standalone)


_previous_excepthook = None


def install_excepthook() -> None:
    """Report uncaught exceptions before the interpreter prints them."""
    global _previous_excepthook
    if _previous_excepthook is not None:
        return
    _previous_excepthook = sys.excepthook

    def _telemetry_excepthook(exc_type, exc_value, exc_traceback):
        if exc_value is not None and not isinstance(exc_value, KeyboardInterrupt):
            try:
                capture_exception(exc_value)
            except Exception:
                logger.debug("Uncaught exception capture failed", exc_info=True)
        _previous_excepthook(exc_type, exc_value, exc_traceback)

    sys.excepthook = _telemetry_excepthook


def uninstall_excepthook() -> None:
    global _previous_excepthook
    if _previous_excepthook is None:
        return
    sys.excepthook = _previous_excepthook
    _previous_excepthook = None


def _qualified_class_name(exception: BaseException) -> str:
    cls = type(exception)
    module = cls.__module__
    if module in ("builtins", "__main__"):
        return cls.__qualname__
    return f"{module}.{cls.__qualname__}"


def _frame_class_name(frame) -> str:
    local_vars = frame.f_locals
    if "self" in local_vars:
        return type(local_vars["self"]).__name__
    owner = local_vars.get("cls")
    if isinstance(owner, type):
        return owner.__name__
    return ""


__all__ = [
    "capture_exception",
    "extract_code_context",
    "generate_exception_hash",
    "install_excepthook",
    "parse_exception",
    "prepare_stack_trace",
    "uninstall_excepthook",
]
