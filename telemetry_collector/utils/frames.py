"""
Stack frame helpers.

Used to attribute a SQL statement to the application code that issued it
and to tell application frames from library frames in stack traces.
"""

import os
import sys
import sysconfig
from typing import Iterable, Iterator, Optional

import django
from django.conf import settings

DEFAULT_FRAME_LIMIT = 50

_PACKAGE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
_DJANGO_DIR = os.path.dirname(os.path.abspath(django.__file__))
_THIRD_PARTY_MARKERS = (
    f"{os.sep}site-packages{os.sep}",
    f"{os.sep}dist-packages{os.sep}",
)


def _stdlib_dirs() -> tuple[str, ...]:
    paths = sysconfig.get_paths()
    dirs = {paths.get("stdlib"), paths.get("platstdlib")}
    return tuple(os.path.abspath(path) for path in dirs if path)


_STDLIB_DIRS = _stdlib_dirs()


def _is_under(path: str, directory: str) -> bool:
    return path == directory or path.startswith(directory.rstrip(os.sep) + os.sep)


def is_third_party_file(filename: str) -> bool:
    """True for files installed as dependencies, Django itself or the stdlib."""
    if not filename or filename.startswith("<"):
        return True
    path = os.path.abspath(filename)
    if any(marker in path for marker in _THIRD_PARTY_MARKERS):
        return True
    if _is_under(path, _DJANGO_DIR):
        return True
    return any(_is_under(path, directory) for directory in _STDLIB_DIRS)


def is_collector_file(filename: str) -> bool:
    return bool(filename) and _is_under(os.path.abspath(filename), _PACKAGE_DIR)


def is_application_file(filename: str, ignore_paths: Iterable[str] = ()) -> bool:
    if is_third_party_file(filename) or is_collector_file(filename):
        return False
    path = os.path.abspath(filename)
    for prefix in ignore_paths:
        if prefix and (prefix in path or _is_under(path, os.path.abspath(prefix))):
            return False
    return True


def relative_path(filename: Optional[str]) -> Optional[str]:
    """Strip the project base directory from ``filename`` when it lives there."""
    if not filename:
        return filename
    base_dir = getattr(settings, "BASE_DIR", None)
    if not base_dir:
        return filename
    base = os.path.abspath(str(base_dir))
    path = os.path.abspath(filename)
    if _is_under(path, base) and path != base:
        return os.path.relpath(path, base)
    return filename


def iter_stack(limit: int = DEFAULT_FRAME_LIMIT, skip: int = 1) -> Iterator[tuple[str, int]]:
    """Yield ``(filename, lineno)`` from the caller outward, at most ``limit`` frames."""
    try:
        frame = sys._getframe(skip + 1)
    except ValueError:
        return
    scanned = 0
    while frame is not None and scanned < limit:
        yield frame.f_code.co_filename, frame.f_lineno
        frame = frame.f_back
        scanned += 1


def resolve_caller(
    frames: Optional[Iterable[tuple[str, int]]] = None,
    limit: int = DEFAULT_FRAME_LIMIT,
    ignore_paths: Iterable[str] = (),
) -> tuple[Optional[str], Optional[int]]:
    """
    Return the first application ``(file, line)`` in ``frames``.

    ``frames`` defaults to the current call stack. Collector, Django,
    standard library and installed-package frames are skipped. At most
    ``limit`` frames are examined; ``(None, None)`` means nothing qualified.
    """
    limit = max(limit, DEFAULT_FRAME_LIMIT)
    if frames is None:
        frames = iter_stack(limit=limit)
    ignore_paths = tuple(ignore_paths)

    for position, (filename, lineno) in enumerate(frames):
        if position >= limit:
            break
        if is_application_file(filename, ignore_paths):
            return relative_path(filename), lineno
    return None, None


__all__ = [
    "DEFAULT_FRAME_LIMIT",
    "is_application_file",
    "is_collector_file",
    "is_third_party_file",
    "iter_stack",
    "relative_path",
    "resolve_caller",
]
