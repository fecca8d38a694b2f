"""
SQL normalization and fingerprinting.

Statements are reduced to their structural pattern so that executions of the
same query with different literal values group together. This is pattern
matching, not parsing: dialect-specific quoting beyond single-quoted literals
is left alone.
"""

import hashlib
import re

# Only single-quoted string *literals* are values. Double-quoted identifiers
# like "table"."column" are kept intact.
_RE_STRINGS = re.compile(r"'[^']*'")
# A number counts as a value only after an operator, comma, open paren or
# whitespace, and before a comma, close paren, whitespace or the end.
# Digits inside identifiers (table2, col1) never match.
_RE_NUMBERS = re.compile(r"([=<>!,(\s])\d+(?:\.\d+)?(?=[,)\s]|$)")
_RE_IN_LIST = re.compile(r"\bIN\s*\([^)]+\)", re.IGNORECASE)


def normalize_sql(sql: str) -> str:
    """
    Replace literal values in ``sql`` with ``?`` placeholders.

    >>> normalize_sql("SELECT * FROM users WHERE id = 42")
    'SELECT * FROM users WHERE id = ?'
    >>> normalize_sql("SELECT * FROM posts WHERE id IN (1, 2, 3)")
    'SELECT * FROM posts WHERE id IN (?)'
    """
    if not sql:
        return ""
    normalized = _RE_STRINGS.sub("?", str(sql))
    normalized = _RE_NUMBERS.sub(r"\1?", normalized)
    return _RE_IN_LIST.sub("IN (?)", normalized)


def fingerprint_sql(normalized_sql: str) -> str:
    return hashlib.md5(normalized_sql.encode("utf-8")).hexdigest()


__all__ = ["fingerprint_sql", "normalize_sql"]
