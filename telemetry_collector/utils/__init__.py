"""
Utility modules for the telemetry collector.
"""

from .coercion import coerce_bool, coerce_int, coerce_optional_str, coerce_str_list
from .frames import (
    is_application_file,
    is_third_party_file,
    relative_path,
    resolve_caller,
)
from .network import get_client_ip, is_public_ip

__all__ = [
    "coerce_bool",
    "coerce_int",
    "coerce_optional_str",
    "coerce_str_list",
    "get_client_ip",
    "is_application_file",
    "is_public_ip",
    "is_third_party_file",
    "relative_path",
    "resolve_caller",
]
