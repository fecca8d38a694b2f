"""
Network utilities for the telemetry collector.

This module resolves the originating client address of a request behind
proxies and CDNs.
"""

import ipaddress
from typing import Optional

# Checked in order; the first public address found wins.
FORWARDED_HEADERS = (
    "HTTP_CF_CONNECTING_IP",
    "HTTP_X_FORWARDED_FOR",
    "HTTP_X_FORWARDED",
    "HTTP_X_CLUSTER_CLIENT_IP",
    "HTTP_FORWARDED_FOR",
    "HTTP_FORWARDED",
)


def is_public_ip(value: str) -> bool:
    """True for a syntactically valid, globally routable address."""
    try:
        address = ipaddress.ip_address(value)
    except ValueError:
        return False
    return address.is_global


def get_client_ip(request) -> Optional[str]:
    """
    Resolve the client IP of ``request``.

    Proxy headers are only trusted when their first hop is a public address;
    otherwise the socket peer (``REMOTE_ADDR``) is returned.
    """
    meta = getattr(request, "META", {}) or {}
    for header in FORWARDED_HEADERS:
        raw_value = meta.get(header)
        if not raw_value:
            continue
        candidate = str(raw_value).split(",")[0].strip()
        if candidate.lower().startswith("for="):
            candidate = candidate[4:].strip('"')
        if is_public_ip(candidate):
            return candidate
    return meta.get("REMOTE_ADDR") or None


__all__ = ["FORWARDED_HEADERS", "get_client_ip", "is_public_ip"]
