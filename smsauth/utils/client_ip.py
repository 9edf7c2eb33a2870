"""
Client network origin for rate limiting.

Proxy headers are checked first (first hop of X-Forwarded-For, then
X-Real-IP, then CF-Connecting-IP), each validated as an IPv4/IPv6 literal.
Without a usable address the request is bucketed under a fingerprint of
its User-Agent and Accept headers so masked origins still share a counter.
"""
import hashlib
import ipaddress
import logging
from typing import Mapping, Optional

from fastapi import Request

logger = logging.getLogger(__name__)

FALLBACK_PREFIX = "fallback-"


def _valid_ip(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    candidate = value.strip()
    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        return None


def client_origin_from_headers(headers: Mapping[str, str], peer: Optional[str] = None) -> str:
    """
    Resolve the client origin from request headers.

    Args:
        headers: Case-insensitive header mapping
        peer: Socket peer address, used when no proxy header is usable

    Returns:
        Canonical IP literal, or a "fallback-<hash>" identifier
    """
    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        ip = _valid_ip(forwarded_for.split(",")[0])
        if ip:
            return ip

    for header in ("x-real-ip", "cf-connecting-ip"):
        ip = _valid_ip(headers.get(header))
        if ip:
            return ip

    ip = _valid_ip(peer)
    if ip:
        return ip

    user_agent = headers.get("user-agent") or ""
    accept = headers.get("accept") or ""
    fingerprint = hashlib.sha256(f"{user_agent}{accept}".encode()).hexdigest()[:16]
    logger.debug(f"[RateLimit] No usable client IP, using fingerprint {fingerprint}")
    return f"{FALLBACK_PREFIX}{fingerprint}"


def get_client_origin(request: Request) -> str:
    """FastAPI-facing wrapper around client_origin_from_headers."""
    peer = request.client.host if request.client else None
    return client_origin_from_headers(request.headers, peer)
