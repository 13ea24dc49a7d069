"""Client address resolution for rate limiting.

Room creation is throttled per originating address. Behind a proxy or CDN the
socket peer is the proxy, so forwarding headers are consulted first, in
order of trust:

1. ``CF-Connecting-IP`` (set by Cloudflare)
2. the first entry of ``X-Forwarded-For``
3. ``X-Real-IP``
4. the socket peer
"""

from __future__ import annotations

from fastapi import Request

from sos_relay.adapters.rate_limit.escalating import UNKNOWN_ADDRESS


def get_client_address(request: Request) -> str:
    """FastAPI dependency returning the caller's address, or ``unknown``."""

    cf_ip = request.headers.get("CF-Connecting-IP")
    if cf_ip:
        return cf_ip

    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip() or UNKNOWN_ADDRESS

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_ADDRESS
