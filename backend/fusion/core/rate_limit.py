# backend/fusion/core/rate_limit.py
from slowapi import Limiter
from starlette.requests import Request

from fusion.core.config import settings


def get_real_client_ip(request: Request) -> str:
    """Client IP as seen behind the edge proxy.

    The first ``X-Forwarded-For`` hop wins, then ``X-Real-IP``, then the
    socket peer.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


# Identifies clients by their IP address; used for the admin login endpoints
limiter = Limiter(key_func=get_real_client_ip, enabled=settings.RATE_LIMIT_ENABLED)
