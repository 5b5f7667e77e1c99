# backend/fusion/core/request_context.py
"""
Per-request client details for audit logging.

The admin handlers resolve a RequestContext through FastAPI's dependency
system and hand it to the audit service, which stores IP and user agent
next to each admin action.
"""

from dataclasses import dataclass

from fastapi import Request

from fusion.core.rate_limit import get_real_client_ip

USER_AGENT_MAX_LEN = 512


@dataclass(frozen=True)
class RequestContext:
    """Client details attached to audit entries and admin sessions."""

    ip_address: str = "unknown"
    user_agent: str | None = None


def get_request_context(request: Request) -> RequestContext:
    user_agent = request.headers.get("User-Agent", "")
    if user_agent and len(user_agent) > USER_AGENT_MAX_LEN:
        user_agent = user_agent[: USER_AGENT_MAX_LEN - 3] + "..."
    return RequestContext(
        ip_address=get_real_client_ip(request),
        user_agent=user_agent or None,
    )
