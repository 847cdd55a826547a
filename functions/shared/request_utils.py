"""Shared request utilities for API handlers."""

import logging
from http.cookies import CookieError, SimpleCookie
from typing import Optional

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "funnelgate_session"


def get_header(event: dict, name: str) -> Optional[str]:
    """Case-insensitive header lookup (API Gateway may lowercase names)."""
    headers = event.get("headers") or {}
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def get_origin(event: dict) -> Optional[str]:
    return get_header(event, "origin")


def get_query_param(event: dict, name: str) -> Optional[str]:
    """Return a stripped query parameter, or None when missing/blank."""
    params = event.get("queryStringParameters") or {}
    value = params.get(name)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def get_path_param(event: dict, name: str) -> Optional[str]:
    params = event.get("pathParameters") or {}
    value = params.get(name)
    return value.strip() if value else None


def get_client_ip(event: dict) -> str:
    """Extract the visitor IP.

    Behind CloudFront/ALB the first X-Forwarded-For entry is the visitor.
    API Gateway's sourceIp is used when no forwarding header exists.
    This value only feeds geolocation and analytics, never access control.
    """
    forwarded = get_header(event, "x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = get_header(event, "x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    source_ip = (event.get("requestContext") or {}).get("identity", {}).get("sourceIp")
    if source_ip:
        return source_ip

    logger.warning("No client IP found in request")
    return "unknown"


def get_cookie(event: dict, name: str) -> Optional[str]:
    """Read a cookie from the Cookie header (or the HTTP API v2 cookies list)."""
    raw = get_header(event, "cookie") or ""
    if not raw and event.get("cookies"):
        raw = "; ".join(event["cookies"])
    if not raw:
        return None

    cookie = SimpleCookie()
    try:
        cookie.load(raw)
    except CookieError:
        logger.warning("Malformed Cookie header ignored")
        return None

    morsel = cookie.get(name)
    return morsel.value if morsel else None


def build_session_cookie(session_id: str, max_age: int = 60 * 60 * 24) -> str:
    """Set-Cookie value for the analytics session id."""
    return (
        f"{SESSION_COOKIE_NAME}={session_id}; Path=/; Max-Age={max_age}; "
        "HttpOnly; Secure; SameSite=Lax"
    )


def wants_json(event: dict) -> bool:
    accept = get_header(event, "accept") or ""
    return "application/json" in accept.lower()
