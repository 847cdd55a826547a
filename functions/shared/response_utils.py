"""
Response utilities for Lambda handlers.

Provides consistent formatting for JSON, redirect and HTML responses.
"""

import json
import os
from decimal import Decimal
from typing import Any, Dict, List, Optional

# CORS configuration for the page endpoints. The country-decision endpoint
# always answers with a wildcard, see public_cors_headers().
ALLOWED_ORIGINS: List[str] = [
    origin.strip()
    for origin in os.environ.get("ALLOWED_ORIGINS", "").split(",")
    if origin.strip()
]
ALLOW_ALL_ORIGINS = os.environ.get("ALLOW_ALL_ORIGINS", "false").lower() == "true"
CORS_ALLOW_HEADERS = "authorization, x-client-info, apikey, content-type"

# Redirect decisions are per visitor and per call; never cache them
NO_STORE_HEADERS = {
    "Cache-Control": "no-store",
    "X-Robots-Tag": "noindex, nofollow",
}


def public_cors_headers() -> Dict[str, str]:
    """Wildcard CORS headers for endpoints any landing page may call."""
    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
        "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
    }


def get_cors_headers(origin: Optional[str]) -> Dict[str, str]:
    """
    Get CORS headers if origin is allowed.

    Args:
        origin: The Origin header from the request

    Returns:
        Dict with CORS headers if origin is allowed, empty dict otherwise
    """
    if ALLOW_ALL_ORIGINS:
        return public_cors_headers()
    if origin and origin in ALLOWED_ORIGINS:
        return {
            "Access-Control-Allow-Origin": origin,
            "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
            "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
            "Vary": "Origin",
        }
    return {}


def decimal_default(obj: Any) -> Any:
    """JSON serializer for Decimal types from DynamoDB."""
    if isinstance(obj, Decimal):
        if obj % 1 == 0:
            return int(obj)
        return float(obj)
    if isinstance(obj, set):
        return sorted(obj)
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def json_response(
    status_code: int, body: Any, headers: Optional[dict] = None
) -> dict:
    """
    Create standardized JSON response.

    Args:
        status_code: HTTP status code
        body: Response body
        headers: Optional additional headers

    Returns:
        Lambda response dictionary
    """
    response_headers = {"Content-Type": "application/json"}
    if headers:
        response_headers.update(headers)

    return {
        "statusCode": status_code,
        "headers": response_headers,
        "body": json.dumps(body, default=decimal_default),
    }


def error_response(
    status_code: int,
    code: str,
    message: str,
    headers: Optional[Dict[str, str]] = None,
    details: Optional[Dict[str, Any]] = None,
    origin: Optional[str] = None,
) -> dict:
    """
    Create an error response.

    Args:
        status_code: HTTP status code
        code: Machine-readable error code (snake_case)
        message: Human-readable error message
        headers: Additional response headers
        details: Optional additional error details
        origin: Request Origin header for CORS

    Returns:
        Lambda response dict
    """
    response_headers = dict(NO_STORE_HEADERS)
    response_headers.update(get_cors_headers(origin))
    if headers:
        response_headers.update(headers)

    body = {
        "error": {
            "code": code,
            "message": message,
        }
    }
    if details:
        body["error"]["details"] = details

    return json_response(status_code, body, response_headers)


def api_error_response(error, origin: Optional[str] = None) -> dict:
    """Render an APIError with CORS headers."""
    return error_response(
        error.status_code,
        error.code,
        error.message,
        details=error.details,
        origin=origin,
    )


def success_response(
    data: Any,
    status_code: int = 200,
    headers: Optional[Dict[str, str]] = None,
    origin: Optional[str] = None,
) -> dict:
    """
    Create a success response.

    Args:
        data: Response body data
        status_code: HTTP status code (default 200)
        headers: Additional response headers
        origin: Request Origin header for CORS

    Returns:
        Lambda response dict
    """
    response_headers = dict(NO_STORE_HEADERS)
    response_headers.update(get_cors_headers(origin))
    if headers:
        response_headers.update(headers)

    return json_response(status_code, data, response_headers)


def redirect_response(
    location: str,
    status_code: int = 302,
    headers: Optional[Dict[str, str]] = None,
) -> dict:
    """
    Create a redirect response.

    Args:
        location: Redirect URL
        status_code: HTTP status code (302 or 303)
        headers: Additional headers (e.g., Set-Cookie)

    Returns:
        Lambda response dict
    """
    response_headers = {"Location": location, **NO_STORE_HEADERS}
    if headers:
        response_headers.update(headers)

    return {
        "statusCode": status_code,
        "headers": response_headers,
        "body": "",
    }


def html_response(
    html: str,
    status_code: int = 200,
    headers: Optional[Dict[str, str]] = None,
) -> dict:
    """Create an HTML response (interstitial pages)."""
    response_headers = {
        "Content-Type": "text/html; charset=utf-8",
        "X-Content-Type-Options": "nosniff",
        **NO_STORE_HEADERS,
    }
    if headers:
        response_headers.update(headers)

    return {
        "statusCode": status_code,
        "headers": response_headers,
        "body": html,
    }


def preflight_response(origin: Optional[str] = None) -> dict:
    """Answer a CORS preflight (OPTIONS) request."""
    return {
        "statusCode": 200,
        "headers": get_cors_headers(origin),
        "body": "",
    }
