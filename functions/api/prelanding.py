"""
Prelanding Endpoint - GET/POST /prelanding/{id}

GET returns the display fields of an active prelanding plus the resolved
destination. POST captures the visitor's email and then sends them on:
302 for form posts, JSON {"redirect": ...} for fetch calls that send
Accept: application/json.

Request body (JSON or form-encoded):
{
    "email": "visitor@example.com",
    "redirect": "https://offer.example.com"   (optional, also accepted as ?redirect=)
}
"""

import base64
import json
import time
from urllib.parse import parse_qs

from shared.dynamo import get_prelanding
from shared.errors import APIError, InternalError, InvalidRequestError
from shared.logging_utils import configure_structured_logging, log_api_request, set_request_id
from shared.metrics import emit_error_metric
from shared.orchestrator import NOT_FOUND_PATH, complete_email_capture, resolve_prelanding_target
from shared.request_utils import get_header, get_origin, get_path_param, get_query_param, wants_json
from shared.response_utils import (
    api_error_response,
    error_response,
    preflight_response,
    redirect_response,
    success_response,
)
from shared.visitor import start_visit

logger = configure_structured_logging()

DISPLAY_FIELDS = (
    "id",
    "headline",
    "description",
    "email_placeholder",
    "cta_button_text",
    "logo_url",
    "main_image_url",
    "background_color",
    "background_image_url",
)


def _parse_body(event: dict) -> dict:
    raw = event.get("body") or ""
    if event.get("isBase64Encoded") and raw:
        raw = base64.b64decode(raw).decode("utf-8", errors="replace")
    if not raw:
        return {}

    content_type = (get_header(event, "content-type") or "").lower()
    if "application/x-www-form-urlencoded" in content_type:
        return {key: values[0] for key, values in parse_qs(raw).items() if values}

    try:
        body = json.loads(raw)
    except json.JSONDecodeError:
        raise InvalidRequestError("Request body must be valid JSON")
    if not isinstance(body, dict):
        raise InvalidRequestError("Request body must be a JSON object")
    return body


def _get(event: dict, prelanding_id: str, origin) -> dict:
    prelanding = get_prelanding(prelanding_id)
    if not prelanding or not prelanding.get("is_active", True):
        return error_response(
            404, "prelanding_not_found", "Prelanding not found",
            details={"redirect": NOT_FOUND_PATH}, origin=origin,
        )

    data = {field: prelanding.get(field) for field in DISPLAY_FIELDS}
    data["redirect"] = (
        resolve_prelanding_target(prelanding, get_query_param(event, "redirect"))
        or NOT_FOUND_PATH
    )
    return success_response(data, origin=origin)


def _post(event: dict, prelanding_id: str, visit, origin) -> dict:
    body = _parse_body(event)
    redirect_url = body.get("redirect") or get_query_param(event, "redirect")

    decision = complete_email_capture(
        prelanding_id,
        str(body.get("email") or ""),
        redirect_url=redirect_url,
        session_id=visit.session_id,
        ip_address=visit.client_ip,
        country=visit.country,
    )

    if wants_json(event):
        return success_response(
            {"redirect": decision.location, "outcome": decision.outcome},
            headers=visit.cookie_headers(),
            origin=origin,
        )
    return redirect_response(decision.location, headers=visit.cookie_headers())


def handler(event, context):
    """
    Lambda handler for prelanding pages.

    Returns:
        GET: 200 prelanding JSON, 404 if missing or inactive
        POST: 302 (or 200 JSON) to the destination, 400 on a bad email
    """
    start_time = time.time()
    set_request_id(event)

    method = event.get("httpMethod", "GET")
    origin = get_origin(event)
    if method == "OPTIONS":
        return preflight_response(origin)

    prelanding_id = get_path_param(event, "id") or ""
    path = f"/prelanding/{prelanding_id}"
    country = None

    try:
        visit = start_visit(event)
        country = visit.country

        if method == "POST":
            response = _post(event, prelanding_id, visit, origin)
        else:
            response = _get(event, prelanding_id, origin)
            response["headers"].update(visit.cookie_headers())

    except APIError as e:
        response = api_error_response(e, origin=origin)

    except Exception as e:
        logger.exception(f"Error in prelanding handler: {e}")
        emit_error_metric("internal", handler="prelanding")
        if method == "POST" and not wants_json(event):
            response = redirect_response(NOT_FOUND_PATH)
        else:
            response = api_error_response(InternalError(), origin=origin)

    latency_ms = (time.time() - start_time) * 1000
    log_api_request(logger, method, path, response["statusCode"], latency_ms, country=country)

    return response
