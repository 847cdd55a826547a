"""
Consultation Page Endpoint - GET /cnos/{slug}

Returns the page content and records a consultation_view click.
With ?action=continue, records a consultation_click and redirects to the
page's destination link.
"""

import time

from shared.dynamo import get_consultation_page_by_slug
from shared.errors import InternalError
from shared.logging_utils import configure_structured_logging, log_api_request, set_request_id
from shared.metrics import emit_error_metric, emit_redirect_metric
from shared.orchestrator import NOT_FOUND_PATH
from shared.request_utils import get_origin, get_path_param, get_query_param
from shared.response_utils import (
    api_error_response,
    error_response,
    redirect_response,
    success_response,
)
from shared.tracking import track_click
from shared.visitor import start_visit

logger = configure_structured_logging()

DISPLAY_FIELDS = ("id", "name", "slug", "image_url", "cta_text", "trust_line")


def handler(event, context):
    """
    Lambda handler for consultation pages.

    Returns:
        200 page JSON, 302 for the continue action, 404 if the slug is unknown
    """
    start_time = time.time()
    set_request_id(event)

    origin = get_origin(event)
    slug = (get_path_param(event, "slug") or "").lower()
    path = f"/cnos/{slug}"
    country = None

    try:
        visit = start_visit(event)
        country = visit.country

        page = get_consultation_page_by_slug(slug) if slug else None

        if not page:
            response = error_response(
                404, "page_not_found", "Consultation page not found",
                details={"redirect": NOT_FOUND_PATH}, origin=origin,
            )
        elif get_query_param(event, "action") == "continue":
            destination = page.get("destination_link") or NOT_FOUND_PATH
            track_click(
                "consultation_click", visit.session_id,
                item_id=page["id"], item_name=page.get("name"),
                page=path, original_link=page.get("destination_link"),
            )
            emit_redirect_metric("consultation", "continue")
            response = redirect_response(destination, headers=visit.cookie_headers())
        else:
            track_click(
                "consultation_view", visit.session_id,
                item_id=page["id"], item_name=page.get("name"), page=path,
            )
            data = {field: page.get(field) for field in DISPLAY_FIELDS}
            response = success_response(data, headers=visit.cookie_headers(), origin=origin)

    except Exception as e:
        logger.exception(f"Error in consultation page: {e}")
        emit_error_metric("internal", handler="consultation_page")
        response = api_error_response(InternalError(), origin=origin)

    latency_ms = (time.time() - start_time) * 1000
    log_api_request(logger, "GET", path, response["statusCode"], latency_ms, country=country)

    return response
