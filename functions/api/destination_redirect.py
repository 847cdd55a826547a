"""
Destination Redirect Endpoint - GET /r?id=<rule_id> and GET /link?lid=<n>

Sends the visitor to the rule link, the rule's prelanding, the country-gated
page or the not-found page. Always answers with a redirect.
"""

import time

from shared.logging_utils import configure_structured_logging, log_api_request, set_request_id
from shared.metrics import emit_error_metric
from shared.orchestrator import NOT_FOUND_PATH, decide_destination, decide_destination_by_serial
from shared.request_utils import get_query_param
from shared.response_utils import redirect_response
from shared.visitor import start_visit

logger = configure_structured_logging()


def _parse_lid(value: str):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def handler(event, context):
    """
    Lambda handler for direct destination links.

    `lid` (1-based position among active rules) takes precedence over `id`.

    Returns:
        302 to wherever the visitor goes next
    """
    start_time = time.time()
    set_request_id(event)

    path = event.get("path") or "/r"
    country = None

    try:
        visit = start_visit(event)
        country = visit.country

        lid_param = get_query_param(event, "lid")
        rule_id = get_query_param(event, "id")

        if lid_param is not None:
            lid = _parse_lid(lid_param)
            if lid is None:
                logger.warning(f"Invalid lid parameter: {lid_param[:20]}")
                location = NOT_FOUND_PATH
            else:
                location = decide_destination_by_serial(
                    lid, country, session_id=visit.session_id, page=path,
                ).location
        elif rule_id:
            location = decide_destination(
                rule_id, country, session_id=visit.session_id, page=path,
            ).location
        else:
            location = NOT_FOUND_PATH

        response = redirect_response(location, headers=visit.cookie_headers())

    except Exception as e:
        logger.exception(f"Error in destination redirect: {e}")
        emit_error_metric("internal", handler="destination_redirect")
        response = redirect_response(NOT_FOUND_PATH)

    latency_ms = (time.time() - start_time) * 1000
    log_api_request(logger, "GET", path, response["statusCode"], latency_ms, country=country)

    return response
