"""
Country Decision Endpoint - GET /country-redirect[?id=<rule_id>]

With an id: checks the visitor's country against that destination rule.
    200 {"allowed": bool, "country": "US", "destination": "<link or /go?id=...>"}

Without an id: serves the next URL of the fallback pool for the visitor.
    200 {"country": "US", "destination": "<url>", "index": 2}

404 when the rule is missing or the pool is unconfigured / empty for the
country, 500 on anything unexpected. OPTIONS answers the CORS preflight.

Landing pages on any domain call this endpoint from the browser, so every
response carries Access-Control-Allow-Origin: * regardless of the
ALLOWED_ORIGINS / ALLOW_ALL_ORIGINS settings used by the page endpoints.
"""

import time

from shared.country_gate import is_country_allowed
from shared.dynamo import get_destination_rule
from shared.errors import APIError, InternalError, NoCandidateForCountryError, RuleNotFoundError
from shared.logging_utils import (
    configure_structured_logging,
    log_api_request,
    log_redirect_decision,
    set_request_id,
)
from shared.metrics import emit_error_metric, emit_redirect_metric
from shared.orchestrator import (
    NOT_FOUND_PATH,
    UNAVAILABLE_PATH,
    gated_location,
    next_fallback_selection,
)
from shared.request_utils import get_query_param
from shared.response_utils import (
    api_error_response,
    preflight_response,
    public_cors_headers,
    success_response,
)
from shared.visitor import start_visit

logger = configure_structured_logging()

PATH = "/country-redirect"


def _check_rule(rule_id: str, country: str) -> dict:
    rule = get_destination_rule(rule_id)
    if not rule or not rule.get("link"):
        raise RuleNotFoundError(rule_id, redirect=NOT_FOUND_PATH)

    allowed = is_country_allowed(rule.get("allowed_countries"), country)
    destination = rule["link"] if allowed else gated_location(rule_id)

    log_redirect_decision(
        logger, "country_check", "allowed" if allowed else "denied",
        country, destination, rule_id=rule_id,
    )
    emit_redirect_metric("country_check", "allowed" if allowed else "denied")

    return {
        "allowed": allowed,
        "country": country,
        "destination": destination,
    }


def _check_pool(country: str) -> dict:
    try:
        selection = next_fallback_selection(country)
    except NoCandidateForCountryError:
        emit_redirect_metric("country_check", "no_candidate_for_country")
        raise NoCandidateForCountryError(country, redirect=UNAVAILABLE_PATH)

    log_redirect_decision(logger, "country_check", "fallback", country, selection.url)
    emit_redirect_metric("country_check", "fallback")

    return {
        "country": country,
        "destination": selection.url,
        "index": selection.index,
    }


def handler(event, context):
    """
    Lambda handler for the country decision endpoint.

    Returns:
        200 with the decision, 404/500 error JSON otherwise
    """
    start_time = time.time()
    set_request_id(event)

    method = event.get("httpMethod", "GET")
    if method == "OPTIONS":
        response = preflight_response()
        response["headers"].update(public_cors_headers())
        return response

    country = None
    headers = {}
    try:
        visit = start_visit(event)
        country = visit.country
        headers = visit.cookie_headers()

        rule_id = get_query_param(event, "id")
        if rule_id:
            body = _check_rule(rule_id, country)
        else:
            body = _check_pool(country)

        response = success_response(body, headers=headers)

    except APIError as e:
        logger.info(f"Country decision failed: {e.code}", extra={"country": country})
        response = api_error_response(e)
        response["headers"].update(headers)

    except Exception as e:
        logger.exception(f"Error in country decision: {e}")
        emit_error_metric("internal", handler="country_redirect")
        response = api_error_response(InternalError())

    response["headers"].update(public_cors_headers())

    latency_ms = (time.time() - start_time) * 1000
    log_api_request(logger, method, PATH, response["statusCode"], latency_ms, country=country)

    return response
