"""
Fallback Redirect Endpoint - GET /go[?id=<rule_id>] and GET /fastmoney

Serves the next URL of the round-robin fallback pool behind a short
interstitial. The page carries a Refresh header with the configured delay
and a Continue link to the same URL. `?continue=1` skips the interstitial
and redirects at once.
"""

import html
import time

from shared.logging_utils import configure_structured_logging, log_api_request, set_request_id
from shared.metrics import emit_error_metric
from shared.orchestrator import NOT_FOUND_PATH, decide_fallback
from shared.request_utils import get_query_param
from shared.response_utils import html_response, redirect_response
from shared.visitor import start_visit

logger = configure_structured_logging()

CONTINUE_VALUES = ("1", "true", "yes")

INTERSTITIAL_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<meta name="robots" content="noindex, nofollow">
<title>Continue</title>
</head>
<body>
<main>
<p>{message}</p>
<p><a href="{url}" rel="noopener">Continue</a></p>
</main>
</body>
</html>
"""


def render_interstitial(url: str, delay_seconds: int, auto_redirect: bool) -> str:
    if auto_redirect:
        message = f"Redirecting in {delay_seconds} seconds..."
    else:
        message = "Your page is ready."
    return INTERSTITIAL_TEMPLATE.format(
        message=html.escape(message),
        url=html.escape(url, quote=True),
    )


def handler(event, context):
    """
    Lambda handler for the generic fallback flow.

    Returns:
        200 interstitial HTML, or 302 for the continue action and for
        terminal pages (not configured / unavailable in region)
    """
    start_time = time.time()
    set_request_id(event)

    path = event.get("path") or "/go"
    country = None

    try:
        visit = start_visit(event)
        country = visit.country
        headers = visit.cookie_headers()

        immediate = (get_query_param(event, "continue") or "").lower() in CONTINUE_VALUES
        decision = decide_fallback(
            country,
            session_id=visit.session_id,
            rule_id=get_query_param(event, "id"),
            page=path,
            immediate=immediate,
        )

        if immediate or decision.is_terminal_page:
            response = redirect_response(decision.location, headers=headers)
        else:
            if decision.auto_redirect:
                headers["Refresh"] = f"{decision.delay_seconds}; url={decision.location}"
            response = html_response(
                render_interstitial(decision.location, decision.delay_seconds, decision.auto_redirect),
                headers=headers,
            )

    except Exception as e:
        logger.exception(f"Error in fallback redirect: {e}")
        emit_error_metric("internal", handler="fallback_redirect")
        response = redirect_response(NOT_FOUND_PATH)

    latency_ms = (time.time() - start_time) * 1000
    log_api_request(logger, "GET", path, response["statusCode"], latency_ms, country=country)

    return response
