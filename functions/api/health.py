"""
Health Check Endpoint - GET /health

Returns service status and version. `?deep=1` also checks that the
settings table is readable.
"""

import json
import time
from datetime import datetime, timezone

from shared.aws_clients import get_dynamodb
from shared.dynamo import SETTINGS_TABLE
from shared.logging_utils import configure_structured_logging, log_api_request, set_request_id
from shared.request_utils import get_query_param

logger = configure_structured_logging()

VERSION = "1.0.0"


def _store_reachable() -> bool:
    try:
        get_dynamodb().Table(SETTINGS_TABLE).get_item(Key={"pk": "HEALTH", "sk": "check"})
        return True
    except Exception as e:
        logger.warning(f"Health check could not read {SETTINGS_TABLE}: {e}")
        return False


def handler(event, context):
    """
    Lambda handler for health check.

    Returns:
        200 with status information, 503 if a deep check fails
    """
    start_time = time.time()

    set_request_id(event)

    body = {
        "status": "healthy",
        "version": VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    status_code = 200

    if get_query_param(event, "deep") in ("1", "true"):
        store_ok = _store_reachable()
        body["checks"] = {"dynamodb": "ok" if store_ok else "unreachable"}
        if not store_ok:
            body["status"] = "degraded"
            status_code = 503

    response = {
        "statusCode": status_code,
        "headers": {
            "Content-Type": "application/json",
            "Cache-Control": "no-cache",
        },
        "body": json.dumps(body),
    }

    latency_ms = (time.time() - start_time) * 1000
    log_api_request(logger, "GET", "/health", status_code, latency_ms)

    return response
