"""
Fallback URL Admin - manage the round-robin fallback pool.

Invoked directly (console, CLI or an admin API integration) with an event
naming the action:

{"action": "list"}
{"action": "add", "url": "https://offer.example.com", "allowed_countries": ["US", "GB"]}
{"action": "delete", "id": "<url id>"}
{"action": "move", "id": "<url id>", "direction": "up" | "down"}
{"action": "set_active", "id": "<url id>", "is_active": false}
{"action": "reset_sequence"}
"""

import logging
from urllib.parse import urlparse

from botocore.exceptions import ClientError

from shared.constants import DEFAULT_CURSOR_KEY
from shared.country_gate import normalize_country_token
from shared.dynamo import (
    delete_fallback_url,
    get_fallback_url,
    list_fallback_urls,
    list_sequence_cursors,
    put_fallback_url,
    reset_sequence_cursors,
    to_plain,
    update_fallback_url,
)
from shared.fallback_sequencer import eligible_candidates, is_excluded_url

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

MOVE_DIRECTIONS = ("up", "down")
TRUE_VALUES = ("true", "1", "yes", "on")
FALSE_VALUES = ("false", "0", "no", "off", "")


def _error(status_code: int, code: str, message: str) -> dict:
    return {"statusCode": status_code, "error": {"code": code, "message": message}}


def parse_bool(value):
    """Booleans from JSON or console input; strings are parsed, not truth-tested."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        text = value.strip().lower()
        if text in TRUE_VALUES:
            return True
        if text in FALSE_VALUES:
            return False
    return None


def is_valid_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def normalize_allowed_countries_input(value) -> list:
    """Accept a list or a comma-separated string; keep non-blank tokens in order."""
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    tokens = []
    for token in value:
        normalized = normalize_country_token(str(token))
        if normalized and normalized not in tokens:
            tokens.append(normalized)
    return tokens


def list_urls() -> dict:
    """All rows plus the global cursor and the position it points at."""
    urls = to_plain(list_fallback_urls())
    cursors = list_sequence_cursors()
    cursor = cursors.get(DEFAULT_CURSOR_KEY, 0)

    servable = eligible_candidates(urls)
    position = (cursor % len(servable)) + 1 if servable else 0

    return {
        "statusCode": 200,
        "urls": urls,
        "cursor": cursor,
        "cursors": cursors,
        "current_position": position,
        "servable_count": len(servable),
    }


def add_url(event: dict) -> dict:
    url = (event.get("url") or "").strip()
    if not url:
        return _error(400, "missing_url", "Please enter a URL")
    if not is_valid_url(url):
        return _error(400, "invalid_url", "Please enter a valid URL")
    if is_excluded_url(url):
        return _error(400, "excluded_url", "Spreadsheet URLs cannot be served as fallbacks")

    is_active = parse_bool(event.get("is_active", True))
    if is_active is None:
        return _error(400, "invalid_is_active", "is_active must be true or false")

    rows = list_fallback_urls()
    max_order = max((int(row.get("sequence_order", 0)) for row in rows), default=0)

    item = put_fallback_url(
        url,
        sequence_order=max_order + 1,
        allowed_countries=normalize_allowed_countries_input(event.get("allowed_countries")),
        is_active=is_active,
    )
    logger.info(f"Added fallback URL {item['id']} at position {max_order + 1}")
    return {"statusCode": 201, "url": to_plain(item)}


def delete_url(event: dict) -> dict:
    url_id = event.get("id")
    if not url_id:
        return _error(400, "missing_id", "id is required")
    if not get_fallback_url(url_id):
        return _error(404, "not_found", f"Fallback URL {url_id} not found")

    delete_fallback_url(url_id)
    logger.info(f"Deleted fallback URL {url_id}")
    return {"statusCode": 200, "deleted": url_id}


def move_url(event: dict) -> dict:
    """Swap sequence_order with the neighbour above or below."""
    url_id = event.get("id")
    direction = event.get("direction")
    if not url_id:
        return _error(400, "missing_id", "id is required")
    if direction not in MOVE_DIRECTIONS:
        return _error(400, "invalid_direction", "direction must be 'up' or 'down'")

    rows = list_fallback_urls()
    index = next((i for i, row in enumerate(rows) if row["id"] == url_id), None)
    if index is None:
        return _error(404, "not_found", f"Fallback URL {url_id} not found")

    target_index = index - 1 if direction == "up" else index + 1
    if target_index < 0 or target_index >= len(rows):
        return {"statusCode": 200, "moved": False, "urls": to_plain(rows)}

    current, target = rows[index], rows[target_index]
    current_order = int(current.get("sequence_order", 0))
    target_order = int(target.get("sequence_order", 0))

    update_fallback_url(current["id"], sequence_order=target_order)
    update_fallback_url(target["id"], sequence_order=current_order)

    logger.info(f"Moved fallback URL {url_id} {direction}")
    return {"statusCode": 200, "moved": True, "urls": to_plain(list_fallback_urls())}


def set_active(event: dict) -> dict:
    url_id = event.get("id")
    if not url_id:
        return _error(400, "missing_id", "id is required")
    if "is_active" not in event:
        return _error(400, "missing_is_active", "is_active is required")

    is_active = parse_bool(event["is_active"])
    if is_active is None:
        return _error(400, "invalid_is_active", "is_active must be true or false")

    try:
        update_fallback_url(url_id, is_active=is_active)
    except ClientError as e:
        if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
            return _error(404, "not_found", f"Fallback URL {url_id} not found")
        raise

    return {"statusCode": 200, "url": to_plain(get_fallback_url(url_id))}


def reset_sequence() -> dict:
    count = reset_sequence_cursors()
    logger.info(f"Reset {count} sequence cursor(s) to 0")
    return {"statusCode": 200, "reset": count}


def handler(event, context):
    """
    Lambda handler for fallback URL administration.
    """
    action = (event or {}).get("action", "list")
    logger.info(f"Fallback URL admin action: {action}")

    try:
        if action == "list":
            return list_urls()
        if action == "add":
            return add_url(event)
        if action == "delete":
            return delete_url(event)
        if action == "move":
            return move_url(event)
        if action == "set_active":
            return set_active(event)
        if action == "reset_sequence":
            return reset_sequence()
    except Exception as e:
        logger.error(f"Fallback URL admin action {action} failed: {e}")
        return _error(500, "internal_error", str(e))

    return _error(400, "unknown_action", f"Unknown action: {action}")
