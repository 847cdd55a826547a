"""
DynamoDB helpers for funnel configuration, the sequence cursor and captures.

Read helpers never raise: store failures are logged and surface as
"not found" (None or an empty list), which the orchestrator maps onto its
terminal pages. Write helpers raise so callers can decide how much a
failed write matters.
"""

import logging
import os
import random
import time
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from .aws_clients import get_dynamodb
from .constants import (
    DEFAULT_CURSOR_KEY,
    DEFAULT_REDIRECT_DELAY_SECONDS,
    MAX_REDIRECT_DELAY_SECONDS,
    THROTTLING_ERRORS,
)
from .types import DestinationRule, FallbackUrl, LandingSettings, Prelanding

logger = logging.getLogger(__name__)

WEB_RESULTS_TABLE = os.environ.get("WEB_RESULTS_TABLE", "funnelgate-web-results")
FALLBACK_URLS_TABLE = os.environ.get("FALLBACK_URLS_TABLE", "funnelgate-fallback-urls")
PRELANDINGS_TABLE = os.environ.get("PRELANDINGS_TABLE", "funnelgate-prelandings")
CONSULTATION_PAGES_TABLE = os.environ.get(
    "CONSULTATION_PAGES_TABLE", "funnelgate-consultation-pages"
)
SETTINGS_TABLE = os.environ.get("SETTINGS_TABLE", "funnelgate-settings")
EMAIL_CAPTURES_TABLE = os.environ.get("EMAIL_CAPTURES_TABLE", "funnelgate-email-captures")

SEQUENCE_TRACKER_PK = "SEQUENCE_TRACKER"
LANDING_CONTENT_PK = "LANDING_CONTENT"

try:
    REDIRECT_DELAY_DEFAULT = int(os.environ.get("DEFAULT_REDIRECT_DELAY_SECONDS", DEFAULT_REDIRECT_DELAY_SECONDS))
except ValueError:
    REDIRECT_DELAY_DEFAULT = DEFAULT_REDIRECT_DELAY_SECONDS


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _backoff(attempt: int) -> float:
    # Exponential backoff with jitter
    base_delay = min(0.1 * (2 ** attempt), 2.0)
    return base_delay + random.uniform(0, base_delay * 0.5)


def _get_item(table_name: str, key: dict, max_retries: int = 3) -> Optional[dict]:
    """
    get_item with retry for throttling.

    Returns:
        The item, or None if missing or on any store error
    """
    table = get_dynamodb().Table(table_name)

    for attempt in range(max_retries):
        try:
            return table.get_item(Key=key).get("Item")
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code in THROTTLING_ERRORS and attempt < max_retries - 1:
                delay = _backoff(attempt)
                logger.warning(
                    f"DynamoDB throttled reading {table_name}, "
                    f"retry {attempt + 1}/{max_retries} in {delay:.2f}s"
                )
                time.sleep(delay)
                continue
            logger.error(f"Error reading {table_name} {key}: {e}")
            return None
        except Exception as e:
            logger.error(f"Error reading {table_name} {key}: {e}")
            return None

    logger.error(f"Max retries exceeded reading {table_name} {key}")
    return None


def _scan_all(table_name: str, filter_expression=None) -> list[dict]:
    """Scan a whole table, following pagination. Raises on store errors."""
    table = get_dynamodb().Table(table_name)
    kwargs: dict[str, Any] = {}
    if filter_expression is not None:
        kwargs["FilterExpression"] = filter_expression

    items = []
    response = table.scan(**kwargs)
    items.extend(response.get("Items", []))

    while "LastEvaluatedKey" in response:
        response = table.scan(ExclusiveStartKey=response["LastEvaluatedKey"], **kwargs)
        items.extend(response.get("Items", []))

    return items


def _query_first(table_name: str, index_name: str, key_condition, filter_expression=None) -> Optional[dict]:
    table = get_dynamodb().Table(table_name)
    kwargs: dict[str, Any] = {
        "IndexName": index_name,
        "KeyConditionExpression": key_condition,
    }
    if filter_expression is not None:
        kwargs["FilterExpression"] = filter_expression

    try:
        response = table.query(**kwargs)
        items = response.get("Items", [])
        while not items and "LastEvaluatedKey" in response:
            response = table.query(ExclusiveStartKey=response["LastEvaluatedKey"], **kwargs)
            items = response.get("Items", [])
    except Exception as e:
        logger.error(f"Error querying {table_name}/{index_name}: {e}")
        return None

    return items[0] if items else None


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _clean(item: dict) -> dict:
    # DynamoDB rejects empty strings in key attributes; drop None/"" everywhere
    return {k: v for k, v in item.items() if v is not None and v != ""}


# =============================================================================
# Destination rules (web results)
# =============================================================================


def get_destination_rule(rule_id: str, active_only: bool = True) -> Optional[DestinationRule]:
    """
    Get one destination rule.

    Args:
        rule_id: Rule id
        active_only: Treat inactive rules as missing

    Returns:
        Rule dict or None if missing, inactive or unreadable
    """
    if not rule_id:
        return None
    item = _get_item(WEB_RESULTS_TABLE, {"id": rule_id})
    if item is None:
        return None
    if active_only and not item.get("is_active", True):
        logger.info(f"Destination rule {rule_id} is inactive")
        return None
    return item


def list_active_destination_rules() -> list[DestinationRule]:
    """Active rules ordered by serial_number. Empty list on store errors."""
    try:
        items = _scan_all(WEB_RESULTS_TABLE, Attr("is_active").eq(True))
    except Exception as e:
        logger.error(f"Error listing destination rules: {e}")
        return []
    return sorted(items, key=lambda item: _as_int(item.get("serial_number")))


def get_destination_rule_by_serial(lid: int) -> Optional[DestinationRule]:
    """The lid-th (1-based) active rule in serial_number order."""
    if lid < 1:
        return None
    rules = list_active_destination_rules()
    if lid > len(rules):
        return None
    return rules[lid - 1]


# =============================================================================
# Fallback URLs
# =============================================================================


def list_fallback_urls(active_only: bool = False) -> list[FallbackUrl]:
    """
    Fallback rows ordered by sequence_order.

    Raises:
        ClientError: on store failure, so callers can tell "empty" from "broken"
    """
    filter_expression = Attr("is_active").eq(True) if active_only else None
    items = _scan_all(FALLBACK_URLS_TABLE, filter_expression)
    return sorted(items, key=lambda item: _as_int(item.get("sequence_order")))


def get_fallback_url(url_id: str) -> Optional[FallbackUrl]:
    return _get_item(FALLBACK_URLS_TABLE, {"id": url_id})


def put_fallback_url(
    url: str,
    sequence_order: int,
    allowed_countries: Optional[list[str]] = None,
    is_active: bool = True,
) -> FallbackUrl:
    """Create a fallback row and return it."""
    now = _now()
    item = _clean({
        "id": str(uuid.uuid4()),
        "url": url,
        "sequence_order": sequence_order,
        "is_active": is_active,
        "allowed_countries": allowed_countries or None,
        "created_at": now,
        "updated_at": now,
    })
    get_dynamodb().Table(FALLBACK_URLS_TABLE).put_item(Item=item)
    return item


def update_fallback_url(url_id: str, **fields) -> None:
    """Set attributes on an existing fallback row (sequence_order, is_active, ...)."""
    if not fields:
        return
    fields["updated_at"] = _now()
    names = {f"#f{i}": name for i, name in enumerate(fields)}
    values = {f":v{i}": value for i, value in enumerate(fields.values())}
    assignments = ", ".join(f"#f{i} = :v{i}" for i in range(len(fields)))

    get_dynamodb().Table(FALLBACK_URLS_TABLE).update_item(
        Key={"id": url_id},
        UpdateExpression=f"SET {assignments}",
        ConditionExpression="attribute_exists(id)",
        ExpressionAttributeNames=names,
        ExpressionAttributeValues=values,
    )


def delete_fallback_url(url_id: str) -> None:
    get_dynamodb().Table(FALLBACK_URLS_TABLE).delete_item(Key={"id": url_id})


# =============================================================================
# Prelandings and consultation pages
# =============================================================================


def get_prelanding(prelanding_id: str) -> Optional[Prelanding]:
    if not prelanding_id:
        return None
    return _get_item(PRELANDINGS_TABLE, {"id": prelanding_id})


def get_active_prelanding_for_rule(rule_id: str) -> Optional[Prelanding]:
    """Active prelanding tied to a destination rule, via the web-result-index GSI."""
    return _query_first(
        PRELANDINGS_TABLE,
        "web-result-index",
        Key("web_result_id").eq(rule_id),
        Attr("is_active").eq(True),
    )


def get_consultation_page_by_slug(slug: str) -> Optional[dict]:
    """Active consultation page by slug, via the slug-index GSI."""
    return _query_first(
        CONSULTATION_PAGES_TABLE,
        "slug-index",
        Key("slug").eq(slug),
        Attr("is_active").eq(True),
    )


# =============================================================================
# Sequence cursor
# =============================================================================


def read_sequence_cursor(key: str = DEFAULT_CURSOR_KEY) -> int:
    """Current cursor value; 0 when the tracker row is missing or unreadable."""
    item = _get_item(SETTINGS_TABLE, {"pk": SEQUENCE_TRACKER_PK, "sk": key})
    if not item:
        return 0
    return max(_as_int(item.get("current_index")), 0)


def write_sequence_cursor(value: int, key: str = DEFAULT_CURSOR_KEY) -> None:
    """
    Upsert the cursor. Last write wins; concurrent visitors may race.
    """
    get_dynamodb().Table(SETTINGS_TABLE).put_item(
        Item={
            "pk": SEQUENCE_TRACKER_PK,
            "sk": key,
            "current_index": int(value),
            "updated_at": _now(),
        }
    )


def list_sequence_cursors() -> dict[str, int]:
    """All tracker rows keyed by cursor key."""
    table = get_dynamodb().Table(SETTINGS_TABLE)
    response = table.query(KeyConditionExpression=Key("pk").eq(SEQUENCE_TRACKER_PK))
    items = response.get("Items", [])
    while "LastEvaluatedKey" in response:
        response = table.query(
            KeyConditionExpression=Key("pk").eq(SEQUENCE_TRACKER_PK),
            ExclusiveStartKey=response["LastEvaluatedKey"],
        )
        items.extend(response.get("Items", []))
    return {item["sk"]: _as_int(item.get("current_index")) for item in items}


def reset_sequence_cursors() -> int:
    """Set every cursor back to 0. Returns the number of rows written."""
    keys = set(list_sequence_cursors()) | {DEFAULT_CURSOR_KEY}
    for key in keys:
        write_sequence_cursor(0, key)
    return len(keys)


# =============================================================================
# Landing settings
# =============================================================================


def get_landing_settings() -> LandingSettings:
    """Redirect settings for interstitial pages, with defaults filled in."""
    item = _get_item(SETTINGS_TABLE, {"pk": LANDING_CONTENT_PK, "sk": "default"}) or {}

    delay = _as_int(item.get("redirect_delay_seconds"), REDIRECT_DELAY_DEFAULT)
    delay = min(max(delay, 0), MAX_REDIRECT_DELAY_SECONDS)

    return {
        "site_name": item.get("site_name", "OfferGrab"),
        "redirect_enabled": bool(item.get("redirect_enabled", True)),
        "redirect_delay_seconds": delay,
    }


# =============================================================================
# Email captures
# =============================================================================


def put_email_capture(
    prelanding_id: str,
    email: str,
    session_id: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> dict:
    """Store one captured address. Raises on store failure."""
    item = _clean({
        "id": str(uuid.uuid4()),
        "prelanding_id": prelanding_id,
        "email": email,
        "session_id": session_id,
        "ip_address": ip_address,
        "captured_at": _now(),
    })
    get_dynamodb().Table(EMAIL_CAPTURES_TABLE).put_item(Item=item)
    return item


def count_items(table_name: str) -> int:
    """Exact item count via a paginated COUNT scan."""
    table = get_dynamodb().Table(table_name)
    response = table.scan(Select="COUNT")
    total = response.get("Count", 0)
    while "LastEvaluatedKey" in response:
        response = table.scan(Select="COUNT", ExclusiveStartKey=response["LastEvaluatedKey"])
        total += response.get("Count", 0)
    return total


def to_plain(value: Any) -> Any:
    """Convert DynamoDB Decimals inside nested structures to int/float."""
    if isinstance(value, Decimal):
        return int(value) if value % 1 == 0 else float(value)
    if isinstance(value, dict):
        return {k: to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_plain(v) for v in value]
    return value
