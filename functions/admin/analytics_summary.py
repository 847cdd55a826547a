"""
Analytics Summary - aggregate session and click analytics.

Event format:
{
    "action": "summary" | "clear",
    "source": "google"      # optional, summary only: restrict sessions to one traffic source
}

Summary totals cover all stored data; the "last_24_hours" block is a
rolling window ending now (clicks by clicked_at, sessions by last_active).
"""

import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Optional

from boto3.dynamodb.conditions import Attr

from shared.aws_clients import get_dynamodb
from shared.constants import CLICK_TYPES
from shared.dynamo import EMAIL_CAPTURES_TABLE, count_items, to_plain
from shared.tracking import CLICKS_TABLE, SESSIONS_TABLE

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

WINDOW = timedelta(hours=24)


def _scan(table_name: str, filter_expression=None) -> list:
    table = get_dynamodb().Table(table_name)
    kwargs = {}
    if filter_expression is not None:
        kwargs["FilterExpression"] = filter_expression

    items = []
    while True:
        response = table.scan(**kwargs)
        items.extend(response.get("Items", []))
        if "LastEvaluatedKey" not in response:
            break
        kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]
    return items


def _parse_time(value) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _within(value, cutoff: datetime) -> bool:
    parsed = _parse_time(value)
    return parsed is not None and parsed >= cutoff


def click_type_counts(clicks: list) -> dict:
    """Counts per click type; every known type is present, unknown types are kept."""
    counts = Counter(click.get("click_type", "unknown") for click in clicks)
    result = {click_type: 0 for click_type in CLICK_TYPES}
    result.update(counts)
    return result


def build_summary(sessions: list, clicks: list, email_captures: int, now: Optional[datetime] = None) -> dict:
    now = now or datetime.now(timezone.utc)
    cutoff = now - WINDOW

    recent_sessions = [s for s in sessions if _within(s.get("last_active"), cutoff)]
    recent_clicks = [c for c in clicks if _within(c.get("clicked_at"), cutoff)]
    devices = Counter(session.get("device", "desktop") for session in sessions)

    return {
        "totals": {
            "sessions": len(sessions),
            "page_views": sum(int(s.get("page_views", 0)) for s in sessions),
            "unique_countries": len({s.get("country_code") for s in sessions if s.get("country_code")}),
            "mobile_users": devices.get("mobile", 0),
            "desktop_users": devices.get("desktop", 0),
            "clicks": len(clicks),
            "clicks_by_type": click_type_counts(clicks),
            "email_captures": email_captures,
        },
        "last_24_hours": {
            "sessions": len(recent_sessions),
            # Best available approximation: page views of sessions active in the window
            "page_views": sum(int(s.get("page_views", 0)) for s in recent_sessions),
            "clicks": len(recent_clicks),
            "clicks_by_type": click_type_counts(recent_clicks),
        },
        "sources": sorted({s.get("source", "direct") for s in sessions}),
        "generated_at": now.isoformat(),
    }


def summary(event: dict) -> dict:
    source = event.get("source")
    session_filter = Attr("source").eq(source) if source else None

    sessions = to_plain(_scan(SESSIONS_TABLE, session_filter))
    clicks = to_plain(_scan(CLICKS_TABLE))
    if source:
        session_ids = {s["session_id"] for s in sessions}
        clicks = [c for c in clicks if c.get("session_id") in session_ids]

    result = build_summary(sessions, clicks, count_items(EMAIL_CAPTURES_TABLE))
    logger.info(
        f"Analytics summary: {result['totals']['sessions']} sessions, "
        f"{result['totals']['clicks']} clicks"
    )
    return {"statusCode": 200, **result}


def _delete_all(table_name: str, key_name: str) -> int:
    table = get_dynamodb().Table(table_name)
    deleted = 0
    kwargs = {"ProjectionExpression": "#k", "ExpressionAttributeNames": {"#k": key_name}}

    with table.batch_writer() as batch:
        while True:
            response = table.scan(**kwargs)
            for item in response.get("Items", []):
                batch.delete_item(Key={key_name: item[key_name]})
                deleted += 1
            if "LastEvaluatedKey" not in response:
                break
            kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]

    return deleted


def clear() -> dict:
    """Delete every click and session. Email captures are kept."""
    clicks = _delete_all(CLICKS_TABLE, "id")
    sessions = _delete_all(SESSIONS_TABLE, "session_id")
    logger.warning(f"Cleared analytics: {clicks} clicks, {sessions} sessions")
    return {"statusCode": 200, "deleted": {"clicks": clicks, "sessions": sessions}}


def handler(event, context):
    """Lambda handler for analytics administration."""
    event = event or {}
    action = event.get("action", "summary")

    try:
        if action == "summary":
            return summary(event)
        if action == "clear":
            return clear()
    except Exception as e:
        logger.error(f"Analytics action {action} failed: {e}")
        return {"statusCode": 500, "error": {"code": "internal_error", "message": str(e)}}

    return {"statusCode": 400, "error": {"code": "unknown_action", "message": f"Unknown action: {action}"}}
