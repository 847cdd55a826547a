"""
Session and click analytics.

Writes are fire-and-forget: every function here logs and swallows store
errors so analytics can never block a visitor's navigation.
"""

import logging
import os
import random
import re
import string
import time
import uuid
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlparse

from .aws_clients import get_dynamodb

logger = logging.getLogger(__name__)

SESSIONS_TABLE = os.environ.get("SESSIONS_TABLE", "funnelgate-sessions")
CLICKS_TABLE = os.environ.get("CLICKS_TABLE", "funnelgate-clicks")

MOBILE_UA_REGEX = re.compile(r"Mobile|Android|iPhone|iPad")

# Referrer hostname fragment -> source label
KNOWN_SOURCES = (
    ("google", "google"),
    ("facebook", "facebook"),
    ("twitter", "twitter"),
    ("x.com", "twitter"),
    ("instagram", "instagram"),
    ("linkedin", "linkedin"),
)

_SESSION_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_session_id() -> str:
    """session_<epoch ms>_<9 random base36 chars>"""
    suffix = "".join(random.choices(_SESSION_ID_ALPHABET, k=9))
    return f"session_{int(time.time() * 1000)}_{suffix}"


def get_device_type(user_agent: Optional[str]) -> str:
    if user_agent and MOBILE_UA_REGEX.search(user_agent):
        return "mobile"
    return "desktop"


def get_source(referrer: Optional[str]) -> str:
    """Classify a referrer URL into a traffic source."""
    if not referrer:
        return "direct"
    try:
        hostname = (urlparse(referrer).hostname or "").lower()
    except ValueError:
        return "direct"
    if not hostname:
        return "direct"

    for fragment, source in KNOWN_SOURCES:
        if fragment in hostname:
            return source
    return hostname


def record_session(
    session_id: str,
    ip_address: Optional[str] = None,
    country_code: Optional[str] = None,
    country: Optional[str] = None,
    user_agent: Optional[str] = None,
    referrer: Optional[str] = None,
) -> bool:
    """
    Create the session on first visit, otherwise count one more page view.

    Returns:
        True if the write succeeded
    """
    now = datetime.now(timezone.utc).isoformat()
    table = get_dynamodb().Table(SESSIONS_TABLE)

    try:
        table.update_item(
            Key={"session_id": session_id},
            UpdateExpression=(
                "SET page_views = if_not_exists(page_views, :zero) + :one, "
                "last_active = :now, "
                "first_seen = if_not_exists(first_seen, :now), "
                "ip_address = if_not_exists(ip_address, :ip), "
                "country_code = if_not_exists(country_code, :cc), "
                "country = if_not_exists(country, :country), "
                "device = if_not_exists(device, :device), "
                "#source = if_not_exists(#source, :source), "
                "user_agent = if_not_exists(user_agent, :ua)"
            ),
            ExpressionAttributeNames={"#source": "source"},
            ExpressionAttributeValues={
                ":zero": 0,
                ":one": 1,
                ":now": now,
                ":ip": ip_address or "",
                ":cc": country_code or "XX",
                ":country": country or country_code or "Unknown",
                ":device": get_device_type(user_agent),
                ":source": get_source(referrer),
                ":ua": (user_agent or "")[:500],
            },
        )
        return True
    except Exception as e:
        logger.warning(f"Failed to record session {session_id}: {e}")
    return False


def track_click(
    click_type: str,
    session_id: str,
    item_id: Optional[str] = None,
    item_name: Optional[str] = None,
    page: Optional[str] = None,
    lid: Optional[int] = None,
    original_link: Optional[str] = None,
) -> Optional[str]:
    """
    Append one click event.

    Returns:
        The click id, or None if the write failed
    """
    click_id = str(uuid.uuid4())
    item = {
        "id": click_id,
        "session_id": session_id or "anonymous",
        "click_type": click_type,
        "item_id": item_id,
        "item_name": item_name,
        "page": page,
        "lid": lid,
        "original_link": original_link,
        "clicked_at": datetime.now(timezone.utc).isoformat(),
    }
    item = {k: v for k, v in item.items() if v is not None and v != ""}

    try:
        get_dynamodb().Table(CLICKS_TABLE).put_item(Item=item)
    except Exception as e:
        logger.warning(f"Failed to track {click_type} click: {e}")
        return None

    logger.debug(f"Tracked {click_type} click", extra={"click_id": click_id})
    return click_id
