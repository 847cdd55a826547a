"""
Round-robin selection over the country-scoped fallback pool.

The cursor is persisted by the caller. Selection is pure: filter the pool
with the country gate, pick cursor mod n, hand back the next cursor.
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from .constants import (
    CURSOR_SCOPE_COUNTRY,
    DEFAULT_CURSOR_KEY,
    EXCLUDED_URL_PATTERNS,
)
from .country_gate import is_country_allowed, normalize_user_country
from .errors import NoCandidateForCountryError, NoFallbackConfiguredError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Selection:
    """Result of a fallback selection."""

    url: str
    index: int
    next_cursor: int
    pool_size: int
    candidate: dict


def is_excluded_url(url: Optional[str]) -> bool:
    """True for spreadsheet import sources that must never be served."""
    if not url:
        return True
    lowered = url.lower()
    return any(pattern in lowered for pattern in EXCLUDED_URL_PATTERNS)


def _sequence_order(row: dict) -> int:
    try:
        return int(row.get("sequence_order", 0))
    except (TypeError, ValueError):
        return 0


def eligible_candidates(rows: Iterable[dict]) -> list[dict]:
    """
    Restrict raw fallback rows to the servable pool.

    Keeps active rows with a non-excluded URL, ordered by sequence_order.
    The sort is stable so rows sharing an order keep store order.
    """
    pool = [
        row for row in rows
        if row.get("is_active", True) and not is_excluded_url(row.get("url"))
    ]
    return sorted(pool, key=_sequence_order)


def coerce_cursor(cursor: Any) -> int:
    """Turn a stored cursor (int, Decimal, str, None) into a non-negative int."""
    try:
        value = int(cursor)
    except (TypeError, ValueError):
        return 0
    return max(value, 0)


def select_candidate(
    candidates: list[dict],
    user_country_code: str,
    cursor: Any,
) -> Selection:
    """
    Pick the next fallback URL for a visitor.

    Args:
        candidates: Active, ordered pool (see eligible_candidates)
        user_country_code: Resolved visitor country or "XX"
        cursor: Persisted sequence cursor

    Returns:
        Selection with the chosen URL and the cursor to persist

    Raises:
        NoFallbackConfiguredError: the pool is empty before country filtering
        NoCandidateForCountryError: no candidate allows this country
    """
    if not candidates:
        raise NoFallbackConfiguredError()

    country = normalize_user_country(user_country_code)
    allowed = [
        candidate for candidate in candidates
        if not is_excluded_url(candidate.get("url"))
        and is_country_allowed(candidate.get("allowed_countries"), country)
    ]

    if not allowed:
        raise NoCandidateForCountryError(country)

    pool_size = len(allowed)
    index = coerce_cursor(cursor) % pool_size
    selected = allowed[index]

    logger.debug(
        f"Selected fallback {index + 1}/{pool_size} for {country}",
        extra={"fallback_url": selected["url"], "country": country},
    )

    return Selection(
        url=selected["url"],
        index=index,
        next_cursor=(index + 1) % pool_size,
        pool_size=pool_size,
        candidate=selected,
    )


def cursor_key(user_country_code: Optional[str], scope: str) -> str:
    """Tracker row key for a cursor scope ("global" or "country")."""
    if scope == CURSOR_SCOPE_COUNTRY:
        return f"country#{normalize_user_country(user_country_code)}"
    return DEFAULT_CURSOR_KEY
