"""
Country gate: allow/deny a visitor for a rule's allowed-countries list.

This is the only place the gating policy lives. Every surface (destination
redirect, fallback pool filtering, the country-decision endpoint) calls
is_country_allowed() instead of re-deriving the rules.
"""

from typing import Iterable, Optional

from .constants import COUNTRY_ALIASES, UNKNOWN_COUNTRY, WORLDWIDE


def normalize_country_token(token: Optional[str]) -> str:
    """Normalize one allow-list token to an uppercase code, WORLDWIDE or ''."""
    text = (token or "").strip()
    alias = COUNTRY_ALIASES.get(text.lower())
    if alias:
        return alias
    return text.upper()


def normalize_allowed_countries(allowed: Optional[Iterable[str]]) -> set[str]:
    """Normalize an allow-list, dropping blank tokens."""
    if not allowed:
        return set()
    normalized = (normalize_country_token(token) for token in allowed)
    return {token for token in normalized if token}


def normalize_user_country(user_country_code: Optional[str]) -> str:
    """Uppercase the visitor's code; missing values become the unknown sentinel."""
    code = (user_country_code or "").strip().upper()
    return code or UNKNOWN_COUNTRY


def is_worldwide(allowed: Optional[Iterable[str]]) -> bool:
    return WORLDWIDE in normalize_allowed_countries(allowed)


def is_country_allowed(
    allowed: Optional[Iterable[str]],
    user_country_code: Optional[str],
) -> bool:
    """
    Decide whether a visitor may access a rule.

    Args:
        allowed: Raw allow-list (codes, country names or "worldwide"/"ww").
            None or empty means no restriction.
        user_country_code: Two-letter code, or "XX" when unresolved.

    Returns:
        True if access is permitted.
    """
    # No restrictions
    if not allowed:
        return True

    normalized = normalize_allowed_countries(allowed)
    if WORLDWIDE in normalized:
        return True

    user_code = normalize_user_country(user_country_code)

    # Unknown location never matches a country-specific list
    if user_code == UNKNOWN_COUNTRY:
        return False

    return user_code in normalized
