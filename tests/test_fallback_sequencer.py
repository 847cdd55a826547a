"""
Tests for round-robin fallback selection.
"""

from decimal import Decimal

import pytest

from shared.errors import NoCandidateForCountryError, NoFallbackConfiguredError
from shared.fallback_sequencer import (
    coerce_cursor,
    cursor_key,
    eligible_candidates,
    is_excluded_url,
    select_candidate,
)


def _pool(*urls, allowed=None):
    return [
        {"id": f"fb-{i}", "url": url, "sequence_order": i, "is_active": True,
         "allowed_countries": allowed}
        for i, url in enumerate(urls, start=1)
    ]


class TestIsExcludedUrl:
    """Tests for the spreadsheet exclusion."""

    def test_spreadsheet_urls_are_excluded(self):
        """Google Sheets URLs are import sources, never offers."""
        assert is_excluded_url("https://docs.google.com/spreadsheets/d/abc/edit") is True
        assert is_excluded_url("https://DOCS.GOOGLE.COM/Spreadsheets/d/abc") is True

    def test_regular_urls_are_kept(self):
        """Ordinary offer URLs pass."""
        assert is_excluded_url("https://offers.example.com") is False

    def test_empty_url_is_excluded(self):
        """Rows without a URL can't be served."""
        assert is_excluded_url("") is True
        assert is_excluded_url(None) is True


class TestEligibleCandidates:
    """Tests for pool preparation."""

    def test_filters_inactive_and_excluded_rows(self):
        """Inactive and spreadsheet rows are dropped."""
        rows = [
            {"id": "a", "url": "https://a.example.com", "sequence_order": 2, "is_active": True},
            {"id": "b", "url": "https://b.example.com", "sequence_order": 1, "is_active": False},
            {"id": "c", "url": "https://docs.google.com/spreadsheets/d/x", "sequence_order": 3, "is_active": True},
        ]
        assert [row["id"] for row in eligible_candidates(rows)] == ["a"]

    def test_orders_by_sequence_order(self):
        """Rows come back ordered by sequence_order, stable for ties."""
        rows = [
            {"id": "late", "url": "https://late.example.com", "sequence_order": Decimal("5")},
            {"id": "tie-1", "url": "https://t1.example.com", "sequence_order": 2},
            {"id": "tie-2", "url": "https://t2.example.com", "sequence_order": 2},
            {"id": "first", "url": "https://first.example.com", "sequence_order": 1},
        ]
        assert [row["id"] for row in eligible_candidates(rows)] == ["first", "tie-1", "tie-2", "late"]


class TestCoerceCursor:
    """Tests for cursor coercion."""

    @pytest.mark.parametrize(
        "value,expected",
        [(None, 0), ("3", 3), (Decimal("7"), 7), (-4, 0), ("junk", 0), (2, 2)],
    )
    def test_coerces(self, value, expected):
        """Stored cursors of any shape become non-negative ints."""
        assert coerce_cursor(value) == expected


class TestSelectCandidate:
    """Tests for candidate selection."""

    def test_empty_pool_is_configuration_absence(self):
        """No candidates at all raises NoFallbackConfiguredError."""
        with pytest.raises(NoFallbackConfiguredError):
            select_candidate([], "US", 0)

    def test_no_candidate_for_country(self):
        """Candidates exist but none allows the country."""
        pool = _pool("https://a.example.com", allowed=["GB"])
        with pytest.raises(NoCandidateForCountryError) as exc_info:
            select_candidate(pool, "IN", 0)
        assert exc_info.value.country == "IN"
        assert exc_info.value.status_code == 404

    def test_unknown_country_only_matches_worldwide_or_unrestricted(self):
        """XX visitors are served only candidates without a country restriction."""
        pool = [
            {"id": "us", "url": "https://us.example.com", "sequence_order": 1, "allowed_countries": ["US"]},
            {"id": "ww", "url": "https://ww.example.com", "sequence_order": 2, "allowed_countries": ["worldwide"]},
            {"id": "open", "url": "https://open.example.com", "sequence_order": 3},
        ]
        urls = {select_candidate(pool, "XX", cursor).url for cursor in range(4)}
        assert urls == {"https://ww.example.com", "https://open.example.com"}

    def test_wraps_cursor_modulo_pool_size(self):
        """Cursor 2 in a pool of 3 picks the third URL and hands back 0."""
        pool = _pool("https://1.example.com", "https://2.example.com", "https://3.example.com",
                     allowed=["worldwide"])
        selection = select_candidate(pool, "US", 2)

        assert selection.index == 2
        assert selection.url == "https://3.example.com"
        assert selection.next_cursor == 0
        assert selection.pool_size == 3

    def test_large_cursor_wraps(self):
        """A stale cursor larger than the pool still lands inside it."""
        pool = _pool("https://1.example.com", "https://2.example.com")
        selection = select_candidate(pool, "US", 7)
        assert selection.index == 1
        assert selection.next_cursor == 0

    def test_round_robin_visits_every_candidate_once(self):
        """N calls from cursor 0 visit all N candidates, call N+1 repeats the first."""
        urls = [f"https://{i}.example.com" for i in range(5)]
        pool = _pool(*urls, allowed=["worldwide"])

        cursor = 0
        visited = []
        for _ in range(len(urls)):
            selection = select_candidate(pool, "FR", cursor)
            visited.append(selection.url)
            cursor = selection.next_cursor

        assert visited == urls
        assert select_candidate(pool, "FR", cursor).url == urls[0]

    def test_never_selects_spreadsheet_rows(self):
        """Spreadsheet rows are skipped even if they reach selection."""
        pool = [
            {"id": "sheet", "url": "https://docs.google.com/spreadsheets/d/x", "sequence_order": 1},
            {"id": "real", "url": "https://real.example.com", "sequence_order": 2},
        ]
        for cursor in range(4):
            assert select_candidate(pool, "US", cursor).url == "https://real.example.com"

    def test_never_returns_disallowed_candidate(self):
        """Filtered-out candidates are never served, whatever the cursor."""
        pool = [
            {"id": "gb", "url": "https://gb.example.com", "sequence_order": 1, "allowed_countries": ["GB"]},
            {"id": "us", "url": "https://us.example.com", "sequence_order": 2, "allowed_countries": ["US"]},
        ]
        for cursor in range(5):
            assert select_candidate(pool, "US", cursor).url == "https://us.example.com"


class TestCursorKey:
    """Tests for cursor scope keys."""

    def test_global_scope_uses_default_key(self):
        """Global scope shares one cursor."""
        assert cursor_key("US", "global") == "default"

    def test_country_scope_keys_by_country(self):
        """Country scope keeps one cursor per visitor country."""
        assert cursor_key("us", "country") == "country#US"
        assert cursor_key(None, "country") == "country#XX"
