"""
Tests for the generic fallback flow (GET /go).
"""

import pytest


@pytest.fixture
def restricted_pool(mock_dynamodb):
    """A pool that only serves GB visitors."""
    mock_dynamodb.Table("funnelgate-fallback-urls").put_item(Item={
        "id": "fb-gb", "url": "https://gb.example.com", "sequence_order": 1,
        "is_active": True, "allowed_countries": ["GB"],
    })
    return mock_dynamodb


def _event(api_gateway_event, country="US", **params):
    api_gateway_event["headers"] = {"CF-IPCountry": country}
    api_gateway_event["path"] = "/go"
    api_gateway_event["queryStringParameters"] = params or None
    return api_gateway_event


class TestInterstitial:
    """Tests for the delayed redirect page."""

    def test_interstitial_with_refresh(self, seeded_fallback_pool, api_gateway_event):
        """The page refreshes to the selected URL after the configured delay."""
        from api.fallback_redirect import handler

        result = handler(_event(api_gateway_event), {})

        assert result["statusCode"] == 200
        assert result["headers"]["Content-Type"].startswith("text/html")
        assert result["headers"]["Refresh"] == "5; url=https://one.example.com"
        assert 'href="https://one.example.com"' in result["body"]
        assert "Redirecting in 5 seconds" in result["body"]

    def test_redirect_disabled(self, seeded_fallback_pool, api_gateway_event):
        """With redirects disabled only the Continue link remains."""
        from api.fallback_redirect import handler

        seeded_fallback_pool.Table("funnelgate-settings").put_item(Item={
            "pk": "LANDING_CONTENT", "sk": "default", "redirect_enabled": False,
        })

        result = handler(_event(api_gateway_event), {})

        assert "Refresh" not in result["headers"]
        assert 'href="https://one.example.com"' in result["body"]

    def test_cursor_advances_per_visit(self, seeded_fallback_pool, api_gateway_event):
        """Each page view serves the next URL."""
        from api.fallback_redirect import handler

        first = handler(_event(dict(api_gateway_event)), {})
        second = handler(_event(dict(api_gateway_event)), {})

        assert first["headers"]["Refresh"].endswith("https://one.example.com")
        assert second["headers"]["Refresh"].endswith("https://two.example.com")

    def test_url_is_escaped(self, mock_dynamodb, api_gateway_event):
        """URLs are HTML-escaped in the page."""
        from api.fallback_redirect import handler

        mock_dynamodb.Table("funnelgate-fallback-urls").put_item(Item={
            "id": "fb-q", "url": 'https://q.example.com/?a=1&b="2"', "sequence_order": 1,
            "is_active": True,
        })

        result = handler(_event(api_gateway_event), {})

        assert "a=1&amp;b=&quot;2&quot;" in result["body"]


class TestContinue:
    """Tests for ?continue=1."""

    def test_continue_redirects_immediately(self, seeded_fallback_pool, api_gateway_event):
        """The manual continue action is a 302."""
        from api.fallback_redirect import handler

        result = handler(_event(api_gateway_event, **{"continue": "1"}), {})

        assert result["statusCode"] == 302
        assert result["headers"]["Location"] == "https://one.example.com"

    def test_gated_visit_records_rule(self, seeded_fallback_pool, api_gateway_event):
        """The rule id from the gated redirect is kept for analytics."""
        from api.fallback_redirect import handler
        from boto3.dynamodb.conditions import Attr

        handler(_event(api_gateway_event, id="wr-us-gb"), {})

        clicks = seeded_fallback_pool.Table("funnelgate-clicks").scan(
            FilterExpression=Attr("click_type").eq("landing2_view")
        )["Items"]
        assert clicks[0]["item_id"] == "wr-us-gb"


class TestTerminalPages:
    """Tests for the fallback terminal pages."""

    def test_no_fallback_configured(self, mock_dynamodb, api_gateway_event):
        """An empty pool sends the visitor to the not-found page."""
        from api.fallback_redirect import handler

        result = handler(_event(api_gateway_event), {})

        assert result["statusCode"] == 302
        assert result["headers"]["Location"] == "/landing"

    def test_no_candidate_for_country(self, restricted_pool, api_gateway_event):
        """Visitors outside every allow-list see the unavailable page."""
        from api.fallback_redirect import handler

        result = handler(_event(api_gateway_event, "IN"), {})

        assert result["statusCode"] == 302
        assert result["headers"]["Location"] == "/unavailable"

    def test_unknown_country_on_restricted_pool(self, restricted_pool, api_gateway_event):
        """XX is denied by restricted rows."""
        from api.fallback_redirect import handler

        result = handler(_event(api_gateway_event, "XX"), {})
        assert result["headers"]["Location"] == "/unavailable"


class TestRenderInterstitial:
    """Tests for render_interstitial."""

    def test_message_without_auto_redirect(self):
        """The countdown text is omitted when redirects are off."""
        from api.fallback_redirect import render_interstitial

        page = render_interstitial("https://a.example.com", 5, auto_redirect=False)

        assert "Redirecting" not in page
        assert "Continue" in page
