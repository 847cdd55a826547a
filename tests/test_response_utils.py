"""
Tests for response utilities module.

Tests cover CORS headers, JSON serialization, and response formatting helpers.
"""

import json
from decimal import Decimal
from unittest.mock import patch

import pytest


class TestGetCorsHeaders:
    """Tests for get_cors_headers function."""

    def test_returns_cors_headers_for_allowed_origin(self):
        """Should echo an allowed origin."""
        from shared.response_utils import get_cors_headers

        with patch("shared.response_utils.ALLOWED_ORIGINS", ["https://offers.example.com"]):
            result = get_cors_headers("https://offers.example.com")

        assert result["Access-Control-Allow-Origin"] == "https://offers.example.com"
        assert "Access-Control-Allow-Methods" in result
        assert result["Vary"] == "Origin"

    def test_returns_empty_dict_for_disallowed_origin(self):
        """Should return empty dict for non-allowed origin."""
        from shared.response_utils import get_cors_headers

        with patch("shared.response_utils.ALLOWED_ORIGINS", ["https://offers.example.com"]):
            assert get_cors_headers("https://malicious-site.com") == {}

    def test_returns_empty_dict_for_none_origin(self):
        """Should return empty dict when origin is None."""
        from shared.response_utils import get_cors_headers

        assert get_cors_headers(None) == {}

    def test_wildcard_when_all_origins_allowed(self):
        """ALLOW_ALL_ORIGINS answers with *."""
        from shared.response_utils import get_cors_headers

        with patch("shared.response_utils.ALLOW_ALL_ORIGINS", True):
            result = get_cors_headers(None)

        assert result["Access-Control-Allow-Origin"] == "*"


class TestDecimalDefault:
    """Tests for decimal_default JSON serializer."""

    def test_converts_integer_decimal_to_int(self):
        """Should convert integer Decimal to int."""
        from shared.response_utils import decimal_default

        result = decimal_default(Decimal("42"))

        assert result == 42
        assert isinstance(result, int)

    def test_converts_float_decimal_to_float(self):
        """Should convert non-integer Decimal to float."""
        from shared.response_utils import decimal_default

        assert decimal_default(Decimal("3.14")) == pytest.approx(3.14)

    def test_converts_set_to_sorted_list(self):
        """DynamoDB string sets serialize as sorted lists."""
        from shared.response_utils import decimal_default

        assert decimal_default({"US", "GB"}) == ["GB", "US"]

    def test_raises_for_unknown_types(self):
        """Other types are rejected."""
        from shared.response_utils import decimal_default

        with pytest.raises(TypeError):
            decimal_default(object())


class TestErrorResponse:
    """Tests for error_response."""

    def test_error_body_shape(self):
        """Errors use the {"error": {"code", "message", "details"}} shape."""
        from shared.response_utils import error_response

        result = error_response(404, "rule_not_found", "Web result 'x' not found", details={"redirect": "/landing"})
        body = json.loads(result["body"])

        assert result["statusCode"] == 404
        assert body["error"]["code"] == "rule_not_found"
        assert body["error"]["details"] == {"redirect": "/landing"}
        assert result["headers"]["Cache-Control"] == "no-store"

    def test_details_omitted_when_empty(self):
        """No details key without details."""
        from shared.response_utils import error_response

        body = json.loads(error_response(500, "internal_error", "Internal server error")["body"])
        assert "details" not in body["error"]

    def test_api_error_response(self):
        """APIError subclasses render through the same shape."""
        from shared.errors import NoCandidateForCountryError
        from shared.response_utils import api_error_response

        result = api_error_response(NoCandidateForCountryError("IN", redirect="/unavailable"))
        body = json.loads(result["body"])

        assert result["statusCode"] == 404
        assert body["error"]["code"] == "no_fallback_for_country"
        assert body["error"]["details"] == {"country": "IN", "redirect": "/unavailable"}


class TestSuccessResponse:
    """Tests for success_response."""

    def test_serializes_decimals(self):
        """DynamoDB numbers serialize cleanly."""
        from shared.response_utils import success_response

        result = success_response({"index": Decimal("2")})

        assert result["statusCode"] == 200
        assert json.loads(result["body"]) == {"index": 2}
        assert result["headers"]["Content-Type"] == "application/json"

    def test_extra_headers(self):
        """Additional headers are merged."""
        from shared.response_utils import success_response

        result = success_response({}, headers={"Set-Cookie": "a=b"})
        assert result["headers"]["Set-Cookie"] == "a=b"


class TestRedirectAndHtml:
    """Tests for redirect and HTML responses."""

    def test_redirect_response(self):
        """302 with Location and no caching."""
        from shared.response_utils import redirect_response

        result = redirect_response("/landing")

        assert result["statusCode"] == 302
        assert result["headers"]["Location"] == "/landing"
        assert result["headers"]["Cache-Control"] == "no-store"
        assert result["body"] == ""

    def test_html_response(self):
        """HTML responses declare their type and are not cached."""
        from shared.response_utils import html_response

        result = html_response("<p>hi</p>", headers={"Refresh": "5; url=https://a.example.com"})

        assert result["headers"]["Content-Type"].startswith("text/html")
        assert result["headers"]["Refresh"] == "5; url=https://a.example.com"
        assert result["body"] == "<p>hi</p>"

    def test_preflight_response(self):
        """Preflight answers 200 with CORS headers."""
        from shared.response_utils import preflight_response

        with patch("shared.response_utils.ALLOW_ALL_ORIGINS", True):
            result = preflight_response("https://any.example.com")

        assert result["statusCode"] == 200
        assert result["headers"]["Access-Control-Allow-Origin"] == "*"
