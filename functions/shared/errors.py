"""
Standardized errors for the funnel API.

Pure decision code raises only NoFallbackConfiguredError and
NoCandidateForCountryError. Handlers convert every error into a response.
"""

import json
from typing import Optional


class APIError(Exception):
    """Base class for API errors."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 400,
        details: Optional[dict] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> dict:
        """Convert to API Gateway response format."""
        body = {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }
        if self.details:
            body["error"]["details"] = self.details

        return {
            "statusCode": self.status_code,
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps(body),
        }


class RuleNotFoundError(APIError):
    """Raised when a destination rule is missing, inactive or unreadable."""

    def __init__(self, rule_id: str, redirect: Optional[str] = None):
        super().__init__(
            code="rule_not_found",
            message=f"Web result '{rule_id}' not found",
            status_code=404,
            details={"redirect": redirect} if redirect else None,
        )
        self.rule_id = rule_id


class NoFallbackConfiguredError(APIError):
    """Raised when the fallback pool has no active candidates at all."""

    def __init__(self, message: str = "No fallback URLs configured"):
        super().__init__(
            code="no_fallback_configured",
            message=message,
            status_code=404,
        )


class NoCandidateForCountryError(APIError):
    """Raised when candidates exist but none is allowed for the visitor's country."""

    def __init__(self, country: str, redirect: Optional[str] = None):
        details = {"country": country}
        if redirect:
            details["redirect"] = redirect
        super().__init__(
            code="no_fallback_for_country",
            message=f"No fallback URL for country {country}",
            status_code=404,
            details=details,
        )
        self.country = country


class InvalidRequestError(APIError):
    """Raised for general invalid request errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="invalid_request",
            message=message,
            status_code=400,
            details=details,
        )


class InvalidTransitionError(Exception):
    """Raised when a redirect journey is moved backwards or skips a state."""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move redirect journey from {current} to {requested}")


class InternalError(APIError):
    """Raised for internal server errors."""

    def __init__(self, message: str = "Internal server error"):
        super().__init__(
            code="internal_error",
            message=message,
            status_code=500,
        )
