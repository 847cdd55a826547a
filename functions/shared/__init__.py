# Shared utilities package
from .country_gate import is_country_allowed
from .errors import APIError
from .fallback_sequencer import select_candidate
from .orchestrator import (
    complete_email_capture,
    decide_destination,
    decide_destination_by_serial,
    decide_fallback,
)
from .response_utils import error_response, success_response

__all__ = [
    "is_country_allowed",
    "select_candidate",
    "decide_destination",
    "decide_destination_by_serial",
    "decide_fallback",
    "complete_email_capture",
    "error_response",
    "success_response",
    "APIError",
]
