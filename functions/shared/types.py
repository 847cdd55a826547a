"""
Shared Type Definitions for Lambda Handlers.

TypedDicts for the store rows the redirect logic reads.
"""

from typing import Optional, TypedDict


class DestinationRule(TypedDict, total=False):
    """A web_results row: an offer link with an optional country allow-list."""

    id: str
    link: str
    title: str
    name: str
    allowed_countries: Optional[list[str]]
    fallback_link: Optional[str]
    is_active: bool
    serial_number: int
    wr_page: int


class FallbackUrl(TypedDict, total=False):
    """A fallback_urls row: one candidate of the round-robin pool."""

    id: str
    url: str
    sequence_order: int
    is_active: bool
    allowed_countries: Optional[list[str]]
    created_at: str
    updated_at: str


class Prelanding(TypedDict, total=False):
    """Optional email-capture interstitial tied to a destination rule."""

    id: str
    web_result_id: Optional[str]
    is_active: bool
    headline: str
    description: Optional[str]
    email_placeholder: Optional[str]
    cta_button_text: Optional[str]
    logo_url: Optional[str]
    main_image_url: Optional[str]
    background_color: Optional[str]
    background_image_url: Optional[str]


class LandingSettings(TypedDict):
    """Interstitial redirect settings."""

    site_name: str
    redirect_enabled: bool
    redirect_delay_seconds: int

