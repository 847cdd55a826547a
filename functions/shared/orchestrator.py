"""
Redirect orchestration for every visitor entry point.

A journey moves strictly forward:

    RESOLVING -> DECIDING -> (REDIRECTING | AWAITING_EMAIL_CAPTURE) -> NAVIGATED

Handlers resolve the visitor country first, then call one of the decide_*
functions. Each returns a RedirectDecision naming where the visitor goes
next. The visitor always ends up on some page: the destination, the
country-gated page, the regional-unavailability page or the not-found page.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
from urllib.parse import quote, urlparse

from .constants import CURSOR_SCOPE_COUNTRY, CURSOR_SCOPE_GLOBAL
from .country_gate import is_country_allowed, normalize_user_country
from .dynamo import (
    get_active_prelanding_for_rule,
    get_destination_rule,
    get_destination_rule_by_serial,
    get_landing_settings,
    get_prelanding,
    list_fallback_urls,
    put_email_capture,
    read_sequence_cursor,
    write_sequence_cursor,
)
from .errors import (
    InvalidRequestError,
    InvalidTransitionError,
    NoCandidateForCountryError,
    NoFallbackConfiguredError,
)
from .fallback_sequencer import Selection, cursor_key, eligible_candidates, select_candidate
from .logging_utils import log_redirect_decision
from .metrics import emit_error_metric, emit_redirect_metric
from .tracking import track_click

logger = logging.getLogger(__name__)

NOT_FOUND_PATH = os.environ.get("NOT_FOUND_PATH", "/landing")
GATED_PATH = os.environ.get("GATED_PATH", "/go")
UNAVAILABLE_PATH = os.environ.get("UNAVAILABLE_PATH", "/unavailable")
PRELANDING_PATH = os.environ.get("PRELANDING_PATH", "/prelanding")

_scope = os.environ.get("CURSOR_SCOPE", CURSOR_SCOPE_GLOBAL).lower()
CURSOR_SCOPE = _scope if _scope in (CURSOR_SCOPE_GLOBAL, CURSOR_SCOPE_COUNTRY) else CURSOR_SCOPE_GLOBAL

EMAIL_REGEX = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class JourneyState(str, Enum):
    RESOLVING = "resolving"
    DECIDING = "deciding"
    REDIRECTING = "redirecting"
    AWAITING_EMAIL_CAPTURE = "awaiting_email_capture"
    NAVIGATED = "navigated"


_TRANSITIONS = {
    JourneyState.RESOLVING: {JourneyState.DECIDING},
    JourneyState.DECIDING: {JourneyState.REDIRECTING, JourneyState.AWAITING_EMAIL_CAPTURE},
    JourneyState.REDIRECTING: {JourneyState.NAVIGATED},
    JourneyState.AWAITING_EMAIL_CAPTURE: {JourneyState.NAVIGATED},
    JourneyState.NAVIGATED: set(),
}


class RedirectJourney:
    """
    Forward-only state tracker for one visitor flow.

    Every transition is recorded as an analytics click. Recording is
    fire-and-forget (track_click swallows store errors).
    """

    def __init__(self, flow: str, session_id: Optional[str] = None, page: Optional[str] = None):
        self.flow = flow
        self.session_id = session_id
        self.page = page
        self.state = JourneyState.RESOLVING
        self.history = [JourneyState.RESOLVING]

    def advance(
        self,
        state: JourneyState,
        click_type: Optional[str] = None,
        item_id: Optional[str] = None,
        item_name: Optional[str] = None,
        original_link: Optional[str] = None,
        lid: Optional[int] = None,
    ) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise InvalidTransitionError(self.state.value, state.value)

        self.state = state
        self.history.append(state)

        track_click(
            click_type or f"{self.flow}_{state.value}",
            self.session_id,
            item_id=item_id,
            item_name=item_name,
            page=self.page,
            lid=lid,
            original_link=original_link,
        )


@dataclass
class RedirectDecision:
    """Where a visitor goes next and why."""

    flow: str
    outcome: str
    location: str
    country: str
    state: JourneyState
    rule_id: Optional[str] = None
    prelanding_id: Optional[str] = None
    allowed: Optional[bool] = None
    index: Optional[int] = None
    delay_seconds: int = 0
    auto_redirect: bool = True
    history: list = field(default_factory=list)

    @property
    def is_terminal_page(self) -> bool:
        """True when the visitor was sent to one of our own fallback pages."""
        return self.outcome in (
            "not_found", "no_fallback_configured", "no_candidate_for_country",
        )


def gated_location(rule_id: str) -> str:
    return f"{GATED_PATH}?id={quote(str(rule_id), safe='')}"


def prelanding_location(prelanding_id: str, destination: Optional[str] = None) -> str:
    location = f"{PRELANDING_PATH}/{quote(str(prelanding_id), safe='')}"
    if destination:
        location += f"?redirect={quote(destination, safe='')}"
    return location


def is_safe_redirect(url: Optional[str]) -> bool:
    """Absolute http(s) URL or a site-relative path (not protocol-relative)."""
    if not url:
        return False
    if url.startswith("/"):
        return not url.startswith("//")
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _finish(journey: RedirectJourney, decision: RedirectDecision) -> RedirectDecision:
    decision.history = [state.value for state in journey.history]
    log_redirect_decision(
        logger, decision.flow, decision.outcome, decision.country,
        decision.location, rule_id=decision.rule_id,
    )
    emit_redirect_metric(decision.flow, decision.outcome)
    return decision


def _redirect(
    journey: RedirectJourney,
    outcome: str,
    location: str,
    country: str,
    click_type: Optional[str] = None,
    immediate: bool = True,
    **fields,
) -> RedirectDecision:
    journey.advance(
        JourneyState.REDIRECTING,
        click_type=click_type,
        item_id=fields.get("rule_id"),
        item_name=outcome,
        original_link=location,
    )
    if immediate:
        journey.advance(JourneyState.NAVIGATED)

    return _finish(journey, RedirectDecision(
        flow=journey.flow,
        outcome=outcome,
        location=location,
        country=country,
        state=journey.state,
        **fields,
    ))


def _decide_for_rule(
    journey: RedirectJourney,
    rule: Optional[dict],
    rule_ref: str,
    country: str,
    lid: Optional[int] = None,
) -> RedirectDecision:
    journey.advance(JourneyState.DECIDING, click_type="web_result", item_id=rule_ref, lid=lid,
                    original_link=(rule or {}).get("link"))

    if not rule or not rule.get("link"):
        return _redirect(journey, "not_found", NOT_FOUND_PATH, country, rule_id=rule_ref)

    rule_id = str(rule["id"])

    if not is_country_allowed(rule.get("allowed_countries"), country):
        return _redirect(
            journey, "denied", gated_location(rule_id), country,
            click_type="country_gate_denied", rule_id=rule_id, allowed=False,
        )

    prelanding = get_active_prelanding_for_rule(rule_id)
    if prelanding:
        location = prelanding_location(prelanding["id"], rule["link"])
        journey.advance(
            JourneyState.AWAITING_EMAIL_CAPTURE,
            click_type="prelanding_view",
            item_id=str(prelanding["id"]),
            original_link=rule["link"],
        )
        return _finish(journey, RedirectDecision(
            flow=journey.flow,
            outcome="prelanding",
            location=location,
            country=country,
            state=journey.state,
            rule_id=rule_id,
            prelanding_id=str(prelanding["id"]),
            allowed=True,
        ))

    return _redirect(journey, "allowed", rule["link"], country, rule_id=rule_id, allowed=True)


def decide_destination(
    rule_id: str,
    country: str,
    session_id: Optional[str] = None,
    page: str = "/r",
) -> RedirectDecision:
    """
    Direct destination flow for one rule id.

    Denied visitors go to the gated page carrying the rule id. Allowed
    visitors go through the rule's active prelanding if one exists,
    otherwise straight to the rule link. A missing rule (or a store
    failure while reading it) sends the visitor to the not-found page.
    """
    country = normalize_user_country(country)
    journey = RedirectJourney("destination", session_id, page)
    rule = get_destination_rule(rule_id)
    return _decide_for_rule(journey, rule, rule_id, country)


def decide_destination_by_serial(
    lid: int,
    country: str,
    session_id: Optional[str] = None,
    page: str = "/link",
) -> RedirectDecision:
    """Destination flow for the lid-th active rule (1-based, serial_number order)."""
    country = normalize_user_country(country)
    journey = RedirectJourney("destination", session_id, page)
    rule = get_destination_rule_by_serial(lid)
    rule_ref = str(rule["id"]) if rule else f"lid:{lid}"
    return _decide_for_rule(journey, rule, rule_ref, country, lid=lid)


def next_fallback_selection(country: str) -> Selection:
    """
    Load the pool, select for this country and advance the cursor.

    A pool that cannot be read counts as unconfigured. A failed cursor
    write is logged; the selection still stands.

    Raises:
        NoFallbackConfiguredError: no active, servable candidates
        NoCandidateForCountryError: none of them allows this country
    """
    country = normalize_user_country(country)

    try:
        rows = list_fallback_urls(active_only=True)
    except Exception as e:
        logger.error(f"Failed to load fallback pool: {e}")
        rows = []

    key = cursor_key(country, CURSOR_SCOPE)
    try:
        selection = select_candidate(eligible_candidates(rows), country, read_sequence_cursor(key))
    except NoFallbackConfiguredError:
        logger.error("Fallback pool has no active candidates - configuration error")
        emit_error_metric("no_fallback_configured", handler="fallback")
        raise

    try:
        write_sequence_cursor(selection.next_cursor, key)
    except Exception as e:
        logger.warning(f"Failed to persist sequence cursor {key}: {e}")

    return selection


def decide_fallback(
    country: str,
    session_id: Optional[str] = None,
    rule_id: Optional[str] = None,
    page: str = "/go",
    immediate: bool = False,
) -> RedirectDecision:
    """
    Generic fallback flow: next URL of the round-robin pool.

    The cursor is read, the selection made, and the next cursor written
    back eagerly. The read and the write are separate calls, so concurrent
    visitors may see the same candidate.

    Args:
        country: Resolved visitor country or "XX"
        session_id: Analytics session
        rule_id: Rule that sent the visitor here (gated flow), for analytics
        page: Entry path, for analytics
        immediate: Navigate now (manual continue) instead of after the delay
    """
    country = normalize_user_country(country)
    journey = RedirectJourney("fallback", session_id, page)
    journey.advance(JourneyState.DECIDING, click_type="landing2_view", item_id=rule_id)

    try:
        selection = next_fallback_selection(country)
    except NoFallbackConfiguredError:
        return _redirect(journey, "no_fallback_configured", NOT_FOUND_PATH, country, rule_id=rule_id)
    except NoCandidateForCountryError:
        logger.info(f"No fallback candidate allows {country}")
        return _redirect(journey, "no_candidate_for_country", UNAVAILABLE_PATH, country, rule_id=rule_id)

    settings = get_landing_settings()

    return _redirect(
        journey,
        "fallback",
        selection.url,
        country,
        click_type="fallback_redirect",
        immediate=immediate,
        rule_id=rule_id,
        index=selection.index,
        delay_seconds=0 if immediate else settings["redirect_delay_seconds"],
        auto_redirect=settings["redirect_enabled"],
    )


def resolve_prelanding_target(prelanding: Optional[dict], redirect_url: Optional[str]) -> Optional[str]:
    """
    Destination after an email capture.

    The link of the rule the prelanding belongs to wins. A redirect carried
    from the previous step is honoured only when it is that same link or a
    site-relative path; any other absolute URL is ignored.
    """
    rule_link = None
    rule_id = (prelanding or {}).get("web_result_id")
    if rule_id:
        rule = get_destination_rule(rule_id, active_only=False)
        if rule and rule.get("link"):
            rule_link = rule["link"]

    if redirect_url:
        if redirect_url == rule_link or (
            redirect_url.startswith("/") and is_safe_redirect(redirect_url)
        ):
            return redirect_url
        logger.warning("Ignoring untrusted prelanding redirect", extra={"redirect": redirect_url[:200]})

    return rule_link


def complete_email_capture(
    prelanding_id: str,
    email: str,
    redirect_url: Optional[str] = None,
    session_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    country: Optional[str] = None,
) -> RedirectDecision:
    """
    Email-capture flow: persist the address, then navigate to the destination.

    Raises:
        InvalidRequestError: the email address is not valid
    """
    email = (email or "").strip().lower()
    if not EMAIL_REGEX.match(email):
        raise InvalidRequestError("Please enter a valid email address")

    country = normalize_user_country(country)
    journey = RedirectJourney("prelanding", session_id, f"{PRELANDING_PATH}/{prelanding_id}")
    prelanding = get_prelanding(prelanding_id)
    journey.advance(JourneyState.DECIDING, item_id=prelanding_id)

    if not prelanding or not prelanding.get("is_active", True):
        return _redirect(journey, "not_found", NOT_FOUND_PATH, country, prelanding_id=prelanding_id)

    try:
        put_email_capture(prelanding_id, email, session_id=session_id, ip_address=ip_address)
    except Exception as e:
        logger.error(f"Failed to store email capture for prelanding {prelanding_id}: {e}")

    target = resolve_prelanding_target(prelanding, redirect_url)
    if not target:
        return _redirect(journey, "not_found", NOT_FOUND_PATH, country, prelanding_id=prelanding_id)

    return _redirect(
        journey, "captured", target, country,
        click_type="prelanding_submit",
        prelanding_id=prelanding_id,
        rule_id=prelanding.get("web_result_id"),
    )
