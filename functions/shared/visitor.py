"""
Per-request visitor context: analytics session and resolved country.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

import httpx

from .country_resolver import resolve_request_country
from .logging_utils import set_session_id
from .request_utils import (
    SESSION_COOKIE_NAME,
    build_session_cookie,
    get_client_ip,
    get_cookie,
    get_header,
)
from .tracking import generate_session_id, record_session

logger = logging.getLogger(__name__)

SESSION_ID_REGEX = re.compile(r"^session_\d{1,16}_[a-z0-9]{1,16}$")


@dataclass
class Visit:
    session_id: str
    country: str
    client_ip: str
    is_new_session: bool

    def cookie_headers(self) -> dict:
        """Set-Cookie header when this request minted the session id."""
        if self.is_new_session:
            return {"Set-Cookie": build_session_cookie(self.session_id)}
        return {}


def get_session_id(event: dict) -> Optional[str]:
    """Session id from the cookie, ignoring malformed values."""
    session_id = get_cookie(event, SESSION_COOKIE_NAME)
    if session_id and SESSION_ID_REGEX.match(session_id):
        return session_id
    return None


def start_visit(event: dict, client: Optional[httpx.Client] = None) -> Visit:
    """
    Resolve the country and record the session for an incoming request.

    Never raises: resolution falls back to "XX" and session recording is
    fire-and-forget.
    """
    session_id = get_session_id(event)
    is_new_session = session_id is None
    if is_new_session:
        session_id = generate_session_id()
    set_session_id(session_id)

    client_ip = get_client_ip(event)
    country = resolve_request_country(event, client=client)

    record_session(
        session_id,
        ip_address=client_ip,
        country_code=country,
        user_agent=get_header(event, "user-agent"),
        referrer=get_header(event, "referer"),
    )

    return Visit(
        session_id=session_id,
        country=country,
        client_ip=client_ip,
        is_new_session=is_new_session,
    )
