"""
Country resolution for visitors.

Two entry points:
- resolve_country_code(): walks an ordered chain of IP geolocation
  providers (client context, one attempt each, short timeout).
- resolve_request_country(): server context. Trusts the edge country
  header, falls back to one IP lookup for the forwarded client address.

Neither ever raises. When nothing works the sentinel "XX" comes back and
the country gate treats it as unknown.
"""

import ipaddress
import logging
import os
import re
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

import httpx

from .constants import (
    CLOUDFLARE_TRACE_URL,
    EDGE_COUNTRY_HEADERS,
    GEO_LOOKUP_TIMEOUT,
    IPAPI_COUNTRY_URL,
    IPAPI_IP_JSON_URL,
    IPAPI_JSON_URL,
    IPWHOIS_IP_URL,
    IPWHOIS_URL,
    UNKNOWN_COUNTRY,
)
from .http_client import get_http_client
from .logging_utils import log_external_call
from .request_utils import get_client_ip

logger = logging.getLogger(__name__)

GEO_LOOKUP_TIMEOUT_SECONDS = float(
    os.environ.get("GEO_LOOKUP_TIMEOUT_SECONDS", GEO_LOOKUP_TIMEOUT)
)

_TRACE_LOC_REGEX = re.compile(r"\bloc=([A-Z]{2})\b")


def normalize_country_code(value) -> str:
    """Uppercase two-letter code, or '' when the value is unusable."""
    code = value.strip().upper() if isinstance(value, str) else ""
    if len(code) == 2 and code.isalpha():
        return code
    return ""


def _usable(code: str) -> bool:
    return bool(code) and code != UNKNOWN_COUNTRY


def _parse_ipapi(response: httpx.Response) -> str:
    return normalize_country_code(response.json().get("country_code"))


def _parse_ipwhois(response: httpx.Response) -> str:
    data = response.json()
    if data.get("success") is False:
        return ""
    return normalize_country_code(data.get("country_code"))


def _parse_cloudflare_trace(response: httpx.Response) -> str:
    match = _TRACE_LOC_REGEX.search(response.text)
    return normalize_country_code(match.group(1)) if match else ""


@dataclass(frozen=True)
class GeoProvider:
    """One geolocation service in the resolution chain."""

    name: str
    url: str
    parse: Callable[[httpx.Response], str]
    ip_url: Optional[str] = None  # template with {ip}; None if the provider can't take an IP

    def url_for(self, client_ip: Optional[str]) -> Optional[str]:
        if client_ip is None:
            return self.url
        if self.ip_url is None:
            return None
        return self.ip_url.format(ip=client_ip)


DEFAULT_PROVIDER_CHAIN: tuple[GeoProvider, ...] = (
    GeoProvider("ipapi", IPAPI_JSON_URL, _parse_ipapi, IPAPI_IP_JSON_URL),
    GeoProvider("ipwhois", IPWHOIS_URL, _parse_ipwhois, IPWHOIS_IP_URL),
    GeoProvider("cloudflare_trace", CLOUDFLARE_TRACE_URL, _parse_cloudflare_trace),
)


def is_public_ip(ip: Optional[str]) -> bool:
    """True for a routable address worth sending to a geolocation service."""
    if not ip or ip == "unknown":
        return False
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return address.is_global


async def _query_provider(provider: GeoProvider, url: str, timeout: float) -> str:
    start = time.time()
    try:
        client = get_http_client()
        response = await client.get(url, timeout=timeout)
        response.raise_for_status()
        code = provider.parse(response)
    except Exception as e:
        log_external_call(
            logger, provider.name, "country_lookup", False,
            (time.time() - start) * 1000, error=str(e) or type(e).__name__,
        )
        return ""

    success = _usable(code)
    log_external_call(
        logger, provider.name, "country_lookup", success,
        (time.time() - start) * 1000,
        error=None if success else "no usable country code",
    )
    return code if success else ""


async def resolve_country_code(
    client_ip: Optional[str] = None,
    providers: Sequence[GeoProvider] = DEFAULT_PROVIDER_CHAIN,
    timeout: float = GEO_LOOKUP_TIMEOUT_SECONDS,
) -> str:
    """
    Resolve a country code through the provider chain.

    Args:
        client_ip: Address to look up; None looks up the caller's own address
        providers: Ordered providers, each tried once
        timeout: Per-provider timeout in seconds

    Returns:
        Uppercase two-letter code, or "XX" when every provider failed
    """
    for provider in providers:
        url = provider.url_for(client_ip)
        if url is None:
            continue
        code = await _query_provider(provider, url, timeout)
        if code:
            return code

    logger.info("Could not resolve country from any provider", extra={"client_ip": client_ip})
    return UNKNOWN_COUNTRY


def get_edge_country(event: dict) -> str:
    """Country from a trusted edge header (Cloudflare/CloudFront), or ''."""
    headers = event.get("headers") or {}
    lowered = {key.lower(): value for key, value in headers.items()}
    for name in EDGE_COUNTRY_HEADERS:
        code = normalize_country_code(lowered.get(name))
        if _usable(code):
            return code
    return ""


def lookup_country_for_ip(
    ip: str,
    client: Optional[httpx.Client] = None,
    timeout: float = GEO_LOOKUP_TIMEOUT_SECONDS,
) -> str:
    """Single synchronous ipapi.co lookup for one address. Returns "XX" on failure."""
    if not is_public_ip(ip):
        return UNKNOWN_COUNTRY

    url = IPAPI_COUNTRY_URL.format(ip=ip)
    start = time.time()
    try:
        if client is not None:
            response = client.get(url, timeout=timeout)
        else:
            response = httpx.get(url, timeout=timeout, follow_redirects=True)
        response.raise_for_status()
        code = normalize_country_code(response.text)
    except Exception as e:
        log_external_call(
            logger, "ipapi", "country_code", False,
            (time.time() - start) * 1000, error=str(e) or type(e).__name__,
        )
        return UNKNOWN_COUNTRY

    success = _usable(code)
    log_external_call(
        logger, "ipapi", "country_code", success, (time.time() - start) * 1000,
        error=None if success else f"unexpected body: {response.text[:20]!r}",
    )
    return code if success else UNKNOWN_COUNTRY


def resolve_request_country(event: dict, client: Optional[httpx.Client] = None) -> str:
    """
    Resolve the visitor country for an incoming request.

    Prefers the edge header, then one lookup keyed by the forwarded client IP.
    """
    code = get_edge_country(event)
    if code:
        return code

    try:
        return lookup_country_for_ip(get_client_ip(event), client=client)
    except Exception as e:
        logger.warning(f"Country resolution failed: {e}")
        return UNKNOWN_COUNTRY
