"""
Shared constants for FunnelGate.
"""

# Sentinel returned when the visitor's country cannot be determined
UNKNOWN_COUNTRY = "XX"

# Distinguished allow-list value meaning "no country restriction"
WORLDWIDE = "WORLDWIDE"

# Allow-list aliases (lowercase token -> normalized value).
# Admins sometimes upload country names instead of ISO codes.
COUNTRY_ALIASES = {
    "worldwide": WORLDWIDE,
    "ww": WORLDWIDE,
    "india": "IN",
    "united states": "US",
    "usa": "US",
    "united kingdom": "GB",
    "uk": "GB",
}

# Trusted edge headers carrying the visitor country (lowercased)
EDGE_COUNTRY_HEADERS = (
    "cf-ipcountry",
    "cloudfront-viewer-country",
)

# Fallback candidates pointing here are spreadsheet import sources, never offers
EXCLUDED_URL_PATTERNS = ("docs.google.com/spreadsheets",)

# Geolocation providers
IPAPI_JSON_URL = "https://ipapi.co/json/"
IPAPI_IP_JSON_URL = "https://ipapi.co/{ip}/json/"
IPAPI_COUNTRY_URL = "https://ipapi.co/{ip}/country_code/"
IPWHOIS_URL = "https://ipwho.is/"
IPWHOIS_IP_URL = "https://ipwho.is/{ip}"
CLOUDFLARE_TRACE_URL = "https://www.cloudflare.com/cdn-cgi/trace"

# Timeouts
GEO_LOOKUP_TIMEOUT = 3.0

# Sequence cursor scopes
CURSOR_SCOPE_GLOBAL = "global"
CURSOR_SCOPE_COUNTRY = "country"
DEFAULT_CURSOR_KEY = "default"

# Redirect interstitial
DEFAULT_REDIRECT_DELAY_SECONDS = 5
MAX_REDIRECT_DELAY_SECONDS = 60

# Analytics click types
CLICK_TYPES = (
    "web_result",
    "prelanding_view",
    "prelanding_submit",
    "landing2_view",
    "fallback_redirect",
    "country_gate_denied",
    "consultation_view",
    "consultation_click",
)

# DynamoDB throttling error codes that should trigger retry
THROTTLING_ERRORS = (
    "ProvisionedThroughputExceededException",
    "RequestLimitExceeded",
    "ThrottlingException",
    "InternalServerError",
)
