"""HTTP request header names and values sent with every API call"""

from typing import Dict

from settings import CLIENT_PLATFORM, CLIENT_VERSION

AUTHORIZATION_HEADER = "Authorization"
CLIENT_VERSION_HEADER = "X-Client-Version"
PLATFORM_HEADER = "X-Platform"
REQUEST_TIME_HEADER = "X-Request-Time"

# Headers that must never reach the logs in clear text
SENSITIVE_HEADERS = frozenset({"authorization", "x-api-key", "cookie"})

DEFAULT_HEADERS: Dict[str, str] = {
    "Accept": "application/json",
    CLIENT_VERSION_HEADER: CLIENT_VERSION,
    PLATFORM_HEADER: CLIENT_PLATFORM,
}
