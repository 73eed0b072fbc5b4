"""HTTP header constants package for the DashStream client"""

from .constants import (
    AUTHORIZATION_HEADER,
    CLIENT_VERSION_HEADER,
    PLATFORM_HEADER,
    REQUEST_TIME_HEADER,
    SENSITIVE_HEADERS,
    DEFAULT_HEADERS,
)

__all__ = [
    "AUTHORIZATION_HEADER",
    "CLIENT_VERSION_HEADER",
    "PLATFORM_HEADER",
    "REQUEST_TIME_HEADER",
    "SENSITIVE_HEADERS",
    "DEFAULT_HEADERS",
]
