"""Error taxonomy and conversion of every failure path into an ApiError"""

import logging
from enum import Enum
from typing import Optional

import httpx

from settings import ACCOUNT_DELETED_ERROR_CODE
from .models import ApiError

logger = logging.getLogger(__name__)

ACCOUNT_DELETED_MESSAGE = "User no longer exists"

# Failures worth retrying client-side: offline, timeout, rate limit, server side
TRANSIENT_STATUS_CODES = frozenset({0, 408, 429})


class ErrorKind(str, Enum):
    """Coarse error categories used for display and retry decisions"""
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    NETWORK = "network"
    SERVER = "server"
    UNKNOWN = "unknown"


class ApiRequestError(Exception):
    """Raised by operation code that wants to fail with a normalized error"""

    def __init__(self, error: ApiError):
        super().__init__(error.message)
        self.error = error


class RefreshError(Exception):
    """Credential refresh failed; every waiter of the cycle receives the same instance"""

    def __init__(self, error: ApiError, account_deleted: bool = False):
        super().__init__(error.message)
        self.error = error
        self.account_deleted = account_deleted


def timeout_error() -> ApiError:
    return ApiError(
        status="timeout",
        message="Request timeout. Please check your internet connection.",
        status_code=408,
    )


def network_error() -> ApiError:
    return ApiError(
        status="network_error",
        message="Network error. Please check your internet connection.",
        status_code=0,
    )


def unknown_error(message: Optional[str] = None, status_code: int = 500) -> ApiError:
    return ApiError(
        status="unknown_error",
        message=message or "An unexpected error occurred.",
        status_code=status_code,
    )


def error_from_response(response: httpx.Response) -> ApiError:
    """Normalize an HTTP error response

    The server-supplied error body wins when it is a JSON object; otherwise
    a generic error carrying the HTTP status is returned.
    """
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict) and body:
        return ApiError.from_payload(body, response.status_code)

    return unknown_error(
        f"Request failed with status {response.status_code}",
        status_code=response.status_code or 500,
    )


def error_from_exception(exc: BaseException) -> ApiError:
    """Normalize anything an operation may raise"""
    if isinstance(exc, ApiRequestError):
        return exc.error
    if isinstance(exc, RefreshError):
        return exc.error
    if isinstance(exc, httpx.TimeoutException):
        return timeout_error()
    if isinstance(exc, httpx.NetworkError):
        return network_error()
    if isinstance(exc, httpx.HTTPStatusError):
        return error_from_response(exc.response)
    if isinstance(exc, httpx.HTTPError):
        return unknown_error(str(exc) or None)
    return unknown_error(str(exc) or None)


def is_account_deleted(error: ApiError) -> bool:
    """True when the server says the account behind the credentials is gone"""
    if error.code == ACCOUNT_DELETED_ERROR_CODE:
        return True
    return ACCOUNT_DELETED_MESSAGE.lower() in error.message.lower()


def is_transient(error: ApiError) -> bool:
    """True for failures a client-side retry can fix"""
    return error.status_code in TRANSIENT_STATUS_CODES or error.status_code >= 500


def classify(error: ApiError) -> ErrorKind:
    code = error.status_code
    if error.status == "timeout" or code == 408:
        return ErrorKind.TIMEOUT
    if code == 0:
        return ErrorKind.NETWORK
    if code == 401:
        return ErrorKind.AUTHENTICATION
    if code == 403:
        return ErrorKind.AUTHORIZATION
    if code == 404:
        return ErrorKind.NOT_FOUND
    if code == 429:
        return ErrorKind.RATE_LIMITED
    if 400 <= code < 500:
        return ErrorKind.VALIDATION
    if code >= 500:
        return ErrorKind.SERVER
    return ErrorKind.UNKNOWN
