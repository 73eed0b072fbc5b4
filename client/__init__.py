"""DashStream API client package

Provides the authenticated transport with single-flight token refresh and
the normalized response/error envelopes every caller consumes.
"""

from .models import ApiError, ApiResponse, ErrorDetail, PaginationMeta, RequestDescriptor, ResponseMeta
from .errors import (
    ApiRequestError,
    ErrorKind,
    RefreshError,
    classify,
    error_from_exception,
    is_account_deleted,
    is_transient,
)
from .events import SessionEvents
from .refresh import RefreshCoordinator, RefreshState
from .http_client import ApiResult, HttpClient

__all__ = [
    "ApiError",
    "ApiResponse",
    "ErrorDetail",
    "PaginationMeta",
    "RequestDescriptor",
    "ResponseMeta",
    "ApiRequestError",
    "ErrorKind",
    "RefreshError",
    "classify",
    "error_from_exception",
    "is_account_deleted",
    "is_transient",
    "SessionEvents",
    "RefreshCoordinator",
    "RefreshState",
    "ApiResult",
    "HttpClient",
]
