"""Data hooks: observable fetch state on top of the API client"""

from .cache import RESPONSE_CACHE, CacheEntry, ResponseCache, build_cache_key
from .retry import Backoff, RetryPolicy, with_retry
from .single_fetch import ApiHook
from .pagination import (
    MissingIdentityError,
    NormalizedPage,
    PaginatedApiHook,
    ResponseShapeError,
    RuleBasedNormalizer,
    ShapeRule,
    default_normalizer,
    merge_items,
)
from .polling import PollHandle, Poller

__all__ = [
    "RESPONSE_CACHE",
    "CacheEntry",
    "ResponseCache",
    "build_cache_key",
    "Backoff",
    "RetryPolicy",
    "with_retry",
    "ApiHook",
    "MissingIdentityError",
    "NormalizedPage",
    "PaginatedApiHook",
    "ResponseShapeError",
    "RuleBasedNormalizer",
    "ShapeRule",
    "default_normalizer",
    "merge_items",
    "PollHandle",
    "Poller",
]
