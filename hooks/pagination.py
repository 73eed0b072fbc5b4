"""
Paginated data hook.

Accumulates successive pages of a listing into one ordered list,
de-duplicated by an identity field, and tracks whether more pages exist.

Listing endpoints do not agree on a response shape, so turning a raw page
into items and a total is a pluggable strategy. The default strategy is an
ordered list of shape rules; callers with an unusual endpoint pass their own
normalizer.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence

from client.models import ApiError, ApiResponse
from settings import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT
from .base import BaseHook, Callback, invoke, unwrap
from .retry import RetryPolicy, with_retry

logger = logging.getLogger(__name__)

# Keys under which list endpoints have been seen returning their records
DOMAIN_LIST_KEYS = (
    "items",
    "bookings",
    "offers",
    "services",
    "notifications",
    "users",
    "professionals",
    "payments",
    "vehicles",
    "quickFixes",
    "memberships",
    "transactions",
    "results",
)

# Keys that may carry the total record count, checked in order
TOTAL_KEYS = ("total", "totalCount", "count", "results")


class ResponseShapeError(ValueError):
    """No rule recognised the shape of a page"""


class MissingIdentityError(ValueError):
    """A record lacks the identity field used for de-duplication"""


@dataclass
class NormalizedPage:
    items: List[Any]
    total: int


@dataclass(frozen=True)
class ShapeRule:
    """One recognisable page shape

    Attributes:
        name: Rule name, used in logs
        extract: Returns the page's items, or None when the shape does not match
    """
    name: str
    extract: Callable[[Any], Optional[List[Any]]]


Normalizer = Callable[[Any], NormalizedPage]


def _bare_list(payload: Any) -> Optional[List[Any]]:
    return payload if isinstance(payload, list) else None


def _data_envelope(payload: Any) -> Optional[List[Any]]:
    if isinstance(payload, Mapping) and isinstance(payload.get("data"), list):
        return payload["data"]
    return None


def _domain_keys(payload: Any) -> Optional[List[Any]]:
    if not isinstance(payload, Mapping):
        return None
    for key in DOMAIN_LIST_KEYS:
        if isinstance(payload.get(key), list):
            return payload[key]
    return None


def _nested_data(payload: Any) -> Optional[List[Any]]:
    # {"data": {"bookings": [...]}} as returned by endpoints that double-wrap
    if isinstance(payload, Mapping) and isinstance(payload.get("data"), Mapping):
        return _domain_keys(payload["data"])
    return None


def _empty(payload: Any) -> Optional[List[Any]]:
    return [] if payload is None else None


DEFAULT_RULES = (
    ShapeRule("bare_list", _bare_list),
    ShapeRule("data_envelope", _data_envelope),
    ShapeRule("domain_keys", _domain_keys),
    ShapeRule("nested_data", _nested_data),
    ShapeRule("empty", _empty),
)


def _find_total(payload: Any) -> Optional[int]:
    if not isinstance(payload, Mapping):
        return None

    pagination = payload.get("pagination")
    meta = payload.get("meta")
    if not isinstance(pagination, Mapping) and isinstance(meta, Mapping):
        pagination = meta.get("pagination")
    if isinstance(pagination, Mapping) and isinstance(pagination.get("total"), int):
        return pagination["total"]

    for key in TOTAL_KEYS:
        value = payload.get(key)
        if isinstance(value, int) and not isinstance(value, bool):
            return value

    nested = payload.get("data")
    if isinstance(nested, Mapping):
        return _find_total(nested)
    return None


class RuleBasedNormalizer:
    """Tries each shape rule in order; the first match wins"""

    def __init__(self, rules: Sequence[ShapeRule] = DEFAULT_RULES):
        self.rules = tuple(rules)

    def __call__(self, raw: Any) -> NormalizedPage:
        total: Optional[int] = None
        if isinstance(raw, ApiResponse):
            if raw.pagination is not None and raw.pagination.total is not None:
                total = raw.pagination.total
            elif raw.model_extra:
                total = _find_total(raw.model_extra)
            payload = raw.data
        else:
            payload = raw

        for rule in self.rules:
            items = rule.extract(payload)
            if items is not None:
                logger.debug(f"Page matched shape rule '{rule.name}' with {len(items)} items")
                if total is None:
                    total = _find_total(payload)
                return NormalizedPage(items=list(items), total=total if total is not None else len(items))

        raise ResponseShapeError(f"Unrecognised page shape: {type(payload).__name__}")


default_normalizer = RuleBasedNormalizer()


def identity_of(item: Any, id_field: str) -> Any:
    if isinstance(item, Mapping):
        value = item.get(id_field)
    else:
        value = getattr(item, id_field, None)
    if value is None:
        raise MissingIdentityError(f"Record has no '{id_field}' field: {item!r}")
    return value


def merge_items(existing: Sequence[Any], incoming: Sequence[Any], id_field: str) -> List[Any]:
    """Append ``incoming`` to ``existing`` keeping one record per identity

    A repeated identity keeps the position of its first occurrence and the
    value of its last.
    """
    merged: Dict[Any, Any] = {}
    for item in [*existing, *incoming]:
        merged[identity_of(item, id_field)] = item
    return list(merged.values())


class PaginatedApiHook(BaseHook):
    """Accumulating state around a page-based listing operation

    Attributes:
        items: Accumulated, de-duplicated records
        page: Next page to request (starts at 1)
        limit: Page size
        total: Total records reported by the last page
        has_more: Whether another ``load_more`` would fetch anything
    """

    def __init__(
        self,
        operation: Callable[[Dict[str, Any]], Awaitable[Any]],
        *,
        limit: int = DEFAULT_PAGE_LIMIT,
        normalizer: Optional[Normalizer] = None,
        id_field: str = "_id",
        retry: Optional[RetryPolicy] = None,
        on_success: Callback = None,
        on_error: Callback = None,
        on_unauthorized: Callback = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize the hook

        Args:
            operation: Coroutine function called with the caller's params
                plus ``page`` and ``limit``
            limit: Page size, capped at MAX_PAGE_LIMIT
            normalizer: Page shape strategy (default: default_normalizer)
            id_field: Record field used for de-duplication
        """
        super().__init__(on_success=on_success, on_error=on_error, on_unauthorized=on_unauthorized)
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self._operation = operation
        self.limit = min(limit, MAX_PAGE_LIMIT)
        self.normalizer = normalizer or default_normalizer
        self.id_field = id_field
        self.retry = retry or RetryPolicy()
        self._sleep = sleep
        self._generation = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self.items: List[Any] = []
        self.page = 1
        self.total = 0
        self.has_more = True

    @property
    def description(self) -> str:
        return getattr(self._operation, "__qualname__", "listing")

    async def load_more(self, params: Optional[Mapping[str, Any]] = None) -> None:
        """Fetch the next page; a no-op while loading or when nothing is left"""
        if self.loading or not self.has_more:
            return

        generation = self._generation
        page = self.page
        query = {**(params or {}), "page": page, "limit": self.limit}

        self.loading = True
        self._idle.clear()
        self._clear_error()
        try:
            result = await with_retry(
                lambda: self._operation(query),
                self.retry,
                sleep=self._sleep,
                description=f"{self.description} page {page}",
            )

            if generation != self._generation:
                logger.debug(f"Discarding page {page} of {self.description} loaded before a reset")
                return

            if isinstance(result, ApiError):
                await self._report_failure(result, f"{self.description} page {page}")
                return

            try:
                normalized = self.normalizer(result)
                base = self.items if page > 1 else []
                merged = merge_items(base, normalized.items, self.id_field)
            except (ResponseShapeError, MissingIdentityError) as e:
                error = ApiError(status="invalid_response", message=str(e), status_code=500)
                await self._report_failure(error, f"{self.description} page {page}")
                return

            self.items = merged
            self.total = normalized.total
            self.has_more = page * self.limit < self.total
            self.page = page + 1
            logger.debug(
                f"{self.description}: page {page} loaded, {len(self.items)}/{self.total} items, "
                f"has_more={self.has_more}"
            )
            await invoke(self._on_success, unwrap(result))
        finally:
            self.loading = False
            self._idle.set()

    async def refresh(self, params: Optional[Mapping[str, Any]] = None) -> None:
        """Start over from page 1

        A page load already in flight is awaited and its result discarded
        before the first page is requested.
        """
        self._reset_state()
        await self._idle.wait()
        await self.load_more(params)

    def reset(self) -> None:
        """Clear accumulated items and pagination state without a request"""
        self._reset_state()

    def _reset_state(self) -> None:
        self._generation += 1
        self.items = []
        self.page = 1
        self.total = 0
        self.has_more = True
        self._clear_error()
