"""
Single-request data hook.

Wraps one parameterized remote operation into observable ``data``,
``loading`` and ``error`` state, with optional time-boxed caching shared
across hooks, optional client-side retry, and a guard that declines to start
a second request while one is already running.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from client.errors import error_from_exception
from client.models import ApiError
from .base import BaseHook, Callback, invoke, unwrap
from .cache import RESPONSE_CACHE, ResponseCache, build_cache_key
from .retry import RetryPolicy, with_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[..., Awaitable[Any]]


class ApiHook(BaseHook, Generic[T]):
    """Observable state around one remote operation"""

    def __init__(
        self,
        operation: Operation,
        *,
        name: Optional[str] = None,
        initial_data: Optional[T] = None,
        cache_ttl: float = 0.0,
        retry: Optional[RetryPolicy] = None,
        on_success: Callback = None,
        on_error: Callback = None,
        on_unauthorized: Callback = None,
        cache: Optional[ResponseCache] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize the hook

        Args:
            operation: Coroutine function returning an ApiResponse, an
                ApiError or a raw payload; it may also raise
            name: Operation identity used in cache keys (default: qualified name)
            initial_data: Value of ``data`` before the first success and after reset
            cache_ttl: Seconds a cached result stays fresh; 0 disables caching
            retry: Retry policy for transient failures (default: no retry)
            cache: Cache to use (default: the process-wide cache)
            sleep: Coroutine used for retry delays
        """
        super().__init__(on_success=on_success, on_error=on_error, on_unauthorized=on_unauthorized)
        self._operation = operation
        qualname = getattr(operation, "__qualname__", type(operation).__qualname__)
        self.operation_id = name or f"{operation.__module__}.{qualname}"
        self.initial_data = initial_data
        self.data: Optional[T] = initial_data
        self.cache_ttl = cache_ttl
        self.retry = retry or RetryPolicy()
        self._cache = cache if cache is not None else RESPONSE_CACHE
        self._sleep = sleep
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def execute(self, *args: Any, **kwargs: Any) -> Optional[T]:
        """Run the operation, or serve a fresh cached result

        Returns:
            The unwrapped payload on success, the last resolved value when a
            call is already in flight, or None on failure
        """
        key = build_cache_key(self.operation_id, args, kwargs)

        if self.cache_ttl > 0:
            entry = self._cache.get(key, self.cache_ttl)
            if entry is not None:
                logger.debug(f"Serving {self.operation_id} from cache")
                self.data = entry.data
                self.loading = False
                self._clear_error()
                await invoke(self._on_success, entry.data)
                return entry.data

        if self._in_flight:
            logger.debug(f"{self.operation_id} already in flight, not starting another request")
            return self.data

        self._in_flight = True
        self.loading = True
        self._clear_error()
        try:
            result = await with_retry(
                lambda: self._operation(*args, **kwargs),
                self.retry,
                sleep=self._sleep,
                description=self.operation_id,
            )

            if isinstance(result, ApiError):
                self.loading = False
                await self._report_failure(result, self.operation_id)
                return None

            data = unwrap(result)
            if self.cache_ttl > 0:
                self._cache.put(key, data)
            self.data = data
            self.loading = False
            await invoke(self._on_success, data)
            return data
        finally:
            self._in_flight = False
            self.loading = False

    async def refetch_quietly(self, *args: Any, **kwargs: Any) -> Optional[T]:
        """Re-run the operation in the background

        Skips the cache read and the retry policy. A failure is only logged:
        ``data`` and ``error`` keep their current values.
        """
        if self._in_flight:
            return self.data

        self._in_flight = True
        try:
            try:
                result = await self._operation(*args, **kwargs)
            except Exception as e:
                result = error_from_exception(e)

            if isinstance(result, ApiError):
                logger.warning(f"Background refresh of {self.operation_id} failed: {result.message}")
                return self.data

            data = unwrap(result)
            if self.cache_ttl > 0:
                self._cache.put(build_cache_key(self.operation_id, args, kwargs), data)
            self.data = data
            self._clear_error()
            await invoke(self._on_success, data)
            return data
        finally:
            self._in_flight = False

    def reset(self) -> None:
        """Back to the initial state; cached results are kept"""
        self.data = self.initial_data
        self.loading = False
        self._clear_error()
