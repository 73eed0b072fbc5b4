"""
DashStream API HTTP client.

Every call resolves to an ApiResponse or an ApiError; timeouts, offline
conditions and HTTP errors never escape as exceptions. A 401 triggers one
credential refresh through the RefreshCoordinator and one resend of the same
request carrying the new token.
"""
import asyncio
import logging
import random
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union

import httpx
from pydantic import ValidationError

from headers import AUTHORIZATION_HEADER, DEFAULT_HEADERS, REQUEST_TIME_HEADER, SENSITIVE_HEADERS
from settings import (
    API_BASE_URL,
    CONNECT_TIMEOUT,
    LOGOUT_PATH,
    RATE_LIMIT_DEFAULT_WAIT,
    REFRESH_TOKEN_PATH,
    REQUEST_TIMEOUT,
    UPLOAD_MAX_BACKOFF,
    UPLOAD_MAX_RETRIES,
    VERIFY_TOKEN_PATH,
)
from utils.jwt_utils import summarize_claims
from utils.storage import TokenStorage
from .errors import (
    RefreshError,
    error_from_response,
    is_account_deleted,
    network_error,
    timeout_error,
    unknown_error,
)
from .events import CallbackSlot, SessionEvents
from .models import ApiError, ApiResponse, RequestDescriptor
from .refresh import RefreshCoordinator

logger = logging.getLogger(__name__)

ApiResult = Union[ApiResponse, ApiError]


def _redact(headers: Mapping[str, str]) -> Dict[str, str]:
    return {
        name: "[REDACTED]" if name.lower() in SENSITIVE_HEADERS else value
        for name, value in headers.items()
    }


def _parse_number(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class HttpClient:
    """Authenticated JSON client for the DashStream REST API"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        storage: Optional[TokenStorage] = None,
        *,
        events: Optional[SessionEvents] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
        connect_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize the client

        Args:
            base_url: API root (default: API_BASE_URL setting)
            storage: Token store (creates a file-backed one if None)
            events: Session event registry shared with the application
            transport: httpx transport override, used by tests
            timeout: Total request timeout in seconds
            connect_timeout: Connection timeout in seconds
            clock: Wall clock in seconds, used for the rate limit window
            sleep: Coroutine used for every client-side wait
        """
        self.base_url = (base_url or API_BASE_URL).rstrip("/")
        self.storage = storage or TokenStorage()
        self.events = events or SessionEvents()
        self.refresh_coordinator = RefreshCoordinator(self.storage, self._request_new_tokens, self.events)
        self._transport = transport
        self._timeout = httpx.Timeout(timeout or REQUEST_TIMEOUT, connect=connect_timeout or CONNECT_TIMEOUT)
        self._clock = clock
        self._sleep = sleep
        self._rate_limit_until: Optional[float] = None
        self._refresh_callback = CallbackSlot(self.events)

    # Token helpers

    def set_auth_tokens(self, access_token: str, refresh_token: str) -> None:
        """Store a new credential pair, e.g. after login"""
        self.storage.save_tokens(access_token, refresh_token)
        self.refresh_coordinator.reset_invalidation()
        logger.debug("Tokens stored")

    def clear_auth_tokens(self) -> None:
        self.storage.clear_tokens()

    def get_access_token(self) -> Optional[str]:
        return self.storage.get_access_token()

    def get_refresh_token(self) -> Optional[str]:
        return self.storage.get_refresh_token()

    def set_token_refresh_callback(self, callback: Optional[Callable[[], Any]]) -> None:
        """Replace the single legacy refresh callback

        Independent listeners should use ``events.on_credentials_refreshed``.
        """
        self._refresh_callback.set(callback)

    def is_authenticated(self) -> bool:
        return self.get_access_token() is not None

    # Request API

    async def send(self, descriptor: RequestDescriptor) -> ApiResult:
        """Send one request and normalize the outcome

        Raises:
            ValueError: If the descriptor has no path
        """
        if not descriptor.path:
            raise ValueError(f"HttpClient.send: missing path for {descriptor.method} request")
        return await self._send(descriptor, retried=False, access_token=None)

    async def get(self, path: str, params: Optional[Mapping[str, Any]] = None,
                  headers: Optional[Mapping[str, str]] = None) -> ApiResult:
        return await self.send(RequestDescriptor("GET", path, query=params, headers=headers or {}))

    async def post(self, path: str, data: Any = None,
                   headers: Optional[Mapping[str, str]] = None) -> ApiResult:
        return await self.send(RequestDescriptor("POST", path, body=data, headers=headers or {}))

    async def put(self, path: str, data: Any = None,
                  headers: Optional[Mapping[str, str]] = None) -> ApiResult:
        return await self.send(RequestDescriptor("PUT", path, body=data, headers=headers or {}))

    async def patch(self, path: str, data: Any = None,
                    headers: Optional[Mapping[str, str]] = None) -> ApiResult:
        return await self.send(RequestDescriptor("PATCH", path, body=data, headers=headers or {}))

    async def delete(self, path: str, params: Optional[Mapping[str, Any]] = None,
                     headers: Optional[Mapping[str, str]] = None) -> ApiResult:
        return await self.send(RequestDescriptor("DELETE", path, query=params, headers=headers or {}))

    async def upload_file(self, path: str, files: Mapping[str, Any],
                          data: Optional[Mapping[str, Any]] = None) -> ApiResult:
        """POST a multipart/form-data upload

        Network failures, timeouts and 5xx responses are retried with
        exponential backoff plus jitter; a 429 stops retrying at once.
        File contents must be re-readable (bytes or (name, bytes, type) tuples).
        """
        descriptor = RequestDescriptor("POST", path, body=data, files=files)
        attempt = 0
        while True:
            result = await self.send(descriptor)
            if isinstance(result, ApiResponse):
                return result

            if result.status_code == 429:
                logger.warning(f"Upload to {path} received 429, aborting retries")
                return result

            retriable = result.status_code in (0, 408) or 500 <= result.status_code < 600
            if not retriable or attempt >= UPLOAD_MAX_RETRIES:
                return result

            attempt += 1
            wait = min(2 ** attempt, UPLOAD_MAX_BACKOFF) + random.uniform(0, 0.3)
            logger.info(f"Retrying upload to {path} (attempt {attempt}) after {wait:.2f}s")
            await self._sleep(wait)

    async def verify_current_token(self) -> bool:
        """Ask the server whether the stored access token is still accepted"""
        if not self.get_access_token():
            return False

        result = await self.get(VERIFY_TOKEN_PATH)
        if isinstance(result, ApiError):
            logger.debug(f"Token verification failed: {result.message}")
            return False
        return result.success

    async def logout(self) -> None:
        """Tell the server to end the session; local tokens are cleared regardless"""
        try:
            if self.get_access_token():
                result = await self.post(LOGOUT_PATH)
                if isinstance(result, ApiError):
                    logger.warning(f"Logout API call failed: {result.message}")
        finally:
            self.clear_auth_tokens()

    # Internals

    async def _send(self, descriptor: RequestDescriptor, retried: bool,
                    access_token: Optional[str]) -> ApiResult:
        await self._guard_rate_limit()

        token = access_token or self.get_access_token()
        try:
            response = await self._dispatch(descriptor, token)
        except httpx.TimeoutException:
            logger.error(f"{descriptor.method} {descriptor.path} timed out")
            return timeout_error()
        except httpx.NetworkError as e:
            logger.error(f"{descriptor.method} {descriptor.path} network error: {e}")
            return network_error()
        except httpx.HTTPError as e:
            logger.error(f"{descriptor.method} {descriptor.path} failed: {e}")
            return unknown_error(str(e) or None)

        if response.status_code == 429:
            self._note_rate_limit(response)

        if response.status_code == 401 and not retried:
            return await self._retry_after_refresh(descriptor, token, response)

        if response.is_error:
            error = error_from_response(response)
            logger.error(
                f"{descriptor.method} {descriptor.path} -> {response.status_code}: {error.message}"
            )
            return error

        return self._parse_success(descriptor, response)

    async def _retry_after_refresh(self, descriptor: RequestDescriptor, used_token: Optional[str],
                                   response: httpx.Response) -> ApiResult:
        current_token = self.get_access_token()
        if current_token and current_token != used_token:
            # Another request refreshed the pair while this one was in flight
            logger.debug(f"Retrying {descriptor.method} {descriptor.path} with already refreshed token")
            return await self._send(descriptor, retried=True, access_token=current_token)

        try:
            new_token = await self.refresh_coordinator.refresh()
        except RefreshError as exc:
            if exc.account_deleted:
                logger.warning("User no longer exists, not retrying request")
                return exc.error
            return error_from_response(response)

        logger.debug(f"Retrying {descriptor.method} {descriptor.path} with refreshed token")
        return await self._send(descriptor, retried=True, access_token=new_token)

    async def _dispatch(self, descriptor: RequestDescriptor, access_token: Optional[str]) -> httpx.Response:
        headers: Dict[str, str] = {**DEFAULT_HEADERS, **descriptor.headers}
        if access_token:
            headers[AUTHORIZATION_HEADER] = f"Bearer {access_token}"
        headers[REQUEST_TIME_HEADER] = datetime.now(timezone.utc).isoformat()

        request_kwargs: Dict[str, Any] = {}
        if descriptor.files:
            request_kwargs["files"] = descriptor.files
            if descriptor.body is not None:
                request_kwargs["data"] = descriptor.body
        elif descriptor.body is not None:
            request_kwargs["json"] = descriptor.body

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"{descriptor.method.upper()} {descriptor.path} headers={_redact(headers)}")
            if access_token:
                logger.debug(f"JWT claims: {summarize_claims(access_token)}")

        started = self._clock()
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self._timeout,
                                     transport=self._transport) as client:
            response = await client.request(
                descriptor.method.upper(),
                descriptor.path,
                params=descriptor.query,
                headers=headers,
                **request_kwargs,
            )

        logger.debug(
            f"{descriptor.method.upper()} {descriptor.path} -> {response.status_code} "
            f"({(self._clock() - started) * 1000:.0f}ms)"
        )
        return response

    def _parse_success(self, descriptor: RequestDescriptor, response: httpx.Response) -> ApiResult:
        if not response.content:
            return ApiResponse(success=True, status="success", message="Success", data=None)

        try:
            payload = response.json()
        except ValueError:
            logger.error(f"{descriptor.method} {descriptor.path} returned a malformed body")
            return ApiError(
                status="invalid_response",
                message="Malformed response from server.",
                status_code=500,
            )

        try:
            result = ApiResponse.from_payload(payload)
            if not result.success:
                return ApiError.from_payload(payload, response.status_code)
        except ValidationError as e:
            logger.error(f"{descriptor.method} {descriptor.path} returned an unexpected envelope: {e}")
            return ApiError(
                status="invalid_response",
                message="Malformed response from server.",
                status_code=500,
            )
        return result

    async def _request_new_tokens(self, refresh_token: str) -> Dict[str, Any]:
        """Call the refresh endpoint; bypasses the 401 handling of ``send``"""
        descriptor = RequestDescriptor("POST", REFRESH_TOKEN_PATH, body={"refreshToken": refresh_token})
        try:
            response = await self._dispatch(descriptor, None)
        except httpx.TimeoutException as e:
            raise RefreshError(timeout_error()) from e
        except httpx.NetworkError as e:
            raise RefreshError(network_error()) from e
        except httpx.HTTPError as e:
            raise RefreshError(unknown_error(str(e) or None)) from e

        if response.is_error:
            error = error_from_response(response)
            raise RefreshError(error, account_deleted=is_account_deleted(error))

        result = self._parse_success(descriptor, response)
        if isinstance(result, ApiError):
            raise RefreshError(result, account_deleted=is_account_deleted(result))
        if not isinstance(result.data, dict):
            raise RefreshError(unknown_error("Refresh endpoint returned no token data"))
        return result.data

    def _note_rate_limit(self, response: httpx.Response) -> None:
        now = self._clock()
        until = now + RATE_LIMIT_DEFAULT_WAIT

        retry_after = _parse_number(response.headers.get("retry-after"))
        rate_reset = _parse_number(response.headers.get("ratelimit-reset"))
        if retry_after is not None and retry_after > 0:
            # Some servers send milliseconds
            seconds = retry_after / 1000 if retry_after > 1000 else retry_after
            until = now + seconds
        elif rate_reset is not None and rate_reset > 0:
            # Epoch reset instant, seconds or milliseconds
            candidate = rate_reset / 1000 if rate_reset > 1e12 else rate_reset
            if candidate > now:
                until = candidate

        self._rate_limit_until = until
        logger.warning(
            f"Received 429 Too Many Requests. Pausing requests until "
            f"{datetime.fromtimestamp(until, timezone.utc).isoformat()}"
        )

    async def _guard_rate_limit(self) -> None:
        if self._rate_limit_until is None:
            return

        wait = self._rate_limit_until - self._clock()
        if wait > 0:
            logger.info(f"Waiting {wait:.1f}s due to client-side rate limit")
            await self._sleep(wait)
        self._rate_limit_until = None
