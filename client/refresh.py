"""Single-flight credential refresh

At most one refresh network call is outstanding per coordinator. Callers
arriving while a refresh is running await the same future, so a burst of
concurrent 401s consumes the one-time refresh token exactly once and every
waiter observes the same outcome.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from utils.storage import TokenStorage
from .errors import RefreshError, unknown_error
from .events import SessionEvents
from .models import ApiError

logger = logging.getLogger(__name__)

# Exchanges a refresh token for the ``data`` object of the refresh endpoint.
# Must raise RefreshError for every failure.
RefreshCall = Callable[[str], Awaitable[Dict[str, Any]]]


class RefreshState(str, Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"


def _invalidated_error() -> ApiError:
    return ApiError(
        status="session_invalidated",
        message="Session is no longer valid. Please log in again.",
        status_code=401,
    )


def _missing_refresh_token_error() -> ApiError:
    return ApiError(
        status="no_refresh_token",
        message="No refresh token available",
        status_code=401,
    )


class RefreshCoordinator:
    """Serializes refresh demand into one outstanding call"""

    def __init__(self, storage: TokenStorage, refresh_call: RefreshCall, events: SessionEvents):
        self._storage = storage
        self._refresh_call = refresh_call
        self._events = events
        self._pending: Optional["asyncio.Future[Tuple[str, asyncio.Future[None]]]"] = None
        self._invalidated = False
        self.refresh_count = 0

    @property
    def state(self) -> RefreshState:
        return RefreshState.REFRESHING if self._pending is not None else RefreshState.IDLE

    @property
    def is_invalidated(self) -> bool:
        """True after the server reported the account gone, until new credentials are set"""
        return self._invalidated

    def reset_invalidation(self) -> None:
        self._invalidated = False

    async def refresh(self) -> str:
        """Obtain a new access token, joining a refresh already in progress

        The caller that started the refresh also waits for the
        ``credentials_refreshed`` listeners; they run after every waiter has
        its token.

        Raises:
            RefreshError: If the refresh failed; the credential pair is cleared
        """
        if self._invalidated:
            raise RefreshError(_invalidated_error(), account_deleted=True)

        started = self._pending is None
        if started:
            logger.info("Refreshing access token...")
            self._pending = asyncio.ensure_future(self._run())
        else:
            logger.debug("Joining refresh already in progress")

        # A cancelled waiter must not cancel the refresh the others wait on
        access_token, notified = await asyncio.shield(self._pending)

        if started:
            await asyncio.shield(notified)
        return access_token

    async def _run(self) -> Tuple[str, "asyncio.Future[None]"]:
        try:
            access_token = await self._obtain_credentials()
        except RefreshError as exc:
            await self._fail(exc)
            raise
        except Exception as e:
            exc = RefreshError(unknown_error(f"Token refresh failed: {e}"))
            await self._fail(exc)
            raise exc from e
        finally:
            self._pending = None

        self.refresh_count += 1
        logger.info("Successfully refreshed access token")
        # Scheduled, not awaited: waiters resume before listeners run
        notified = asyncio.ensure_future(self._events.emit_credentials_refreshed())
        return access_token, notified

    async def _fail(self, exc: RefreshError) -> None:
        logger.error(f"Token refresh failed: {exc.error.message}")
        try:
            self._storage.clear_tokens()
        except OSError as e:
            logger.error(f"Failed to clear credentials after refresh failure: {e}")

        if exc.account_deleted:
            self._invalidated = True
            logger.warning("Account no longer exists, refresh disabled until next login")
            await self._events.emit_session_invalidated(exc.error)

    async def _obtain_credentials(self) -> str:
        refresh_token = self._storage.get_refresh_token()
        if not refresh_token:
            raise RefreshError(_missing_refresh_token_error())

        data = await self._refresh_call(refresh_token)

        new_access_token = data.get("accessToken") or data.get("token")
        if not new_access_token:
            raise RefreshError(unknown_error("Refresh endpoint did not return access token"))

        # The endpoint may omit the refresh token, in which case the old one stays valid
        new_refresh_token = data.get("refreshToken") or refresh_token

        try:
            self._storage.save_tokens(new_access_token, new_refresh_token)
        except OSError as e:
            raise RefreshError(unknown_error(f"Failed to store refreshed tokens: {e}")) from e

        return new_access_token
