"""State and failure reporting shared by the data hooks"""

import inspect
import logging
from typing import Any, Callable, Optional

from client.models import ApiError, ApiResponse

logger = logging.getLogger(__name__)

Callback = Optional[Callable[..., Any]]


def unwrap(result: Any) -> Any:
    """Payload of a successful operation result"""
    if isinstance(result, ApiResponse):
        return result.data
    return result


async def invoke(callback: Callback, *args: Any) -> None:
    """Call a sync or async callback"""
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class BaseHook:
    """Observable ``loading`` / ``error`` state plus failure side effects

    Attributes:
        loading: True while a request started by this hook is running
        error: Displayable message of the last failure, or None
        error_detail: The full normalized error of the last failure
    """

    def __init__(self, on_success: Callback = None, on_error: Callback = None,
                 on_unauthorized: Callback = None):
        """
        Args:
            on_success: Called with the unwrapped payload after each success
            on_error: Called with the ApiError after each failure
            on_unauthorized: Application logout, called when a request still
                fails with 401 after the transport already tried a refresh
        """
        self.loading = False
        self.error: Optional[str] = None
        self.error_detail: Optional[ApiError] = None
        self._on_success = on_success
        self._on_error = on_error
        self._on_unauthorized = on_unauthorized

    def _clear_error(self) -> None:
        self.error = None
        self.error_detail = None

    async def _report_failure(self, error: ApiError, description: str) -> None:
        self.error = error.message
        self.error_detail = error
        logger.error(f"{description} failed ({error.status_code}): {error.message}")

        await invoke(self._on_error, error)

        if error.status_code == 401:
            logger.warning(f"{description} is still unauthorized after token refresh, logging out")
            await invoke(self._on_unauthorized)
