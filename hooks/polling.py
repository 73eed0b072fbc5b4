"""
Fixed-interval polling on top of ApiHook.

The first fetch is a normal ``execute`` (loading indicator, error state,
retry). Every following tick is a quiet refetch: a failed tick is logged and
leaves the hook's data and error alone.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional

from settings import POLL_INTERVAL
from .single_fetch import ApiHook

logger = logging.getLogger(__name__)


class PollHandle:
    """Cancellation handle returned by Poller.start"""

    def __init__(self, task: "asyncio.Task[None]"):
        self._task = task

    @property
    def active(self) -> bool:
        return not self._task.done()

    @property
    def task(self) -> "asyncio.Task[None]":
        return self._task

    def cancel(self) -> None:
        if not self._task.done():
            self._task.cancel()


class Poller:
    def __init__(
        self,
        hook: ApiHook,
        interval: float = POLL_INTERVAL,
        max_ticks: Optional[int] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Args:
            hook: Hook whose operation is polled
            interval: Seconds between ticks
            max_ticks: Stop on its own after this many ticks (default: run until cancelled)
            sleep: Coroutine used to wait between ticks
        """
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.hook = hook
        self.interval = interval
        self.max_ticks = max_ticks
        self._sleep = sleep
        self._handles: List[PollHandle] = []
        self.ticks = 0

    async def start(self, *args: Any, **kwargs: Any) -> PollHandle:
        """Fetch once now, then keep refetching every ``interval`` seconds

        Returns:
            Handle whose ``cancel`` stops further ticks
        """
        await self.hook.execute(*args, **kwargs)
        task = asyncio.ensure_future(self._loop(args, kwargs))
        handle = PollHandle(task)
        self._handles.append(handle)
        logger.debug(f"Polling {self.hook.operation_id} every {self.interval}s")
        return handle

    async def _loop(self, args: tuple, kwargs: dict) -> None:
        done = 0
        while self.max_ticks is None or done < self.max_ticks:
            await self._sleep(self.interval)
            done += 1
            self.ticks += 1
            try:
                await self.hook.refetch_quietly(*args, **kwargs)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(f"Poll tick {self.ticks} for {self.hook.operation_id} failed")

    def stop(self, handle: PollHandle) -> None:
        handle.cancel()
        if handle in self._handles:
            self._handles.remove(handle)

    def stop_all(self) -> None:
        for handle in list(self._handles):
            self.stop(handle)
