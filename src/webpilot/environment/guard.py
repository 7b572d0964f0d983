import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from webpilot.agents.exceptions import BrowserBusyError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_GUARD_TIMEOUT = 30.0


class ExclusiveGuard:
    """
    Serializes access to the shared browser, page and focused element.

    Only one operation may hold the guard at a time. Waiters give up after
    ``timeout`` seconds with ``BrowserBusyError`` instead of queueing forever.
    """

    def __init__(self, timeout: float = DEFAULT_GUARD_TIMEOUT):
        self.timeout = timeout
        self._lock = asyncio.Lock()

    def locked(self) -> bool:
        return self._lock.locked()

    async def run(self, thunk: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``thunk`` while holding the guard.

        The guard is released on every exit path, including exceptions and
        cancellation. On timeout the thunk is never called.
        """
        try:
            await asyncio.wait_for(self._lock.acquire(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Browser guard busy for more than {self.timeout:g}s")
            raise BrowserBusyError(self.timeout) from None
        try:
            return await thunk()
        finally:
            self._lock.release()
