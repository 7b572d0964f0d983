import logging
import threading
from contextlib import contextmanager
from typing import Any, Awaitable, Callable, Dict, List, Optional

from webpilot.agents.exceptions import UnknownToolError

from .tool_response import ToolResult

logger = logging.getLogger(__name__)

ToolHandler = Callable[[Dict[str, Any]], Awaitable[ToolResult]]


class ReadWriteLock:
    """Allows many concurrent readers or a single writer."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextmanager
    def read(self):
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self):
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class ToolRegistry:
    """
    Maps tool names to async handlers.

    Decouples the session loop from concrete tool implementations. The
    registry never retries; handlers own their fallback behaviour.
    """

    def __init__(self):
        self._handlers: Dict[str, ToolHandler] = {}
        self._lock = ReadWriteLock()

    def register(self, name: str, handler: ToolHandler) -> None:
        """Associate ``name`` with ``handler``. Re-registering replaces the old handler."""
        if not name:
            raise ValueError("Tool name cannot be empty")
        with self._lock.write():
            replaced = name in self._handlers
            self._handlers[name] = handler
        logger.debug(f"Tool handler {'replaced' if replaced else 'registered'}: {name}")

    def unregister(self, name: str) -> None:
        with self._lock.write():
            self._handlers.pop(name, None)

    def get(self, name: str) -> Optional[ToolHandler]:
        with self._lock.read():
            return self._handlers.get(name)

    def names(self) -> List[str]:
        with self._lock.read():
            return sorted(self._handlers)

    def clear(self) -> None:
        with self._lock.write():
            self._handlers.clear()

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    async def call(self, name: str, args: Optional[Dict[str, Any]] = None) -> ToolResult:
        """
        Invoke the handler registered under ``name``.

        Raises:
            UnknownToolError: If no handler is registered for ``name``.
        """
        handler = self.get(name)
        if handler is None:
            raise UnknownToolError(name)
        return await handler(dict(args or {}))
