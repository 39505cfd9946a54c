"""Collection of console errors reported by the remote environment."""

import threading
from collections import deque

from prerender.config import ERROR_BUFFER_SIZE
from prerender.logging import get_logger


class ErrorCollector:
    """Buffers error events and attributes them to the running operation.

    Events are delivered asynchronously by the browser. Each one is tagged
    with the operation that is active when it arrives; events arriving while
    no operation is active are logged and dropped.
    """

    def __init__(self, limit: int = ERROR_BUFFER_SIZE) -> None:
        self._lock = threading.Lock()
        self._entries: deque[tuple[int, str]] = deque(maxlen=limit)
        self._operation: int | None = None
        self._log = get_logger(component="collector")

    @property
    def operation(self) -> int | None:
        """The id of the active operation."""
        return self._operation

    def begin(self, operation: int) -> None:
        """Attribute subsequent events to operation."""
        with self._lock:
            self._operation = operation

    def end(self) -> None:
        """Stop attributing events and drop what the operation left behind."""
        with self._lock:
            self._operation = None
            self._entries.clear()

    def record(self, message: str) -> None:
        """Record an error event."""
        with self._lock:
            operation = self._operation
            if operation is not None:
                if len(self._entries) == self._entries.maxlen:
                    self._log.warning("Error buffer full, dropping oldest entry")
                self._entries.append((operation, message))
                return

        self._log.warning("Dropping error outside of an operation", error=message)

    def drain(self) -> list[str]:
        """Return and clear the active operation's errors."""
        with self._lock:
            messages = [m for op, m in self._entries if op == self._operation]
            self._entries.clear()
        return messages

    def discard(self) -> int:
        """Clear all buffered errors and return how many were dropped."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        return count
