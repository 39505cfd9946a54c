"""Execution of a single visit against a booted environment."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from prerender.errors import RenderError, ScriptError, ScriptTimeoutError, VisitTimeoutError
from prerender.models import Request, Result

if TYPE_CHECKING:
    from prerender.browser import BrowserSession
    from prerender.collector import ErrorCollector


class Deadline:
    """A point in time a visit must finish by, budgeted in milliseconds."""

    def __init__(self, timeout: int) -> None:
        self.timeout = timeout
        self._expires = time.monotonic() + timeout / 1000

    def remaining(self) -> int:
        """Milliseconds left, never negative."""
        return max(0, int((self._expires - time.monotonic()) * 1000))


def execute_visit(
    session: BrowserSession,
    collector: ErrorCollector,
    path: str,
    request: Request,
    deadline: Deadline,
) -> Result:
    """Render path inside the booted application and capture the document.

    The previous per-request instance is destroyed and the document cleared
    before a fresh instance boots and visits path. Rendering waits for any
    promise the application registered through deferRendering().

    Must only be called while holding the session's lock.

    Args:
        session: The booted browser session.
        collector: The session's error collector, with an active operation.
        path: The route to visit, optionally with a query string.
        request: The request the application sees.
        deadline: The deadline of the whole visit.

    Returns:
        The captured document.

    Raises:
        RenderError: If the application throws or logs errors.
        VisitTimeoutError: If the deadline passes before rendering completes.
        ProtocolError: If the browser connection fails.
    """
    remaining = deadline.remaining()
    if remaining <= 0:
        raise VisitTimeoutError(path, deadline.timeout)

    try:
        session.run_task("$render", [path, request.to_payload()], remaining)
    except ScriptTimeoutError as e:
        raise VisitTimeoutError(path, deadline.timeout) from e
    except ScriptError as e:
        raise RenderError([e.message, *collector.drain()], path) from e
    _check(collector, path)

    try:
        payload = session.call("$capture")
    except ScriptError as e:
        raise RenderError([e.message, *collector.drain()], path) from e
    _check(collector, path)

    return Result.from_payload(payload)


def _check(collector: ErrorCollector, path: str) -> None:
    messages = collector.drain()
    if messages:
        raise RenderError(messages, path)
