"""Long-lived render sessions."""

from __future__ import annotations

import itertools
import threading
import time
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor, wait
from contextlib import contextmanager
from enum import Enum
from typing import Any, TypeVar

from prerender.app import App
from prerender.bootstrap import bootstrap, disable_autoboot
from prerender.browser import BrowserSession
from prerender.collector import ErrorCollector
from prerender.config import BOOT_TIMEOUT, DEFAULT_ORIGIN, MANIFEST_FILE, VISIT_TIMEOUT, WORKER_GRACE
from prerender.errors import (
    BootError,
    PrerenderError,
    ProtocolError,
    RenderError,
    SessionClosedError,
    VisitTimeoutError,
)
from prerender.logging import get_logger
from prerender.manifest import Manifest
from prerender.models import Request, Result
from prerender.visit import Deadline, execute_visit

T = TypeVar("T")


class SessionState(Enum):
    """Lifecycle states of an Instance."""

    BOOTING = "booting"
    READY = "ready"
    RENDERING = "rendering"
    REBOOTING = "rebooting"
    FAILED = "failed"
    CLOSED = "closed"


class WorkerStalledError(ProtocolError):
    """Raised when the browser worker does not return in time."""


class Instance:
    """A booted application that renders visits one at a time.

    All browser work runs on a single worker thread owned by the instance.
    A lock serializes visits and close, so callers on any thread may share
    one instance. A visit that times out triggers a full re-boot before the
    lock is released.

    Usage:
        with Instance.boot(app, "https://example.org") as instance:
            result = instance.visit("/", Request(path="/"))
    """

    def __init__(
        self,
        app: App,
        manifest: Manifest,
        origin: str = DEFAULT_ORIGIN,
        headed: bool = False,
        boot_timeout: int = BOOT_TIMEOUT,
    ) -> None:
        """Initialize Instance. Use Instance.boot() to get a running instance.

        Args:
            app: The application, with autoboot disabled.
            manifest: The application's build manifest.
            origin: The synthetic origin URL.
            headed: Show the browser window.
            boot_timeout: Deadline for the application boot in milliseconds.
        """
        self.app = app
        self.manifest = manifest
        self.origin = origin
        self.boot_timeout = boot_timeout
        self._collector = ErrorCollector()
        self._session = BrowserSession(origin, self._collector, headed=headed)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="prerender-browser")
        self._lock = threading.Lock()
        self._operations = itertools.count(1)
        self._state = SessionState.BOOTING
        self._stalled = False
        self._log = get_logger(component="instance", app=app.name, origin=origin)

    @classmethod
    def boot(
        cls,
        app: App,
        origin: str = DEFAULT_ORIGIN,
        headed: bool = False,
        timeout: int = BOOT_TIMEOUT,
    ) -> Instance:
        """Boot app in a headless browser and return the running instance.

        The caller's app is not modified.

        Args:
            app: The application to boot.
            origin: The URL the application believes it was loaded from.
            headed: Show the browser window.
            timeout: Deadline for the application boot in milliseconds.

        Returns:
            The running instance.

        Raises:
            BootError: If the manifest is invalid, the browser cannot be
                started or a boot step fails.
        """
        manifest = Manifest.parse(app.file(MANIFEST_FILE))
        instance = cls(disable_autoboot(app), manifest, origin, headed, timeout)
        instance._log.info("Booting instance")

        started = time.monotonic()
        try:
            instance._submit(instance._session.start, timeout=timeout)
            instance._boot()
        except PrerenderError as e:
            instance._log.error("Boot failed", error=e.message)
            instance.close()
            if isinstance(e, BootError):
                raise
            raise BootError(e.message) from e
        except Exception:
            instance._log.exception("Boot failed unexpectedly")
            instance.close()
            raise

        instance._state = SessionState.READY
        instance._log.info("Instance booted", duration_ms=_elapsed(started))
        return instance

    @property
    def state(self) -> SessionState:
        """The current lifecycle state."""
        return self._state

    def visit(
        self,
        path: str,
        request: Request | None = None,
        timeout: int = VISIT_TIMEOUT,
    ) -> Result:
        """Render path and return the captured document.

        Blocks while another visit is in progress.

        Args:
            path: The route to visit, optionally with a query string.
            request: The request the application sees. Defaults to a GET of path.
            timeout: Deadline in milliseconds.

        Returns:
            The captured document.

        Raises:
            RenderError: If the application throws or logs errors.
            VisitTimeoutError: If rendering exceeds timeout. The instance
                reboots itself before this is raised.
            SessionClosedError: If the instance was closed.
            BootError: If the instance failed to recover from an earlier timeout.
            ProtocolError: If the browser connection fails.
        """
        if request is None:
            request = Request(path=path.split("?", 1)[0])

        log = self._log.bind(path=path)

        with self._lock:
            self._ensure_ready()
            self._state = SessionState.RENDERING
            started = time.monotonic()
            deadline = Deadline(timeout)
            try:
                # late events of the previous visit are dispatched and dropped here
                self._submit(self._session.flush, timeout=deadline.remaining())
                with self._operation():
                    result = self._submit(
                        execute_visit,
                        self._session,
                        self._collector,
                        path,
                        request,
                        deadline,
                        timeout=deadline.remaining(),
                    )
            except VisitTimeoutError:
                log.warning("Visit timed out", timeout_ms=timeout)
                self._recover()
                raise
            except WorkerStalledError as e:
                log.error("Browser worker stalled", timeout_ms=timeout)
                self._state = SessionState.FAILED
                raise VisitTimeoutError(path, timeout) from e
            except ProtocolError as e:
                log.error("Browser connection failed", error=e.message)
                self._state = SessionState.FAILED
                raise
            except RenderError as e:
                log.warning("Visit failed", errors=e.messages)
                raise
            finally:
                if self._state is SessionState.RENDERING:
                    self._state = SessionState.READY

        log.debug("Visit rendered", duration_ms=_elapsed(started))
        return result

    def close(self) -> None:
        """Close the instance and release all resources.

        Waits for a running visit to finish. Safe to call more than once and
        on instances that never finished booting.
        """
        with self._lock:
            if self._state is SessionState.CLOSED:
                return
            self._state = SessionState.CLOSED

            try:
                if self._stalled:
                    # browser calls can only run on the wedged worker
                    self._log.error("Leaking browser process of stalled worker")
                else:
                    self._submit(self._session.close, timeout=self.boot_timeout)
            except WorkerStalledError:
                self._log.error("Browser worker stalled during close, leaking browser process")
            finally:
                self._executor.shutdown(wait=False)

        self._log.info("Instance closed")

    def __enter__(self) -> Instance:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _ensure_ready(self) -> None:
        if self._state is SessionState.CLOSED:
            raise SessionClosedError()
        if self._state is SessionState.FAILED:
            raise BootError("session failed")

    def _boot(self) -> None:
        with self._operation():
            self._submit(
                bootstrap,
                self._session,
                self.app,
                self.manifest,
                self._collector,
                self.boot_timeout,
                timeout=self.boot_timeout,
            )

    def _recover(self) -> None:
        """Re-boot on a fresh page. Must be called while holding the lock."""
        self._state = SessionState.REBOOTING
        dropped = self._collector.discard()

        started = time.monotonic()
        try:
            self._boot()
        except PrerenderError as e:
            self._state = SessionState.FAILED
            self._log.error("Recovery failed", error=e.message)
            return

        self._state = SessionState.READY
        self._log.info("Instance recovered", duration_ms=_elapsed(started), dropped_errors=dropped)

    @contextmanager
    def _operation(self) -> Iterator[None]:
        self._collector.begin(next(self._operations))
        try:
            yield
        finally:
            self._collector.end()

    def _submit(self, function: Callable[..., T], *args: Any, timeout: int) -> T:
        """Run function on the browser worker and wait for its result.

        Args:
            function: The function to run.
            *args: Positional arguments for function.
            timeout: The deadline of the operation in milliseconds. The
                worker is granted WORKER_GRACE on top of it.

        Raises:
            WorkerStalledError: If the worker does not return in time.
        """
        future = self._executor.submit(function, *args)
        done, _ = wait([future], timeout=(timeout + WORKER_GRACE) / 1000)
        if not done:
            self._stalled = True
            raise WorkerStalledError("browser worker did not respond")
        return future.result()


def render(
    app: App,
    path: str,
    request: Request | None = None,
    origin: str = DEFAULT_ORIGIN,
    timeout: int = VISIT_TIMEOUT,
    headed: bool = False,
) -> Result:
    """Boot app, render a single visit and close the instance again."""
    with Instance.boot(app, origin, headed=headed) as instance:
        return instance.visit(path, request, timeout)


def _elapsed(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
