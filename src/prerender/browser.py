"""Browser module driving the headless render environment."""

import itertools
from contextlib import suppress
from typing import Any

from playwright.sync_api import Browser, BrowserContext, ConsoleMessage, Page, Playwright, Route
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from prerender import scripts
from prerender.collector import ErrorCollector
from prerender.errors import PrerenderError, ProtocolError, ScriptError, ScriptTimeoutError
from prerender.logging import get_logger

# Images are never part of the captured markup
LAUNCH_ARGS = ["--blink-settings=imagesEnabled=false"]

# Interval in milliseconds at which task completion is polled
TASK_POLLING = 10


def normalize_url(url: str) -> str:
    """Normalize a URL for comparison, ignoring trailing slashes."""
    return url.rstrip("/")


class RequestInterceptor:
    """Serves the synthetic origin with a blank document.

    Every other request continues to the network unmodified. Failures are
    recorded as session errors and never abort the request pipeline.
    """

    def __init__(self, origin: str, collector: ErrorCollector) -> None:
        self.origin = origin
        self._collector = collector

    def matches(self, url: str) -> bool:
        """Check whether url addresses the synthetic origin."""
        return normalize_url(url) == normalize_url(self.origin)

    def __call__(self, route: Route) -> None:
        url = route.request.url
        try:
            if self.matches(url):
                route.fulfill(status=200, content_type="text/html", body=scripts.BLANK_DOCUMENT)
            else:
                route.continue_()
        except PlaywrightError as e:
            self._collector.record(f"failed to handle request {url}: {e.message}")


class BrowserSession:
    """A headless browser tab that believes it was loaded from origin.

    The Playwright sync API is bound to the thread that started it, so every
    method must be called from the thread that called start().
    """

    def __init__(self, origin: str, collector: ErrorCollector, headed: bool = False) -> None:
        """Initialize BrowserSession.

        Args:
            origin: The synthetic origin URL.
            collector: Receives console errors and interceptor failures.
            headed: Show the browser window.
        """
        self.origin = origin
        self.headed = headed
        self._collector = collector
        self._interceptor = RequestInterceptor(origin, collector)
        self._task_ids = itertools.count(1)
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None
        self._log = get_logger(component="browser", origin=origin)

    @property
    def page(self) -> Page | None:
        """The current page, if one is open."""
        return self._page

    def start(self) -> None:
        """Launch the browser and install the request interceptor.

        Raises:
            ProtocolError: If the browser cannot be launched.
        """
        try:
            self._playwright = sync_playwright().start()
            self._browser = self._playwright.chromium.launch(
                headless=not self.headed, args=LAUNCH_ARGS
            )
            self._context = self._browser.new_context()
            self._context.route("**/*", self._interceptor)
        except PlaywrightError as e:
            self.close()
            raise ProtocolError(f"failed to launch browser: {e.message}") from e

        self._log.debug("Browser launched", headed=self.headed)

    def open(self) -> None:
        """Replace the current page with a fresh one navigated to the origin.

        Listeners are attached before navigating so no early event is missed.

        Raises:
            ProtocolError: If the page cannot be opened or navigated.
        """
        if self._context is None:
            raise ProtocolError("browser not started")

        self._close_page()

        try:
            page = self._context.new_page()
            page.on("console", self._on_console)
            page.on("pageerror", self._on_page_error)
            self._page = page
            page.goto(self.origin, wait_until="load")
        except PlaywrightError as e:
            raise ProtocolError(f"failed to open {self.origin}: {e.message}") from e

    def execute(self, source: str) -> None:
        """Execute a script in the page's global scope."""
        self._evaluate(scripts.EXECUTE, source)

    def call(self, name: str, *args: Any) -> Any:
        """Call a synchronous runtime function and return its result."""
        return self._evaluate(scripts.CALL, [name, list(args)])

    def flush(self) -> None:
        """Let pending browser events be dispatched."""
        self._evaluate(scripts.FLUSH)

    def run_task(self, name: str, args: list[Any], timeout: int) -> None:
        """Run an asynchronous runtime function to completion.

        Args:
            name: The runtime function on window.
            args: JSON-serializable arguments.
            timeout: Deadline in milliseconds.

        Raises:
            ScriptError: If the function throws or its promise rejects.
            ScriptTimeoutError: If it does not settle within timeout.
            ProtocolError: If the browser connection fails.
        """
        task_id = next(self._task_ids)
        self._evaluate(scripts.START_TASK, [task_id, name, args])

        page = self._require_page()
        try:
            page.wait_for_function(
                scripts.TASK_DONE, arg=task_id, timeout=timeout, polling=TASK_POLLING
            )
        except PlaywrightTimeoutError as e:
            raise ScriptTimeoutError(f"{name} did not complete within {timeout}ms") from e
        except PlaywrightError as e:
            raise self._classify(e) from e

        outcome = self._evaluate(scripts.TAKE_TASK, task_id)
        if outcome["error"] is not None:
            raise ScriptError(outcome["error"])

    def close(self) -> None:
        """Release the page, the browser and the driver.

        Safe to call at any point, including after a failed start.
        """
        self._close_page()
        if self._context is not None:
            with suppress(PlaywrightError):
                self._context.close()
            self._context = None
        if self._browser is not None:
            with suppress(PlaywrightError):
                self._browser.close()
            self._browser = None
        if self._playwright is not None:
            with suppress(PlaywrightError):
                self._playwright.stop()
            self._playwright = None

    def _close_page(self) -> None:
        if self._page is not None:
            with suppress(PlaywrightError):
                self._page.close()
            self._page = None

    def _require_page(self) -> Page:
        if self._page is None:
            raise ProtocolError("no page open")
        return self._page

    def _evaluate(self, expression: str, arg: Any = None) -> Any:
        page = self._require_page()
        try:
            return page.evaluate(expression, arg)
        except PlaywrightError as e:
            raise self._classify(e) from e

    def _classify(self, error: PlaywrightError) -> PrerenderError:
        """Tell script exceptions apart from transport failures."""
        if (
            self._page is None
            or self._page.is_closed()
            or self._browser is None
            or not self._browser.is_connected()
        ):
            return ProtocolError(error.message)
        return ScriptError(error.message)

    def _on_console(self, message: ConsoleMessage) -> None:
        if message.type == "error":
            url = message.location.get("url", "")
            self._collector.record(f"{message.text} ({url})")

    def _on_page_error(self, error: PlaywrightError) -> None:
        self._collector.record(f"uncaught: {error.message}")
