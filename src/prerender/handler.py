"""HTTP handler serving an application with prerendered pages."""

from __future__ import annotations

import mimetypes
import posixpath
import threading
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI
from fastapi import Request as HTTPRequest
from fastapi.responses import Response

from prerender.app import App
from prerender.config import DEFAULT_ORIGIN, INDEX_FILE, VISIT_TIMEOUT
from prerender.errors import PrerenderError
from prerender.instance import Instance
from prerender.logging import get_logger
from prerender.models import Request, Result

HTML_TYPE = "text/html"
DEFAULT_TYPE = "application/octet-stream"

# Placeholders emitted by ember-cli-fastboot into index.html
TITLE_PLACEHOLDER = b"<!-- EMBER_CLI_FASTBOOT_TITLE -->"
HEAD_PLACEHOLDER = b"<!-- EMBER_CLI_FASTBOOT_HEAD -->"
BODY_PLACEHOLDER = b"<!-- EMBER_CLI_FASTBOOT_BODY -->"
BODY_START = '<script type="x/boundary" id="fastboot-body-start"></script>'
BODY_END = '<script type="x/boundary" id="fastboot-body-end"></script>'

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


@dataclass
class HandlerOptions:
    """Options of a prerendering handler.

    Attributes:
        app: The application to serve.
        origin: The URL the application believes it was loaded from.
        cache: Seconds rendered pages are cached for. 0 disables caching.
        isolated: Boot a fresh instance for every request.
        headed: Show the browser window.
        timeout: Visit deadline in milliseconds.
        on_request: Called with each request before rendering. May return a
            replacement request.
        on_result: Called with each result before it is served. May return a
            replacement result.
        on_error: Called with every boot or render error.
    """

    app: App
    origin: str = DEFAULT_ORIGIN
    cache: float = 0
    isolated: bool = False
    headed: bool = False
    timeout: int = VISIT_TIMEOUT
    on_request: Callable[[Request], Request | None] | None = None
    on_result: Callable[[Result], Result | None] | None = None
    on_error: Callable[[PrerenderError], None] | None = None


class ResponseCache:
    """Thread-safe cache of rendered pages with a fixed time to live."""

    def __init__(self, ttl: float) -> None:
        self.ttl = ttl
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[float, bytes]] = {}

    def get(self, key: str) -> bytes | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires, value = entry
            if expires <= time.monotonic():
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: bytes) -> None:
        with self._lock:
            self._entries[key] = (time.monotonic() + self.ttl, value)


class Handler:
    """Serves files of an application and prerenders every other path.

    A failed render never fails the HTTP request: the unmodified base
    document is served instead and the client renders the page itself.
    """

    def __init__(self, options: HandlerOptions, instance: Instance | None = None) -> None:
        self.options = options
        self.instance = instance
        self.cache = ResponseCache(options.cache) if options.cache > 0 else None
        self._log = get_logger(component="handler", app=options.app.name)

    @classmethod
    def create(cls, options: HandlerOptions) -> Handler:
        """Create a handler, booting the shared instance unless isolated.

        Raises:
            BootError: If the shared instance cannot be booted.
        """
        instance = None
        if not options.isolated:
            instance = Instance.boot(options.app, options.origin, headed=options.headed)
        return cls(options, instance)

    def serve(self, http_request: HTTPRequest) -> Response:
        """Answer an HTTP request."""
        if http_request.method != "GET":
            return Response(status_code=405)

        path = http_request.url.path.strip("/")

        data = self.options.app.file(path)
        if data is not None:
            return Response(content=data, media_type=guess_type(path))

        url = http_request.url.path
        if http_request.url.query:
            url += "?" + http_request.url.query

        if self.cache is not None:
            cached = self.cache.get(url)
            if cached is not None:
                return Response(content=cached, media_type=HTML_TYPE)

        page = self.render(url, build_request(http_request))
        if page is None:
            return Response(content=self._index(), media_type=HTML_TYPE)

        if self.cache is not None:
            self.cache.set(url, page)

        return Response(content=page, media_type=HTML_TYPE)

    def render(self, url: str, request: Request) -> bytes | None:
        """Render url into the base document, or return None on failure."""
        options = self.options
        log = self._log.bind(url=url)

        if options.on_request is not None:
            request = options.on_request(request) or request

        instance = self.instance
        try:
            if instance is None:
                instance = Instance.boot(options.app, options.origin, headed=options.headed)
            try:
                result = instance.visit(url, request, options.timeout)
            finally:
                if self.instance is None:
                    instance.close()
        except PrerenderError as e:
            log.warning("Render failed, serving base document", error=e.message)
            if options.on_error is not None:
                options.on_error(e)
            return None

        if options.on_result is not None:
            result = options.on_result(result) or result

        return splice(self._index(), result)

    def close(self) -> None:
        """Close the shared instance."""
        if self.instance is not None:
            self.instance.close()

    def _index(self) -> bytes:
        return self.options.app.file(INDEX_FILE) or b""


def build_request(http_request: HTTPRequest) -> Request:
    """Build the visit request from an HTTP request."""
    headers: dict[str, list[str]] = {}
    # items() keeps repeated headers as separate pairs
    for name, value in http_request.headers.items():
        headers.setdefault(name, []).append(value)

    return Request(
        method=http_request.method,
        protocol=f"{http_request.url.scheme}:",
        path=http_request.url.path,
        headers=headers,
        cookies=dict(http_request.cookies),
        query_params=dict(http_request.query_params),
        body="",
    )


def splice(index: bytes, result: Result) -> bytes:
    """Insert a rendered result into the base document.

    Attributes are appended to the literal opening tags and the content
    replaces the FastBoot placeholders.
    """
    attributes = Result.attributes_string
    index = index.replace(b"<body>", f"<body{attributes(result.body_attributes)}>".encode(), 1)
    index = index.replace(b"<head>", f"<head{attributes(result.head_attributes)}>".encode(), 1)
    index = index.replace(b"<html>", f"<html{attributes(result.html_attributes)}>".encode(), 1)

    body = BODY_START + result.body_content + BODY_END

    index = index.replace(TITLE_PLACEHOLDER, b"", 1)
    index = index.replace(HEAD_PLACEHOLDER, result.head_content.encode(), 1)
    index = index.replace(BODY_PLACEHOLDER, body.encode(), 1)
    return index


def guess_type(path: str) -> str:
    """Return the MIME type for path derived from its extension."""
    mime_type, _ = mimetypes.guess_type(posixpath.basename(path))
    return mime_type or DEFAULT_TYPE


def create_server(app: App, handler: Handler | None = None) -> FastAPI:
    """Create the ASGI application.

    Without a handler, files are served as-is and every other path gets the
    base document.

    Args:
        app: The application to serve.
        handler: The prerendering handler, if pages should be prerendered.

    Returns:
        The FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        if handler is not None:
            handler.close()

    server = FastAPI(lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

    @server.api_route("/{path:path}", methods=ALL_METHODS)
    def serve(request: HTTPRequest) -> Response:
        if handler is not None:
            return handler.serve(request)

        if request.method != "GET":
            return Response(status_code=405)

        path = request.url.path.strip("/")
        data = app.file(path)
        if data is None:
            path = INDEX_FILE
            data = app.file(path) or b""
        return Response(content=data, media_type=guess_type(path))

    return server
