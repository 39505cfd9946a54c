"""Prerender single-page applications in a long-lived headless browser."""

__version__ = "0.1.0"

from prerender.app import App, AppError, load_files
from prerender.errors import (
    BootError,
    PrerenderError,
    ProtocolError,
    RenderError,
    SessionClosedError,
    VisitTimeoutError,
)
from prerender.instance import Instance, SessionState, render
from prerender.models import Request, Result

__all__ = [
    "App",
    "AppError",
    "BootError",
    "Instance",
    "PrerenderError",
    "ProtocolError",
    "RenderError",
    "Request",
    "Result",
    "SessionClosedError",
    "SessionState",
    "VisitTimeoutError",
    "load_files",
    "render",
]
