"""Boot sequence of the remote application environment."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from prerender import scripts
from prerender.errors import BootError, ScriptError, ScriptTimeoutError
from prerender.logging import get_logger

if TYPE_CHECKING:
    from prerender.app import App
    from prerender.browser import BrowserSession
    from prerender.collector import ErrorCollector
    from prerender.manifest import Manifest


def disable_autoboot(app: App) -> App:
    """Return a copy of app whose configuration disables autoboot.

    The framework must not initialize itself when its scripts are loaded;
    the boot sequence starts it explicitly. The caller's app is untouched.
    """
    app = app.clone()
    settings: Any = app.get("APP")
    if not isinstance(settings, dict):
        settings = {}
    settings["autoboot"] = False
    app.set("APP", settings)
    return app


def bootstrap(
    session: BrowserSession,
    app: App,
    manifest: Manifest,
    collector: ErrorCollector,
    timeout: int,
) -> None:
    """Boot the application on a fresh page of session.

    Steps, each aborting the boot on failure: navigate to the synthetic
    origin, install the runtime and the FastBoot shim, execute vendor then
    application files in manifest order, then run the application's boot
    routine. Repeatable, as every run starts from a fresh navigation.

    Args:
        session: The started browser session.
        app: The application, with autoboot disabled.
        manifest: The application's build manifest.
        collector: The session's error collector, with an active operation.
        timeout: Deadline for the application's boot routine in milliseconds.

    Raises:
        BootError: If a step throws, logs an error or a file is missing.
        ProtocolError: If the browser connection fails.
    """
    log = get_logger(component="bootstrap", app=app.name)

    session.open()
    _check(collector, "navigate")

    _step(session.execute, "install runtime", scripts.RUNTIME)
    _check(collector, "install runtime")

    _step(session.call, "setup", "$setup", app.name, app.config)
    _check(collector, "setup")

    for path in manifest.files:
        source = app.file(path)
        if source is None:
            raise BootError(f"missing script {path}")
        try:
            text = source.decode("utf-8")
        except UnicodeDecodeError as e:
            raise BootError(f"invalid script {path}", [str(e)]) from e
        _step(session.execute, f"execute {path}", text)
        _check(collector, f"execute {path}")

    log.debug("Scripts loaded", count=len(manifest.files))

    try:
        session.run_task("$boot", [], timeout)
    except ScriptTimeoutError as e:
        raise BootError(f"boot timed out after {timeout}ms") from e
    except ScriptError as e:
        raise BootError("boot failed", [e.message, *collector.drain()]) from e
    _check(collector, "boot")


def _step(function: Any, name: str, *args: Any) -> Any:
    try:
        return function(*args)
    except ScriptError as e:
        raise BootError(f"{name} failed", [e.message]) from e


def _check(collector: ErrorCollector, name: str) -> None:
    messages = collector.drain()
    if messages:
        raise BootError(f"{name} logged errors", messages)
