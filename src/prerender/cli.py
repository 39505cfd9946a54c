"""CLI module for prerender."""

import json
from pathlib import Path
from typing import Annotated
from urllib.parse import parse_qsl, urlsplit

import typer
import uvicorn
from rich.console import Console
from rich.markup import escape

from prerender import __version__
from prerender.app import App, AppError
from prerender.config import DEFAULT_HOST, DEFAULT_ORIGIN, DEFAULT_PORT, VISIT_TIMEOUT
from prerender.errors import PrerenderError
from prerender.handler import Handler, HandlerOptions, create_server
from prerender.instance import render
from prerender.logging import configure_logging, get_logger
from prerender.models import Request

console = Console()

app = typer.Typer(
    name="prerender",
    help="Serve and prerender single-page applications with a headless browser.",
    add_completion=False,
)

DistArgument = Annotated[
    Path,
    typer.Argument(
        help="Build output directory of the application.",
        exists=True,
        file_okay=False,
        resolve_path=True,
    ),
]
NameOption = Annotated[
    str, typer.Option("--name", "-n", help="Module prefix of the application.")
]
OriginOption = Annotated[
    str, typer.Option("--origin", help="URL the application believes it was loaded from.")
]
HeadedOption = Annotated[bool, typer.Option("--headed", help="Show the browser window.")]
TimeoutOption = Annotated[
    int, typer.Option("--timeout", help="Visit timeout in milliseconds.")
]


def version_callback(value: bool) -> None:
    """Print version and exit.

    Args:
        value: Whether the version flag was provided.
    """
    if value:
        console.print(f"prerender version {__version__}")
        raise typer.Exit()


def load_app(name: str, dist: Path) -> App:
    """Load the application or exit with an error."""
    try:
        return App.from_directory(name, dist)
    except AppError as e:
        console.print(f"[red]Error:[/red] Invalid application: {escape(e.message)}")
        raise typer.Exit(code=1) from None


@app.callback(invoke_without_command=True)
def main(
    _ctx: typer.Context,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Enable verbose output")
    ] = False,
    _version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = None,
) -> None:
    """Serve and prerender single-page applications with a headless browser."""
    # Initialize logging once at startup
    configure_logging(verbose)
    log = get_logger()

    if verbose:
        log.debug("Verbose mode enabled")


@app.command(name="serve")
def serve_cmd(
    dist: DistArgument,
    name: NameOption = "example",
    fastboot: Annotated[
        bool, typer.Option("--fastboot/--no-fastboot", help="Prerender pages.")
    ] = False,
    isolated: Annotated[
        bool, typer.Option("--isolated", help="Boot a fresh browser for every page.")
    ] = False,
    headed: HeadedOption = False,
    origin: OriginOption = DEFAULT_ORIGIN,
    host: Annotated[str, typer.Option("--host", help="Address to listen on.")] = DEFAULT_HOST,
    port: Annotated[int, typer.Option("--port", help="Port to listen on.")] = DEFAULT_PORT,
    cache: Annotated[
        float, typer.Option("--cache", help="Seconds to cache rendered pages for.")
    ] = 0,
    timeout: TimeoutOption = VISIT_TIMEOUT,
) -> None:
    """Serve the application, optionally prerendering its pages."""
    log = get_logger()
    application = load_app(name, dist)

    handler = None
    if fastboot:

        def report(error: PrerenderError) -> None:
            console.print(f"[red]==> Error:[/red] {escape(error.message)}")

        options = HandlerOptions(
            app=application,
            origin=origin,
            cache=cache,
            isolated=isolated,
            headed=headed,
            timeout=timeout,
            on_error=report,
        )
        try:
            handler = Handler.create(options)
        except PrerenderError as e:
            log.error("Failed to boot application", error=e.message)
            console.print(f"[red]Error:[/red] {escape(e.message)}")
            raise typer.Exit(code=1) from None

    log.info("Serving application", dist=str(dist), host=host, port=port, fastboot=fastboot)
    uvicorn.run(create_server(application, handler), host=host, port=port)


@app.command(name="render")
def render_cmd(
    dist: DistArgument,
    path: Annotated[str, typer.Argument(help="Path to render, e.g. /about?tab=1.")],
    name: NameOption = "example",
    origin: OriginOption = DEFAULT_ORIGIN,
    headed: HeadedOption = False,
    timeout: TimeoutOption = VISIT_TIMEOUT,
    as_json: Annotated[
        bool, typer.Option("--json", help="Print the captured result as JSON.")
    ] = False,
) -> None:
    """Render a single path and print the document."""
    log = get_logger()
    application = load_app(name, dist)

    route, _, query = path.partition("?")
    location = urlsplit(origin)
    request = Request(
        protocol=f"{location.scheme}:",
        path=route or "/",
        headers={"host": [location.netloc]},
        query_params=dict(parse_qsl(query)),
    )

    try:
        result = render(application, path, request, origin=origin, timeout=timeout, headed=headed)
    except PrerenderError as e:
        log.error("Render failed", path=path, error=e.message)
        console.print(f"[red]Error:[/red] {escape(e.message)}")
        raise typer.Exit(code=1) from None

    if as_json:
        typer.echo(json.dumps(result.to_payload(), indent=2))
    else:
        typer.echo(result.html(), nl=False)


if __name__ == "__main__":
    app()
