"""Tests for the CLI module."""

import json
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from prerender import __version__
from prerender.cli import app
from prerender.errors import BootError, RenderError
from prerender.models import Result

runner = CliRunner()

EXAMPLE_DIR = Path(__file__).parent / "fixtures" / "example"

RESULT = Result(
    head_content="<title>Example</title>",
    body_content="<h1>Example</h1>",
    body_attributes={"foo": "body"},
)


@pytest.fixture(autouse=True)
def mock_configure_logging() -> Iterator[MagicMock]:
    """Keep CLI runs from pointing the global logger at captured streams."""
    with patch("prerender.cli.configure_logging") as mock:
        yield mock


@pytest.fixture
def mock_render() -> Iterator[MagicMock]:
    with patch("prerender.cli.render", return_value=RESULT) as mock:
        yield mock


class TestCliMain:
    """Tests for global options."""

    def test_version(self) -> None:
        """Test --version prints the version and exits."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_verbose_configures_debug_logging(
        self, mock_configure_logging: MagicMock, mock_render: MagicMock
    ) -> None:
        """Test --verbose enables debug output."""
        result = runner.invoke(app, ["-v", "render", str(EXAMPLE_DIR), "/"])

        assert result.exit_code == 0
        mock_configure_logging.assert_called_once_with(True)


class TestCliRender:
    """Tests for the render command."""

    def test_prints_document(self, mock_render: MagicMock) -> None:
        """Test the rendered document is printed."""
        result = runner.invoke(app, ["render", str(EXAMPLE_DIR), "/"])

        assert result.exit_code == 0
        assert result.stdout == RESULT.html()

    def test_builds_request_from_origin(self, mock_render: MagicMock) -> None:
        """Test the request is derived from the origin and the path."""
        result = runner.invoke(
            app,
            ["render", str(EXAMPLE_DIR), "/about?tab=1", "--origin", "https://example.org"],
        )

        assert result.exit_code == 0
        application, path, request = mock_render.call_args.args
        assert application.name == "example"
        assert path == "/about?tab=1"
        assert request.protocol == "https:"
        assert request.path == "/about"
        assert request.headers == {"host": ["example.org"]}
        assert request.query_params == {"tab": "1"}
        assert mock_render.call_args.kwargs["origin"] == "https://example.org"

    def test_json_output(self, mock_render: MagicMock) -> None:
        """Test --json prints the captured result."""
        result = runner.invoke(app, ["render", str(EXAMPLE_DIR), "/", "--json"])

        assert result.exit_code == 0
        assert json.loads(result.stdout) == RESULT.to_payload()

    def test_timeout_option(self, mock_render: MagicMock) -> None:
        """Test the visit deadline is configurable."""
        runner.invoke(app, ["render", str(EXAMPLE_DIR), "/", "--timeout", "250"])
        assert mock_render.call_args.kwargs["timeout"] == 250

    def test_render_error(self, mock_render: MagicMock) -> None:
        """Test a failed render exits with an error."""
        mock_render.side_effect = RenderError(["Error: Route exploded"], "/throw")

        result = runner.invoke(app, ["render", str(EXAMPLE_DIR), "/throw"])

        assert result.exit_code == 1
        assert "Route exploded" in result.output

    def test_invalid_application(self, tmp_path: Path, mock_render: MagicMock) -> None:
        """Test a directory without index.html is rejected."""
        result = runner.invoke(app, ["render", str(tmp_path), "/"])

        assert result.exit_code == 1
        assert "missing index.html" in result.output
        mock_render.assert_not_called()

    def test_missing_directory(self, tmp_path: Path) -> None:
        """Test a nonexistent directory is a usage error."""
        result = runner.invoke(app, ["render", str(tmp_path / "missing"), "/"])
        assert result.exit_code == 2


class TestCliServe:
    """Tests for the serve command."""

    @pytest.fixture
    def mock_uvicorn(self) -> Iterator[MagicMock]:
        with patch("prerender.cli.uvicorn") as mock:
            yield mock

    def test_static(self, mock_uvicorn: MagicMock) -> None:
        """Test serving without prerendering boots nothing."""
        with patch("prerender.cli.Handler") as mock_handler:
            result = runner.invoke(app, ["serve", str(EXAMPLE_DIR), "--port", "9000"])

        assert result.exit_code == 0
        mock_handler.create.assert_not_called()
        mock_uvicorn.run.assert_called_once()
        assert mock_uvicorn.run.call_args.kwargs == {"host": "127.0.0.1", "port": 9000}

    def test_fastboot(self, mock_uvicorn: MagicMock) -> None:
        """Test --fastboot boots a handler with the given options."""
        with patch("prerender.cli.Handler") as mock_handler:
            result = runner.invoke(
                app,
                ["serve", str(EXAMPLE_DIR), "--fastboot", "--isolated", "--cache", "30"],
            )

        assert result.exit_code == 0
        options = mock_handler.create.call_args.args[0]
        assert options.app.name == "example"
        assert options.isolated is True
        assert options.cache == 30
        assert options.on_error is not None
        mock_uvicorn.run.assert_called_once()

    def test_boot_failure(self, mock_uvicorn: MagicMock) -> None:
        """Test a failed boot exits before serving."""
        with patch("prerender.cli.Handler") as mock_handler:
            mock_handler.create.side_effect = BootError("boot failed", ["Error: broken"])
            result = runner.invoke(app, ["serve", str(EXAMPLE_DIR), "--fastboot"])

        assert result.exit_code == 1
        assert "boot failed: Error: broken" in result.output
        mock_uvicorn.run.assert_not_called()
