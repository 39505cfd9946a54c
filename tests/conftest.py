"""Shared test fixtures."""

from pathlib import Path

import pytest

from prerender.app import App, load_files

EXAMPLE_DIR = Path(__file__).parent / "fixtures" / "example"


@pytest.fixture(scope="session")
def example_files() -> dict[str, bytes]:
    """Build output of the example application."""
    return load_files(EXAMPLE_DIR)


@pytest.fixture
def example_app(example_files: dict[str, bytes]) -> App:
    """A fresh instance of the example application."""
    return App.create("example", example_files)
