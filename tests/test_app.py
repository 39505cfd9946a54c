"""Tests for the app module."""

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from prerender.app import App, AppError, load_files

INDEX = (
    "<!DOCTYPE html><html><head>"
    '<meta name="app/config/environment" content="%7B%22APP%22%3A%7B%22name%22%3A%22app%22%7D%7D" />'
    "</head><body></body></html>"
)


class TestCreate:
    """Tests for App.create."""

    def test_parses_embedded_config(self, example_app: App) -> None:
        """Test the config meta tag is decoded."""
        assert example_app.name == "example"
        assert example_app.get("modulePrefix") == "example"
        assert example_app.get("APP") == {"name": "example", "version": "0.0.0+efcaa952"}

    def test_accepts_text_files(self) -> None:
        """Test str contents are stored as UTF-8 bytes."""
        app = App.create("app", {"index.html": INDEX, "script.js": 'alert("Hello");'})
        assert app.file("script.js") == b'alert("Hello");'

    def test_missing_index(self) -> None:
        """Test index.html is required."""
        with pytest.raises(AppError, match="missing index.html"):
            App.create("app", {"script.js": ""})

    def test_missing_config_tag(self) -> None:
        """Test the config meta tag of the named app is required."""
        with pytest.raises(AppError, match="config meta tag start not found"):
            App.create("other", {"index.html": INDEX})

    def test_invalid_config(self) -> None:
        """Test undecodable config content is rejected."""
        index = '<meta name="app/config/environment" content="not-json" />'
        with pytest.raises(AppError, match="invalid config"):
            App.create("app", {"index.html": index})


class TestFiles:
    """Tests for file access."""

    def test_file_exact_lookup(self, example_app: App) -> None:
        """Test files are looked up by exact path."""
        assert example_app.file("assets/vendor.js") is not None
        assert example_app.file("/assets/vendor.js") is None
        assert example_app.file("missing.js") is None

    def test_add_file(self, example_app: App) -> None:
        """Test added files are served."""
        example_app.add_file("robots.txt", "User-agent: *")
        assert example_app.file("robots.txt") == b"User-agent: *"
        assert "robots.txt" in example_app.files()


class TestConfig:
    """Tests for configuration access."""

    def test_get_missing_key(self, example_app: App) -> None:
        """Test missing keys return None."""
        assert example_app.get("foo") is None

    def test_set_reembeds_config(self) -> None:
        """Test set rewrites index.html with the full config."""
        app = App.create("app", {"index.html": INDEX})
        app.set("foo", {"bar": 3.14, "baz": "quz qux"})

        index = app.file("index.html")
        assert index is not None
        assert b"quz%20qux" in index
        assert index.startswith(b"<!DOCTYPE html><html><head><meta name=\"app/config/environment\"")
        assert index.endswith(b'" /></head><body></body></html>')

        reparsed = App.create("app", {"index.html": index})
        assert reparsed.config == {
            "APP": {"name": "app"},
            "foo": {"bar": 3.14, "baz": "quz qux"},
        }

    def test_set_is_deterministic(self) -> None:
        """Test equal configs produce identical documents regardless of order."""
        first = App.create("app", {"index.html": INDEX})
        second = App.create("app", {"index.html": INDEX})

        first.set("a", 1)
        first.set("b", 2)
        second.set("b", 2)
        second.set("a", 1)

        assert first.file("index.html") == second.file("index.html")

    def test_returned_values_are_copies(self, example_app: App) -> None:
        """Test mutating returned values does not change the app."""
        settings = example_app.get("APP")
        settings["autoboot"] = False
        example_app.config["APP"]["autoboot"] = False

        assert "autoboot" not in example_app.get("APP")


class TestClone:
    """Tests for App.clone."""

    def test_clone_is_independent(self, example_app: App) -> None:
        """Test writes on a clone do not affect the original and vice versa."""
        original_index = example_app.file("index.html")
        clone = example_app.clone()

        clone.set("foo", "bar")
        clone.add_file("clone.txt", "clone")
        example_app.add_file("original.txt", "original")

        assert example_app.get("foo") is None
        assert example_app.file("index.html") == original_index
        assert example_app.file("clone.txt") is None
        assert clone.file("original.txt") is None
        assert clone.get("foo") == "bar"

    def test_clone_shares_unmodified_files(self, example_app: App) -> None:
        """Test a clone sees all files of the original."""
        clone = example_app.clone()
        assert clone.files() == example_app.files()
        assert clone.file("package.json") == example_app.file("package.json")

    def test_repeated_clones_stay_shallow(self, example_app: App) -> None:
        """Test cloning many times does not deepen the original's lookups."""
        for _ in range(1000):
            clone = example_app.clone()

        assert len(example_app._files.maps) <= 2
        assert len(example_app._config.maps) <= 2
        assert len(clone._files.maps) <= 2
        assert clone.file("index.html") == example_app.file("index.html")

    def test_clones_of_clones_stay_independent(self, example_app: App) -> None:
        """Test writes stay isolated when clones are cloned again."""
        first = example_app.clone()
        first.add_file("first.txt", "first")
        second = first.clone()
        second.add_file("second.txt", "second")
        third = example_app.clone()

        assert first.file("second.txt") is None
        assert second.file("first.txt") == b"first"
        assert third.file("first.txt") is None
        assert example_app.file("first.txt") is None

    def test_concurrent_clones(self, example_app: App) -> None:
        """Test clones taken from several threads all see the original files."""
        with ThreadPoolExecutor(max_workers=8) as pool:
            clones = list(pool.map(lambda _: example_app.clone(), range(64)))

        assert all(clone.files() == example_app.files() for clone in clones)
        assert len(example_app._files.maps) <= 2


class TestLoadFiles:
    """Tests for load_files."""

    def test_reads_nested_files(self, tmp_path: Path) -> None:
        """Test files are keyed by relative posix path."""
        (tmp_path / "assets").mkdir()
        (tmp_path / "index.html").write_text("index")
        (tmp_path / "assets" / "app.js").write_bytes(b"app")

        assert load_files(tmp_path) == {"assets/app.js": b"app", "index.html": b"index"}
