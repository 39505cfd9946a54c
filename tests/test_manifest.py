"""Tests for the manifest module."""

import json

import pytest

from prerender.app import App
from prerender.errors import BootError
from prerender.manifest import Manifest


def manifest_json(**files: object) -> bytes:
    return json.dumps({"fastboot": {"appName": "app", "manifest": files}}).encode()


class TestParse:
    """Tests for Manifest.parse."""

    def test_parses_example_manifest(self, example_app: App) -> None:
        """Test the example build manifest is read in order."""
        manifest = Manifest.parse(example_app.file("package.json"))

        assert manifest == Manifest(
            app_name="example",
            html_file="index.html",
            vendor_files=("assets/vendor.js",),
            app_files=("assets/example.js",),
        )

    def test_vendor_files_come_first(self) -> None:
        """Test files lists vendor files before app files, keeping order."""
        manifest = Manifest.parse(
            manifest_json(vendorFiles=["v2.js", "v1.js"], appFiles=["a2.js", "a1.js"])
        )
        assert manifest.files == ("v2.js", "v1.js", "a2.js", "a1.js")

    def test_missing_lists_default_to_empty(self) -> None:
        """Test absent file lists are treated as empty."""
        manifest = Manifest.parse(manifest_json())
        assert manifest.files == ()
        assert manifest.html_file == "index.html"

    def test_missing_manifest(self) -> None:
        """Test a missing file is a boot error."""
        with pytest.raises(BootError, match="missing manifest"):
            Manifest.parse(None)

    def test_invalid_json(self) -> None:
        """Test unparseable content is a boot error."""
        with pytest.raises(BootError, match="invalid manifest"):
            Manifest.parse(b"{")

    def test_missing_fastboot_section(self) -> None:
        """Test the fastboot section is required."""
        with pytest.raises(BootError, match="'fastboot'"):
            Manifest.parse(b'{"name": "app"}')

    def test_invalid_file_list(self) -> None:
        """Test file lists must contain paths."""
        with pytest.raises(BootError, match="'appFiles'"):
            Manifest.parse(manifest_json(appFiles="app.js"))
