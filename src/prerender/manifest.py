"""Build manifest describing the scripts that boot the application."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from prerender.errors import BootError


@dataclass(frozen=True)
class Manifest:
    """Script files of the application bundle.

    Vendor files must be executed before application files. Order within
    each list is preserved.

    Attributes:
        app_name: Name the bundle was built under.
        html_file: Path of the base document.
        vendor_files: Vendor script paths, in execution order.
        app_files: Application script paths, in execution order.
    """

    app_name: str
    html_file: str
    vendor_files: tuple[str, ...]
    app_files: tuple[str, ...]

    @property
    def files(self) -> tuple[str, ...]:
        """All script paths in execution order."""
        return self.vendor_files + self.app_files

    @classmethod
    def parse(cls, data: bytes | None) -> Manifest:
        """Parse the manifest from the raw package.json contents.

        Args:
            data: The file contents, or None if the file is missing.

        Returns:
            The parsed manifest.

        Raises:
            BootError: If the manifest is missing or malformed.
        """
        if data is None:
            raise BootError("missing manifest")

        try:
            document = json.loads(data)
        except ValueError as e:
            raise BootError(f"invalid manifest: {e}") from e

        fastboot = _section(document, "fastboot")
        files = _section(fastboot, "manifest")

        return cls(
            app_name=str(fastboot.get("appName") or ""),
            html_file=str(files.get("htmlFile") or "index.html"),
            vendor_files=_paths(files, "vendorFiles"),
            app_files=_paths(files, "appFiles"),
        )


def _section(document: Any, key: str) -> dict[str, Any]:
    section = document.get(key) if isinstance(document, dict) else None
    if not isinstance(section, dict):
        raise BootError(f"invalid manifest: missing {key!r} section")
    return section


def _paths(files: dict[str, Any], key: str) -> tuple[str, ...]:
    paths = files.get(key, [])
    if not isinstance(paths, list) or not all(isinstance(p, str) for p in paths):
        raise BootError(f"invalid manifest: {key!r} must be a list of paths")
    return tuple(paths)
