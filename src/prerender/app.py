"""In-memory representation of a built single-page application."""

from __future__ import annotations

import copy
import json
import threading
from collections import ChainMap
from collections.abc import Mapping
from pathlib import Path
from typing import Any
from urllib.parse import quote, unquote

from prerender.config import INDEX_FILE

# Characters encodeURIComponent leaves untouched besides alphanumerics and "-_."
_URI_COMPONENT_SAFE = "!~*'()"


class AppError(Exception):
    """Raised when an application bundle is malformed."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class App:
    """A key-value file store with the application's embedded configuration.

    The configuration lives URL-encoded in a meta tag of index.html. Setting a
    value re-embeds the whole configuration so the served document always
    matches what the application reads at boot.

    Files and configuration are stored as ChainMap overlays: cloning is O(1)
    and a write only ever touches the writer's own top-level map.
    """

    def __init__(
        self,
        name: str,
        files: ChainMap[str, bytes],
        config: ChainMap[str, Any],
        before: bytes,
        after: bytes,
    ) -> None:
        self._name = name
        self._files = files
        self._config = config
        self._before = before
        self._after = after
        self._lock = threading.Lock()

    @classmethod
    def create(cls, name: str, files: Mapping[str, bytes | str]) -> App:
        """Create an application from its build output.

        Args:
            name: The application's module prefix, e.g. "example".
            files: File contents by relative path. Must include index.html.

        Returns:
            The application.

        Raises:
            AppError: If index.html or its config meta tag is missing or invalid.
        """
        contents = {
            path: data.encode("utf-8") if isinstance(data, str) else bytes(data)
            for path, data in files.items()
        }

        index = contents.get(INDEX_FILE)
        if index is None:
            raise AppError(f"missing {INDEX_FILE}")

        tag_start = f'<meta name="{name}/config/environment" content="'.encode()
        start = index.find(tag_start)
        if start < 0:
            raise AppError("config meta tag start not found")
        start += len(tag_start)

        end = index.find(b'"', start)
        if end < 0:
            raise AppError("config meta tag end not found")

        try:
            config = json.loads(unquote(index[start:end].decode("utf-8")))
        except ValueError as e:
            raise AppError(f"invalid config: {e}") from e
        if not isinstance(config, dict):
            raise AppError("invalid config: not an object")

        return cls(name, ChainMap(contents), ChainMap(config), index[:start], index[end:])

    @classmethod
    def from_directory(cls, name: str, directory: str | Path) -> App:
        """Create an application from a build output directory."""
        return cls.create(name, load_files(directory))

    @property
    def name(self) -> str:
        """The application's name."""
        return self._name

    @property
    def config(self) -> dict[str, Any]:
        """A copy of the full configuration."""
        return copy.deepcopy(dict(self._config))

    def file(self, path: str) -> bytes | None:
        """Return the exact contents stored under path, if any."""
        return self._files.get(path)

    def files(self) -> list[str]:
        """Return all stored paths, sorted."""
        return sorted(self._files)

    def add_file(self, path: str, data: bytes | str) -> None:
        """Store a file, replacing any previous contents."""
        with self._lock:
            self._files[path] = data.encode("utf-8") if isinstance(data, str) else bytes(data)

    def get(self, key: str) -> Any:
        """Return a copy of a top-level configuration value."""
        return copy.deepcopy(self._config.get(key))

    def set(self, key: str, value: Any) -> None:
        """Set a top-level configuration value and re-embed the configuration.

        The embedded JSON is compact and key-sorted, so equal configurations
        always produce identical documents.
        """
        with self._lock:
            self._config[key] = copy.deepcopy(value)

            data = json.dumps(dict(self._config), separators=(",", ":"), sort_keys=True)
            escaped = quote(data, safe=_URI_COMPONENT_SAFE).encode("ascii")

            self._files[INDEX_FILE] = self._before + escaped + self._after

    def clone(self) -> App:
        """Return an independent copy of the application.

        Safe to call from several threads on the same application.
        """
        with self._lock:
            self._files, files = _branch(self._files)
            self._config, config = _branch(self._config)

        return App(self._name, files, config, self._before, self._after)


def load_files(directory: str | Path) -> dict[str, bytes]:
    """Read all files below directory.

    Args:
        directory: The build output directory.

    Returns:
        File contents keyed by "/"-separated path relative to directory.
    """
    root = Path(directory)
    return {
        path.relative_to(root).as_posix(): path.read_bytes()
        for path in sorted(root.rglob("*"))
        if path.is_file()
    }


def _branch(chain: ChainMap[str, Any]) -> tuple[ChainMap[str, Any], ChainMap[str, Any]]:
    """Split chain into an overlay for its owner and one for a copy.

    Layers below the top are never written again. An owner whose top layer
    is still empty keeps it, so repeated clones do not deepen the chain.
    """
    if not chain.maps[0]:
        return chain, ChainMap({}, *chain.maps[1:])
    return chain.new_child(), chain.new_child()
