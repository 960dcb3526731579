"""Persistent key-value storage for saved prompts and restoration history.

The store follows a browser ``localStorage``-style contract: a flat
namespace of string keys, each holding one JSON document.
:class:`JsonFileStore` keeps every key in its own ``<key>.json`` file inside
the data directory:

- a missing or unreadable file yields the caller's default
- every value read or written is cached in memory
- writes are attempted immediately and failures are logged, never raised

Because the cache is updated before the write is attempted, a failing disk
degrades the store to in-memory behaviour for the rest of the process rather
than losing the user's latest edit.
"""

from __future__ import annotations

import copy
import json
import logging
import re
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class KeyValueStore(Protocol):
    """Minimal get/set interface injected into history and prompt stores."""

    def get(self, key: str, default: Any) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


class MemoryStore:
    """Dict-backed store used in tests and as a non-persistent fallback."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = copy.deepcopy(initial) if initial else {}

    def get(self, key: str, default: Any) -> Any:
        if key not in self._values:
            return default
        return copy.deepcopy(self._values[key])

    def set(self, key: str, value: Any) -> None:
        self._values[key] = copy.deepcopy(value)


class JsonFileStore:
    """File-backed store writing one JSON document per key.

    Args:
        directory: Directory holding the ``<key>.json`` files.  Created on
            first use if missing.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)
        self._cache: dict[str, Any] = {}

    def path_for(self, key: str) -> Path:
        """Return the file path backing *key*.

        Raises:
            ValueError: If the key contains characters unsafe in a filename
        """
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid store key: {key!r}")
        return self.directory / f"{key}.json"

    def get(self, key: str, default: Any) -> Any:
        """Return the value stored under *key*, or *default*.

        Missing files and corrupt JSON both fall back to *default* without
        raising.  The fallback is not cached, so a file repaired on disk is
        picked up by the next read.
        """
        if key in self._cache:
            return copy.deepcopy(self._cache[key])

        path = self.path_for(key)
        if not path.exists():
            return default

        try:
            with open(path, encoding="utf-8") as handle:
                value = json.load(handle)
        except (OSError, ValueError) as e:
            logger.warning("Could not read %s, using default: %s", path, e)
            return default

        self._cache[key] = value
        return copy.deepcopy(value)

    def set(self, key: str, value: Any) -> None:
        """Store *value* under *key*.

        The in-memory copy is updated first; the disk write is best effort.
        """
        path = self.path_for(key)
        self._cache[key] = copy.deepcopy(value)
        with self._write_guard(path):
            self.directory.mkdir(parents=True, exist_ok=True)
            payload = json.dumps(value, indent=2)
            with open(path, "w", encoding="utf-8") as handle:
                handle.write(payload)
            logger.debug("Persisted %s (%d bytes)", path.name, len(payload))

    @contextmanager
    def _write_guard(self, path: Path) -> Iterator[None]:
        """Log and swallow persistence errors raised inside the block."""
        try:
            yield
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to persist %s, keeping in-memory value: %s", path, e)
