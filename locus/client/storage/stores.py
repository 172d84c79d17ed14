"""Backing stores for non-local cabinets.

A store persists a cabinet's serialized entries under the cabinet's name.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Protocol


class CabinetStore(Protocol):
    """Persistence backend for Cabinet data."""

    def load(self, name: str) -> dict[str, Any] | None: ...

    def save(self, name: str, data: dict[str, Any]) -> None: ...

    def remove(self, name: str) -> None: ...


class MemoryStore:
    """Process-lifetime store holding JSON snapshots keyed by cabinet name."""

    def __init__(self) -> None:
        self._snapshots: dict[str, str] = {}

    def load(self, name: str) -> dict[str, Any] | None:
        content = self._snapshots.get(name)
        return json.loads(content) if content else None

    def save(self, name: str, data: dict[str, Any]) -> None:
        self._snapshots[name] = json.dumps(data)

    def remove(self, name: str) -> None:
        self._snapshots.pop(name, None)


class FileStore:
    """One JSON file per cabinet inside a directory."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def _path(self, name: str) -> Path:
        safe = "".join(ch if ch.isalnum() or ch in "._-" else "_" for ch in name)
        return self.directory / f"{safe}.json"

    def load(self, name: str) -> dict[str, Any] | None:
        path = self._path(name)
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def save(self, name: str, data: dict[str, Any]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        self._path(name).write_text(json.dumps(data), encoding="utf-8")

    def remove(self, name: str) -> None:
        self._path(name).unlink(missing_ok=True)


# Shared by every ephemeral cabinet of the process
SESSION_STORE = MemoryStore()
