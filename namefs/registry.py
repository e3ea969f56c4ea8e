"""Index of file names to the storage server port that holds them."""

from __future__ import annotations

import os
import threading


class FileRegistry:
    """Thread-safe mapping of file names to storage server ports."""

    def __init__(self):
        self._ports: dict[str, int] = {}
        self._lock = threading.Lock()

    def insert(self, name: str, port: int) -> None:
        """Record that ``name`` lives on the storage server at ``port``."""
        with self._lock:
            self._ports[name] = port

    def find(self, name: str) -> int | None:
        """Return the port holding ``name``, or None if it is unknown."""
        with self._lock:
            return self._ports.get(name)

    def remove(self, name: str) -> bool:
        """Forget ``name``; returns whether it was known."""
        with self._lock:
            return self._ports.pop(name, None) is not None

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._ports

    def __len__(self) -> int:
        with self._lock:
            return len(self._ports)


def list_regular_files(directory: str | os.PathLike, limit: int = 100) -> list[str]:
    """Names of regular files directly inside ``directory``, at most ``limit`` of them."""
    if limit < 0:
        raise ValueError("limit must not be negative")
    with os.scandir(directory) as entries:
        names = sorted(entry.name for entry in entries if entry.is_file(follow_symlinks=False))
    return names[:limit]