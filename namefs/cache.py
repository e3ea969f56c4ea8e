"""Small fixed-size cache of recent name lookups kept by the naming server."""

from __future__ import annotations

import logging
import os
import threading

logger = logging.getLogger(__name__)


class LookupCache:
    """Ring buffer of ``(name, port)`` pairs, optionally mirrored to a history file."""

    def __init__(self, capacity: int = 10, history_path: str | os.PathLike | None = None):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self.history_path = history_path
        self._slots: list[tuple[str, int] | None] = [None] * capacity
        self._next = 0
        self._lock = threading.Lock()

    def lookup(self, name: str) -> int | None:
        """Return the cached port for ``name``, or None on a miss.

        Each hit rotates the ring so that the oldest slot comes first.
        """
        port = 0
        with self._lock:
            for i in range(self.capacity):
                slot = self._slots[i]
                if slot is not None and slot[0] == name:
                    port = slot[1]
                    self._slots = self._slots[self._next:] + self._slots[: self._next]
        return port or None

    def insert(self, name: str, port: int) -> bool:
        """Record a lookup result; returns False if the same pair is already held."""
        with self._lock:
            if (name, port) in self._slots:
                logger.info("%r with port %d already cached", name, port)
                return False
            self._slots[self._next] = (name, port)
            self._next = (self._next + 1) % self.capacity
            snapshot = list(self._slots)
        logger.info("%r with port %d cached", name, port)
        self._write_history(snapshot)
        return True

    def entries(self) -> list[tuple[str, int]]:
        """Occupied slots in ring order."""
        with self._lock:
            return [slot for slot in self._slots if slot is not None]

    def _write_history(self, snapshot: list[tuple[str, int] | None]) -> None:
        if self.history_path is None:
            return
        try:
            with open(self.history_path, "w", encoding="utf-8") as history:
                for slot in snapshot:
                    history.write(f"{slot[0] if slot else ''}\n")
        except OSError as exc:
            logger.warning("could not write history file %s: %s", self.history_path, exc)