"""
Per-database transaction version cache.

The service stamps every transaction result with the database's current
version. Sending the last observed version back lets the service detect
requests built against stale state.

Lifecycle:
    - Empty when a connection is created
    - Entries are written through TransactionBuilder.apply_response, which
      only ever advances them; set() is the manual override
    - Entries are never removed, even after a database is deleted

The tracker itself holds no policy: set() overwrites unconditionally.
"""

from __future__ import annotations

import threading


class VersionTracker:
    """Maps database name to the last known transaction version."""

    def __init__(self) -> None:
        self._versions: dict[str, int] = {}
        self._lock = threading.Lock()

    def get(self, dbname: str) -> int:
        """Return the cached version, or 0 for an unseen database."""
        with self._lock:
            return self._versions.get(dbname, 0)

    def set(self, dbname: str, version: int) -> None:
        """Overwrite the cached version for ``dbname``."""
        with self._lock:
            self._versions[dbname] = version

    def snapshot(self) -> dict[str, int]:
        """Copy of the current cache."""
        with self._lock:
            return dict(self._versions)

    def __contains__(self, dbname: object) -> bool:
        with self._lock:
            return dbname in self._versions

    def __len__(self) -> int:
        with self._lock:
            return len(self._versions)
