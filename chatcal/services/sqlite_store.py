from __future__ import annotations

import sqlite3
import threading
from pathlib import Path


class PersistenceError(RuntimeError):
    """Raised when a snapshot cannot be written or read."""


def _ensure_parent(path: Path) -> None:
    if not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)


class SnapshotSQLiteStore:
    """Keeps named JSON snapshots, one row each, replaced atomically."""

    def __init__(self, db_path: str) -> None:
        self.path = Path(db_path)
        self._lock = threading.Lock()
        try:
            _ensure_parent(self.path)
            self._conn = sqlite3.connect(self.path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._ensure_schema()
        except (sqlite3.Error, OSError) as exc:
            raise PersistenceError(f"Cannot open {self.path}: {exc}") from exc

    # --------------------------------------------------------------- snapshots
    def save_snapshot(self, name: str, data: str) -> None:
        try:
            with self._lock, self._conn:
                self._conn.execute(
                    (
                        "INSERT INTO snapshots(name, data, updated_at) "
                        "VALUES(?, ?, CURRENT_TIMESTAMP) "
                        "ON CONFLICT(name) DO UPDATE SET "
                        "data=excluded.data, updated_at=CURRENT_TIMESTAMP"
                    ),
                    (name, data),
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot write snapshot {name!r}: {exc}") from exc

    def load_snapshot(self, name: str) -> str | None:
        try:
            with self._lock:
                cur = self._conn.execute(
                    "SELECT data FROM snapshots WHERE name = ?", (name,)
                )
                row = cur.fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot read snapshot {name!r}: {exc}") from exc
        return row["data"] if row else None

    # -------------------------------------------------------------------- utils
    def close(self) -> None:
        try:
            self._conn.close()
        except sqlite3.Error:  # pragma: no cover - best effort cleanup
            pass

    def _ensure_schema(self) -> None:
        with self._conn:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS snapshots (
                    name TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
