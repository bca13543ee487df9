"""
admission/database.py — Key-value persistence for candidates and ledgers
=======================================================================
The engine never touches storage directly; it talks to a KeyValueStore
injected by the caller.  Two implementations ship here:

  InMemoryStore   dict-backed; used by tests and throwaway CLI sessions
  SqliteStore     single `kv_store` table in a local SQLite file

Design decisions
----------------
- **Flat key-value schema** — every record (candidate, attempt counters,
  result history) is a JSON blob under a string key.  Keys are namespaced
  by the ledger, e.g. ``candidate:<id>``, ``attempts:<id>``, ``results:<id>``.
- **transaction()** — every multi-key write the ledger performs (attempt
  increment + history append) runs inside one transaction, so a failure
  leaves neither half written.
- **WAL journal mode** — the CLI history command may read while a session
  writes.
- **check_same_thread=False** — the timer thread can trigger the final
  submission; a store-level lock serialises access to the one connection.

Schema
------
  key         TEXT PRIMARY KEY
  value_json  TEXT NOT NULL
  updated_at  TEXT DEFAULT (datetime('now'))

Errors
------
  Every sqlite3.Error is re-raised as PersistenceUnavailable.
"""

from __future__ import annotations

import contextlib
import copy
import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Iterator, Optional

from admission.exceptions import PersistenceUnavailable

logger = logging.getLogger(__name__)

_MISSING = object()


class KeyValueStore:
    """Persistence port: key-addressed get / set / append with transactions."""

    def get(self, key: str, default: Any = None) -> Any:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def append(self, key: str, item: Any) -> None:
        """Append *item* to the JSON list stored under *key* (created if absent)."""
        with self.transaction():
            current = self.get(key, [])
            if not isinstance(current, list):
                raise PersistenceUnavailable(f"Key {key!r} does not hold a list")
            self.set(key, current + [item])

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def keys(self, prefix: str = "") -> list[str]:
        raise NotImplementedError

    def transaction(self) -> contextlib.AbstractContextManager:
        raise NotImplementedError


# ─── In-memory ────────────────────────────────────────────────────────────────

class InMemoryStore(KeyValueStore):
    """
    Dict-backed store.  Values are deep-copied in and out so callers can never
    mutate stored state by accident.  A transaction works on a copy and swaps
    it in only on success.
    """

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}
        self._lock = threading.RLock()
        self._depth = 0

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            value = self._data.get(key, _MISSING)
        return default if value is _MISSING else copy.deepcopy(value)

    def set(self, key: str, value: Any) -> None:
        # Round-trip through JSON so both stores accept exactly the same values.
        encoded = json.loads(json.dumps(value))
        with self._lock:
            self._data[key] = encoded

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self, prefix: str = "") -> list[str]:
        with self._lock:
            return sorted(k for k in self._data if k.startswith(prefix))

    @contextlib.contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return
            snapshot = copy.deepcopy(self._data)
            self._depth = 1
            try:
                yield
            except BaseException:
                self._data = snapshot
                raise
            finally:
                self._depth = 0


# ─── SQLite ───────────────────────────────────────────────────────────────────

class SqliteStore(KeyValueStore):
    """Key-value store over a single SQLite table."""

    def __init__(self, db_path: "str | Path") -> None:
        self.db_path = str(db_path)
        self._lock = threading.RLock()
        self._depth = 0
        self._conn = self._get_conn()
        self.init_db()

    def _get_conn(self) -> sqlite3.Connection:
        """Return a connection with row_factory set."""
        try:
            conn = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
            conn.row_factory = sqlite3.Row
            if self.db_path != ":memory:":
                conn.execute("PRAGMA journal_mode=WAL")
            return conn
        except sqlite3.Error as exc:
            raise PersistenceUnavailable(f"Cannot open database {self.db_path}: {exc}") from exc

    def init_db(self) -> None:
        """Create the table if it doesn't exist."""
        self._execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key         TEXT PRIMARY KEY,
                value_json  TEXT NOT NULL,
                updated_at  TEXT DEFAULT (datetime('now'))
            )
        """)

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            with self._lock:
                return self._conn.execute(sql, params)
        except sqlite3.Error as exc:
            raise PersistenceUnavailable(f"SQLite error: {exc}") from exc

    def get(self, key: str, default: Any = None) -> Any:
        row = self._execute(
            "SELECT value_json FROM kv_store WHERE key = ?", (key,)
        ).fetchone()
        if row is None:
            return default
        return json.loads(row["value_json"])

    def set(self, key: str, value: Any) -> None:
        self._execute(
            """
            INSERT INTO kv_store (key, value_json, updated_at)
            VALUES (?, ?, datetime('now'))
            ON CONFLICT(key) DO UPDATE SET
                value_json = excluded.value_json,
                updated_at = excluded.updated_at
            """,
            (key, json.dumps(value)),
        )

    def delete(self, key: str) -> None:
        self._execute("DELETE FROM kv_store WHERE key = ?", (key,))

    def keys(self, prefix: str = "") -> list[str]:
        rows = self._execute(
            "SELECT key FROM kv_store WHERE substr(key, 1, ?) = ? ORDER BY key",
            (len(prefix), prefix),
        ).fetchall()
        return [r["key"] for r in rows]

    @contextlib.contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return
            self._execute("BEGIN IMMEDIATE")
            self._depth = 1
            try:
                yield
                self._execute("COMMIT")
            except BaseException:
                self._rollback()
                raise
            finally:
                self._depth = 0

    def _rollback(self) -> None:
        try:
            if self._conn.in_transaction:
                self._conn.execute("ROLLBACK")
        except sqlite3.Error:
            logger.exception("Rollback failed for %s", self.db_path)

    def close(self) -> None:
        with self._lock:
            self._conn.close()


def open_store(db_path: Optional[str]) -> KeyValueStore:
    """SQLite store for a real path, in-memory store for None / ':memory:'."""
    if not db_path or db_path == ":memory:":
        return InMemoryStore()
    return SqliteStore(db_path)
