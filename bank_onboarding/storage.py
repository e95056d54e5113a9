"""
Client Storage Module

Durable client-side storage for onboarding records, with in-memory (testing)
and SQLite (persistence) backends. Every write is screened so that secrets
such as the temporary card PIN or the session credential never reach disk.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Union
from decimal import Decimal
from datetime import datetime, timezone
import sqlite3
import json
import threading
from dataclasses import dataclass, asdict
from pathlib import Path

from .errors import SensitiveDataError


# Keys that must never be written to durable storage, compared case-insensitively
SENSITIVE_KEYS = frozenset({
    "temp_pin", "temppin", "pin", "pin_hash", "pinhash",
    "credential", "token", "access_token", "authorization", "password",
})


def ensure_no_secrets(data: Any, path: str = "") -> None:
    """
    Reject data that carries a sensitive key at any depth.

    Raises:
        SensitiveDataError: naming the offending key path
    """
    if isinstance(data, dict):
        for key, value in data.items():
            key_path = f"{path}.{key}" if path else str(key)
            if str(key).lower() in SENSITIVE_KEYS:
                raise SensitiveDataError(f"Refusing to store sensitive field '{key_path}'")
            ensure_no_secrets(value, key_path)
    elif isinstance(data, (list, tuple)):
        for index, item in enumerate(data):
            ensure_no_secrets(item, f"{path}[{index}]")


def _encode(data: Dict[str, Any]) -> str:
    return json.dumps(data, default=str)


@dataclass
class StorageRecord:
    """Base class for stored records with an id and timestamps"""
    id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        for key, value in result.items():
            if isinstance(value, datetime):
                result[key] = value.isoformat()
            elif isinstance(value, Decimal):
                result[key] = str(value)
        return result


class StorageInterface(ABC):
    """
    Keyed JSON document store.

    Records live in named tables and are addressed by id. Backends keep
    insertion order, so load_all returns records oldest first.
    """

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert or replace a record; raises SensitiveDataError for secrets"""

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Return a copy of the record, or None"""

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Return copies of every record in insertion order"""

    @abstractmethod
    def delete(self, table: str, record_id: str) -> bool:
        """Remove a record; True if it existed"""

    @abstractmethod
    def clear_table(self, table: str) -> None:
        """Remove every record in a table"""

    @abstractmethod
    def close(self) -> None:
        """Release backend resources"""

    def exists(self, table: str, record_id: str) -> bool:
        return self.load(table, record_id) is not None

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Records whose top-level fields equal every filter value"""
        return [
            record for record in self.load_all(table)
            if all(key in record and record[key] == value for key, value in filters.items())
        ]

    def count(self, table: str) -> int:
        return len(self.load_all(table))


class InMemoryStorage(StorageInterface):
    """In-memory storage implementation for testing"""

    def __init__(self):
        self._tables: Dict[str, Dict[str, str]] = {}
        self._lock = threading.RLock()

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        ensure_no_secrets(data)
        # Stored serialized so callers never share mutable state with the store
        encoded = _encode(data)
        with self._lock:
            self._tables.setdefault(table, {})[record_id] = encoded

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            encoded = self._tables.get(table, {}).get(record_id)
        return json.loads(encoded) if encoded is not None else None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            encoded = list(self._tables.get(table, {}).values())
        return [json.loads(item) for item in encoded]

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            return self._tables.get(table, {}).pop(record_id, None) is not None

    def exists(self, table: str, record_id: str) -> bool:
        with self._lock:
            return record_id in self._tables.get(table, {})

    def count(self, table: str) -> int:
        with self._lock:
            return len(self._tables.get(table, {}))

    def clear_table(self, table: str) -> None:
        with self._lock:
            self._tables.pop(table, None)

    def close(self) -> None:
        pass


class SQLiteStorage(StorageInterface):
    """
    SQLite storage for persistence.

    All tables share one `records` relation keyed by (collection, id); the
    rowid preserves insertion order across updates.
    """

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS records (
            collection TEXT NOT NULL,
            id TEXT NOT NULL,
            data TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            PRIMARY KEY (collection, id)
        )
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False)
        self._lock = threading.RLock()

        with self._lock:
            if self.db_path != ":memory:":
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
            self._connection.execute(self.SCHEMA)
            self._connection.commit()

    def _query(self, sql: str, params: tuple = ()) -> List[tuple]:
        with self._lock:
            return self._connection.execute(sql, params).fetchall()

    def _write(self, sql: str, params: tuple = ()) -> int:
        with self._lock:
            cursor = self._connection.execute(sql, params)
            self._connection.commit()
            return cursor.rowcount

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        ensure_no_secrets(data)
        now = datetime.now(timezone.utc).isoformat()
        self._write("""
            INSERT INTO records (collection, id, data, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (collection, id)
            DO UPDATE SET data = excluded.data, updated_at = excluded.updated_at
        """, (table, record_id, _encode(data), now, now))

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        rows = self._query(
            "SELECT data FROM records WHERE collection = ? AND id = ?", (table, record_id)
        )
        return json.loads(rows[0][0]) if rows else None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        rows = self._query(
            "SELECT data FROM records WHERE collection = ? ORDER BY rowid", (table,)
        )
        return [json.loads(row[0]) for row in rows]

    def delete(self, table: str, record_id: str) -> bool:
        return self._write(
            "DELETE FROM records WHERE collection = ? AND id = ?", (table, record_id)
        ) > 0

    def exists(self, table: str, record_id: str) -> bool:
        return bool(self._query(
            "SELECT 1 FROM records WHERE collection = ? AND id = ? LIMIT 1", (table, record_id)
        ))

    def count(self, table: str) -> int:
        return self._query("SELECT COUNT(*) FROM records WHERE collection = ?", (table,))[0][0]

    def clear_table(self, table: str) -> None:
        self._write("DELETE FROM records WHERE collection = ?", (table,))

    def close(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
