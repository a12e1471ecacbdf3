"""
Storage Backend Module

Provides the key-value storage interface the wallet persists to, with an
in-memory implementation (testing, embedding) and a SQLite implementation
(durable across restarts). Integers are stored as decimal strings so values
wider than 64 bits survive JSON round-trips.

Both backends support nested transactions: ``atomic()`` blocks may be opened
inside each other and an inner rollback only discards the inner block.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Tuple, Union
from datetime import datetime, timezone
import sqlite3
import json
import threading
from pathlib import Path
from contextlib import contextmanager


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to storage"""
        pass

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from storage"""
        pass

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        pass

    @abstractmethod
    def count(self, table: str) -> int:
        """Count records in table"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass

    def begin_transaction(self) -> None:
        """Start a (possibly nested) transaction (default no-op)"""
        pass

    def commit(self) -> None:
        """Commit the innermost transaction (default no-op)"""
        pass

    def rollback(self) -> None:
        """Roll back the innermost transaction (default no-op)"""
        pass

    @contextmanager
    def atomic(self):
        """Context manager for atomic operations"""
        self.begin_transaction()
        try:
            yield
            self.commit()
        except Exception:
            self.rollback()
            raise

    def load_value(self, table: str, key: str, default: Any = None) -> Any:
        """Load a scalar stored under ``key``"""
        record = self.load(table, key)
        if record is None:
            return default
        return record.get('value', default)

    def save_value(self, table: str, key: str, value: Any) -> None:
        """Store a scalar under ``key``"""
        self.save(table, key, {'id': key, 'value': value})

    def load_int(self, table: str, key: str, default: int = 0) -> int:
        """Load an integer scalar stored as a decimal string"""
        value = self.load_value(table, key)
        if value is None:
            return default
        return int(value)

    def save_int(self, table: str, key: str, value: int) -> None:
        """Store an integer scalar as a decimal string"""
        self.save_value(table, key, str(value))


class InMemoryStorage(StorageInterface):
    """In-memory storage with undo-log nested transactions"""

    def __init__(self):
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        # One log per open transaction: prior value of every record it touched
        self._undo_logs: List[Dict[Tuple[str, str], Optional[Dict[str, Any]]]] = []
        self._lock = threading.RLock()

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists"""
        if table not in self._data:
            self._data[table] = {}

    def _remember(self, table: str, record_id: str) -> None:
        """Keep the record's value from before the innermost transaction"""
        if self._undo_logs:
            undo = self._undo_logs[-1]
            key = (table, record_id)
            if key not in undo:
                undo[key] = self._data[table].get(record_id)

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to memory"""
        with self._lock:
            self._ensure_table(table)
            self._remember(table, record_id)
            # Deep copy to prevent external mutation
            self._data[table][record_id] = json.loads(json.dumps(data, default=str))

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from memory"""
        with self._lock:
            self._ensure_table(table)
            record = self._data[table].get(record_id)
            if record is not None:
                return json.loads(json.dumps(record))
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table in insertion order"""
        with self._lock:
            self._ensure_table(table)
            return [json.loads(json.dumps(record)) for record in self._data[table].values()]

    def count(self, table: str) -> int:
        """Count records in table"""
        with self._lock:
            self._ensure_table(table)
            return len(self._data[table])

    def begin_transaction(self) -> None:
        """Open an undo log for the new innermost transaction"""
        with self._lock:
            self._undo_logs.append({})

    def commit(self) -> None:
        """Keep current data; the enclosing transaction inherits the undo entries"""
        with self._lock:
            if not self._undo_logs:
                return
            undo = self._undo_logs.pop()
            if self._undo_logs:
                parent = self._undo_logs[-1]
                for key, prior in undo.items():
                    parent.setdefault(key, prior)

    def rollback(self) -> None:
        """Restore every record the innermost transaction touched"""
        with self._lock:
            if not self._undo_logs:
                return
            for (table, record_id), prior in self._undo_logs.pop().items():
                if prior is None:
                    self._data[table].pop(record_id, None)
                else:
                    self._data[table][record_id] = prior

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass


class SQLiteStorage(StorageInterface):
    """SQLite storage with savepoint-based nested transactions"""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        # Autocommit mode; transactions are driven explicitly through savepoints
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0

        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = FULL")

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists with proper schema"""
        with self._lock:
            self._connection.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT UNIQUE NOT NULL,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert or update a record, keeping its original position"""
        with self._lock:
            self._ensure_table(table)

            now = datetime.now(timezone.utc).isoformat()
            data_json = json.dumps(data, default=str)

            self._connection.execute(f"""
                INSERT INTO {table} (id, data, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    data = excluded.data,
                    updated_at = excluded.updated_at
            """, (record_id, data_json, now, now))

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from SQLite"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT data FROM {table} WHERE id = ?
            """, (record_id,))
            row = cursor.fetchone()
            if row:
                return json.loads(row['data'])
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table in insertion order"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT data FROM {table} ORDER BY seq
            """)
            return [json.loads(row['data']) for row in cursor.fetchall()]

    def count(self, table: str) -> int:
        """Count records in table"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT COUNT(*) as count FROM {table}
            """)
            return cursor.fetchone()['count']

    def begin_transaction(self) -> None:
        """Open a savepoint; the outermost one starts the SQLite transaction"""
        with self._lock:
            self._depth += 1
            self._connection.execute(f"SAVEPOINT sp_{self._depth}")

    def commit(self) -> None:
        """Release the innermost savepoint; the outermost release commits"""
        with self._lock:
            if self._depth:
                self._connection.execute(f"RELEASE SAVEPOINT sp_{self._depth}")
                self._depth -= 1

    def rollback(self) -> None:
        """Undo everything since the innermost savepoint"""
        with self._lock:
            if self._depth:
                self._connection.execute(f"ROLLBACK TO SAVEPOINT sp_{self._depth}")
                self._connection.execute(f"RELEASE SAVEPOINT sp_{self._depth}")
                self._depth -= 1

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_storage(config) -> StorageInterface:
    """Build the storage backend named by configuration"""
    backend = config.storage_backend.lower()
    if backend == "memory":
        return InMemoryStorage()
    if backend == "sqlite":
        return SQLiteStorage(config.database_path)
    raise ValueError(f"Unknown storage backend: {config.storage_backend}")
