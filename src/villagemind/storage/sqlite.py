"""SQLite-backed storage."""

import json
import sqlite3
from pathlib import Path

from .base import Record, Storage, StorageError, check_collection


class SqliteStorage(Storage):
    """Persistent storage in a single SQLite table.

    Every collection shares one ``records`` table keyed by
    (collection, key); values are stored as JSON text.
    """

    backend = "sqlite"

    def __init__(self, db_path: Path) -> None:
        """Initialize the storage with a database path.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                self._conn = sqlite3.connect(self.db_path)
            except (OSError, sqlite3.Error) as e:
                raise StorageError(f"Cannot open database {self.db_path}: {e}") from e
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def init_db(self) -> None:
        """Create the records table if it doesn't exist."""
        conn = self._get_connection()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS records (
                    collection  TEXT NOT NULL,
                    key         TEXT NOT NULL,
                    value       TEXT NOT NULL,
                    updated_at  TEXT NOT NULL DEFAULT (datetime('now')),
                    PRIMARY KEY (collection, key)
                )
            """)
            conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Cannot initialize {self.db_path}: {e}") from e

    async def initialize(self) -> None:
        self.init_db()

    async def get_all(self, collection: str) -> list[Record]:
        check_collection(collection)
        rows = self._query(
            "SELECT value FROM records WHERE collection = ? ORDER BY key",
            (collection,),
        )
        return [json.loads(row["value"]) for row in rows]

    async def get(self, collection: str, key: str) -> Record | None:
        check_collection(collection)
        rows = self._query(
            "SELECT value FROM records WHERE collection = ? AND key = ?",
            (collection, key),
        )
        return json.loads(rows[0]["value"]) if rows else None

    async def put(self, collection: str, key: str, value: Record) -> None:
        check_collection(collection)
        self._execute(
            [
                (
                    """
                    INSERT INTO records (collection, key, value)
                    VALUES (?, ?, ?)
                    ON CONFLICT(collection, key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = datetime('now')
                    """,
                    (collection, key, json.dumps(value)),
                )
            ]
        )

    async def delete(self, collection: str, key: str) -> None:
        check_collection(collection)
        self._execute(
            [("DELETE FROM records WHERE collection = ? AND key = ?", (collection, key))]
        )

    async def replace_all(self, collection: str, items: dict[str, Record]) -> None:
        check_collection(collection)
        statements: list[tuple[str, tuple]] = [
            ("DELETE FROM records WHERE collection = ?", (collection,))
        ]
        statements.extend(
            (
                "INSERT INTO records (collection, key, value) VALUES (?, ?, ?)",
                (collection, key, json.dumps(value)),
            )
            for key, value in items.items()
        )
        self._execute(statements)

    async def clear(self, collection: str) -> None:
        check_collection(collection)
        self._execute([("DELETE FROM records WHERE collection = ?", (collection,))])

    async def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _query(self, sql: str, params: tuple) -> list[sqlite3.Row]:
        conn = self._get_connection()
        try:
            return conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e

    def _execute(self, statements: list[tuple[str, tuple]]) -> None:
        """Run statements in one transaction."""
        conn = self._get_connection()
        try:
            with conn:
                for sql, params in statements:
                    conn.execute(sql, params)
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e
