"""
Keyed document store.

The ledger and the collection statuses are stored as JSON documents keyed
by id inside named collections. The store offers exactly the primitives
reconciliation needs: one round trip batch get, one batch write and a
service/date range query.
"""

import json
import sqlite3
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Mapping, Optional

from cost_ledger.errors import StoreReadError, StoreWriteError

from .db import DEFAULT_DB_PATH, DEFAULT_TIMEOUT, get_connection

# SQLite limits bound parameters per statement
_MAX_KEYS_PER_STATEMENT = 500


class DocumentStore(ABC):
    """Generic keyed document store."""

    @abstractmethod
    def batch_get(self, collection: str, keys: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        """Fetch documents by key. Absent keys are omitted from the result."""

    @abstractmethod
    def batch_write(self, collection: str, documents: Mapping[str, Mapping[str, Any]]) -> None:
        """Create or fully replace every given document."""

    @abstractmethod
    def query(
        self,
        collection: str,
        service_id: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> List[Dict[str, Any]]:
        """Documents matching service and inclusive YYYY-MM-DD range, ordered by date."""

    @abstractmethod
    def distinct_service_ids(self, collection: str) -> List[str]:
        """Every service id present in a collection, sorted."""

    @abstractmethod
    def all(self, collection: str) -> Dict[str, Dict[str, Any]]:
        """Every document of a collection keyed by id."""

    @abstractmethod
    def delete(self, collection: str, key: str) -> bool:
        """Remove one document. Returns False if it did not exist."""


class SQLiteDocumentStore(DocumentStore):
    """Document store backed by a single SQLite table.

    ``serviceId`` and ``date`` fields of a document are mirrored into indexed
    columns so range queries do not have to decode every body.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH, timeout: float = DEFAULT_TIMEOUT):
        self.db_path = db_path
        self.timeout = timeout

    def _connect(self) -> sqlite3.Connection:
        return get_connection(self.db_path, self.timeout)

    def initialize_schema(self) -> None:
        """Create the documents table if it doesn't exist."""
        conn = self._connect()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    collection TEXT NOT NULL,
                    doc_key TEXT NOT NULL,
                    service_id TEXT,
                    doc_date TEXT,
                    body TEXT NOT NULL,
                    PRIMARY KEY (collection, doc_key)
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_documents_service_date
                ON documents (collection, service_id, doc_date)
            """)
            conn.commit()
        finally:
            conn.close()

    def batch_get(self, collection: str, keys: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        key_list = list(dict.fromkeys(keys))
        if not key_list:
            return {}

        found: Dict[str, Dict[str, Any]] = {}
        try:
            conn = self._connect()
            try:
                for i in range(0, len(key_list), _MAX_KEYS_PER_STATEMENT):
                    chunk = key_list[i:i + _MAX_KEYS_PER_STATEMENT]
                    placeholders = ", ".join("?" for _ in chunk)
                    cursor = conn.execute(
                        f"SELECT doc_key, body FROM documents "
                        f"WHERE collection = ? AND doc_key IN ({placeholders})",
                        [collection, *chunk]
                    )
                    for doc_key, body in cursor.fetchall():
                        found[doc_key] = json.loads(body)
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StoreReadError(f"Failed to read from {collection}: {e}") from e
        return found

    def batch_write(self, collection: str, documents: Mapping[str, Mapping[str, Any]]) -> None:
        if not documents:
            return

        rows = [
            (collection, key, doc.get("serviceId"), doc.get("date"), json.dumps(dict(doc)))
            for key, doc in documents.items()
        ]
        try:
            conn = self._connect()
            try:
                conn.executemany("""
                    INSERT OR REPLACE INTO documents
                    (collection, doc_key, service_id, doc_date, body)
                    VALUES (?, ?, ?, ?, ?)
                """, rows)
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StoreWriteError(f"Failed to write to {collection}: {e}") from e

    def query(
        self,
        collection: str,
        service_id: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> List[Dict[str, Any]]:
        query = "SELECT body FROM documents WHERE collection = ?"
        params: List[Any] = [collection]
        if service_id:
            query += " AND service_id = ?"
            params.append(service_id)
        if start_date:
            query += " AND doc_date >= ?"
            params.append(start_date)
        if end_date:
            query += " AND doc_date <= ?"
            params.append(end_date)
        if newest_first:
            query += " ORDER BY doc_date DESC, doc_key ASC"
        else:
            query += " ORDER BY doc_date ASC, doc_key ASC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        try:
            conn = self._connect()
            try:
                cursor = conn.execute(query, params)
                return [json.loads(row[0]) for row in cursor.fetchall()]
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StoreReadError(f"Failed to query {collection}: {e}") from e

    def distinct_service_ids(self, collection: str) -> List[str]:
        try:
            conn = self._connect()
            try:
                cursor = conn.execute(
                    "SELECT DISTINCT service_id FROM documents "
                    "WHERE collection = ? AND service_id IS NOT NULL ORDER BY service_id",
                    (collection,)
                )
                return [row[0] for row in cursor.fetchall()]
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StoreReadError(f"Failed to list services of {collection}: {e}") from e

    def all(self, collection: str) -> Dict[str, Dict[str, Any]]:
        try:
            conn = self._connect()
            try:
                cursor = conn.execute(
                    "SELECT doc_key, body FROM documents WHERE collection = ? ORDER BY doc_key",
                    (collection,)
                )
                return {key: json.loads(body) for key, body in cursor.fetchall()}
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StoreReadError(f"Failed to read {collection}: {e}") from e

    def delete(self, collection: str, key: str) -> bool:
        try:
            conn = self._connect()
            try:
                cursor = conn.execute(
                    "DELETE FROM documents WHERE collection = ? AND doc_key = ?",
                    (collection, key)
                )
                conn.commit()
                return cursor.rowcount > 0
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StoreWriteError(f"Failed to delete {key} from {collection}: {e}") from e
