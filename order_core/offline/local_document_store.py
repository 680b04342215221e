# =============================================================================
# order_core/offline/local_document_store.py
# Local Document Store for Offline Operations
# =============================================================================
"""
Local document store - durable storage of JSON-like records tagged by a
logical table name.

Features:
- Stable identity and revision tracking across overwrites
- Equality queries on payload fields (SQLite JSON1)
- Composite indexes declared at runtime
- Best-effort bulk operations
- No-op engine when the storage engine cannot be opened

Two engines share the DocumentStore interface:
- SQLiteDocumentStore: the persistent engine
- NullDocumentStore: answers reads with nothing and writes with a
  synthetic success (sandboxed or storage-denied environments)

Use open_document_store() to pick one once at startup.
"""

from __future__ import annotations
import hashlib
import json
import re
import sqlite3
import threading
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple, Union
import logging

import numpy as np
import pandas as pd

from order_core.errors import (
    RevisionConflictError,
    StorageError,
    StorageUnavailableError,
    error_boundary,
)

logger = logging.getLogger(__name__)

NULL_REVISION = "0-0"

# Selector/index names that address record metadata instead of the payload
META_COLUMNS = {
    "id": "id",
    "_id": "id",
    "_rev": "rev",
    "table": "table_name",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}

MINIMUM_INDEXES = (["table"], ["table", "updatedAt"])

_FIELD_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")


@dataclass
class Record:
    """One stored document."""
    id: str
    revision: Optional[str]
    table: str
    payload: Any
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "_id": self.id,
            "_rev": self.revision,
            "table": self.table,
            "payload": self.payload,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


RecordLike = Union[Record, Mapping[str, Any]]


def generate_id() -> str:
    """Collision-resistant random identifier."""
    return uuid.uuid4().hex


def revision_generation(revision: Optional[str]) -> int:
    """Generation prefix of a revision token; 0 if missing or malformed."""
    if not revision:
        return 0
    try:
        return int(revision.split("-", 1)[0])
    except ValueError:
        return 0


def next_revision(previous: Optional[str]) -> str:
    """Revision token whose generation supersedes ``previous``."""
    return f"{revision_generation(previous) + 1}-{uuid.uuid4().hex}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _json_default(value: Any) -> Any:
    """Make pandas/numpy values JSON serializable."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, np.floating):
        return float(value)
    if isinstance(value, np.bool_):
        return bool(value)
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_payload(payload: Any) -> str:
    """Strict JSON: NaN and infinities raise ValueError (SQLite JSON1 rejects them)."""
    return json.dumps(payload, default=_json_default, allow_nan=False)


def index_name(fields: List[str], expressions: List[str]) -> str:
    """
    SQLite index name for a composite index.

    The readable part comes from the field names; the suffix hashes the
    indexed expressions, so "a.b" and "a_b" get different names.
    """
    readable = "__".join(re.sub(r"\W", "_", f) for f in fields)
    digest = hashlib.sha1("|".join(expressions).encode("utf-8")).hexdigest()[:8]
    return f"idx_{readable}_{digest}"


def _payload_id(payload: Any) -> Optional[str]:
    if isinstance(payload, Mapping) and payload.get("_id"):
        return str(payload["_id"])
    return None


def _coerce_record(item: RecordLike) -> Tuple[str, Any, Optional[str], Optional[str]]:
    """Normalize a Record or record-shaped mapping to (table, payload, id, rev)."""
    if isinstance(item, Record):
        return item.table, item.payload, item.id, item.revision
    if isinstance(item, Mapping):
        table = item.get("table")
        if not table:
            raise ValueError("record has no table")
        payload = item.get("payload")
        record_id = item.get("_id") or item.get("id") or _payload_id(payload)
        revision = item.get("_rev") or item.get("revision")
        return table, payload, record_id, revision
    raise TypeError(f"Unsupported record type: {type(item).__name__}")


def _record_ids(items: Iterable[Union[RecordLike, str]]) -> List[str]:
    ids = []
    for item in items:
        if isinstance(item, str):
            ids.append(item)
        elif isinstance(item, Record):
            ids.append(item.id)
        elif isinstance(item, Mapping) and (item.get("_id") or item.get("id")):
            ids.append(str(item.get("_id") or item.get("id")))
        else:
            logger.warning(f"Skipping record without id in bulk delete: {item!r}")
    return ids


class DocumentStore(ABC):
    """Interface shared by the persistent and the no-op engines."""

    @abstractmethod
    def save(
        self,
        table: str,
        payload: Any,
        record_id: Optional[str] = None,
        revision: Optional[str] = None,
    ) -> Record:
        """Create or update-in-place the record ``record_id`` of ``table``."""

    @abstractmethod
    def get_by_id(self, table: str, record_id: str) -> Optional[Record]:
        """Record ``record_id`` if it exists and belongs to ``table``."""

    @abstractmethod
    def get_all(self, table: str) -> List[Record]:
        """All records of ``table``; empty on storage errors."""

    @abstractmethod
    def find(self, table: str, selector: Mapping[str, Any]) -> List[Record]:
        """Records of ``table`` whose fields equal every selector value."""

    @abstractmethod
    def remove(self, table: str, record_id: str) -> bool:
        """Delete one record using its current revision."""

    @abstractmethod
    def delete(self, record_id: str) -> bool:
        """Delete a record by id whatever its table."""

    @abstractmethod
    def clear(self, table: str) -> int:
        """Delete every record of ``table``; returns how many went."""

    @abstractmethod
    def bulk_save(self, records: Iterable[RecordLike]) -> int:
        """Best-effort batch save; returns the number of successes."""

    @abstractmethod
    def bulk_delete(self, records: Iterable[Union[RecordLike, str]]) -> bool:
        """Delete every given identity, ignoring revisions."""

    @abstractmethod
    def list_tables(self) -> Set[str]:
        """Distinct table tags across the store."""

    @abstractmethod
    def create_indexes(self, fields: List[str]) -> None:
        """Declare a composite index; idempotent."""

    @abstractmethod
    def init(self) -> None:
        """Ensure the minimum indexes exist."""

    @abstractmethod
    def wipe_all(self) -> bool:
        """Destroy all data and re-establish the minimum indexes."""

    @abstractmethod
    def info(self) -> Optional[Dict[str, Any]]:
        """Engine name, document count and location."""

    @property
    def is_persistent(self) -> bool:
        return True

    # =========================================================================
    # DERIVED OPERATIONS
    # =========================================================================

    def count(self, table: str) -> int:
        return len(self.get_all(table))

    def search(self, table: str, predicate: Callable[[Any], bool]) -> List[Record]:
        """Records of ``table`` whose payload satisfies ``predicate``."""
        matches = []
        for record in self.get_all(table):
            try:
                if predicate(record.payload):
                    matches.append(record)
            except Exception as e:
                logger.warning(f"Search predicate failed on {record.id}: {e}")
        return matches

    def to_dataframe(self, table: str) -> pd.DataFrame:
        """
        Load a table into a pandas DataFrame.

        Dict payloads become columns; other payloads land in a
        ``payload`` column. Record metadata is kept in ``_id``, ``_rev``,
        ``createdAt`` and ``updatedAt``.
        """
        rows = []
        for record in self.get_all(table):
            row = dict(record.payload) if isinstance(record.payload, Mapping) else {"payload": record.payload}
            row.update({
                "_id": record.id,
                "_rev": record.revision,
                "createdAt": record.created_at,
                "updatedAt": record.updated_at,
            })
            rows.append(row)
        return pd.DataFrame(rows)


class SQLiteDocumentStore(DocumentStore):
    """
    SQLite-backed document store.

    Every record lives in one ``documents`` table; the payload is stored
    as JSON text and queried with the JSON1 functions.
    """

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS documents (
            id TEXT PRIMARY KEY,
            rev TEXT NOT NULL,
            table_name TEXT NOT NULL,
            payload TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """

    COLUMNS = "id, rev, table_name, payload, created_at, updated_at"

    def __init__(self, db_path: Union[str, Path]):
        """
        Open (and create if needed) the database file.

        Raises:
            StorageUnavailableError: if the file cannot be created or opened
        """
        self.db_path = Path(db_path)
        self._local = threading.local()
        self._write_lock = threading.RLock()
        self._indexes: List[Tuple[str, ...]] = []

        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = self._get_connection()
            conn.execute(self.SCHEMA)
            conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise StorageUnavailableError(
                f"Local database cannot be opened: {e}",
                path=str(self.db_path),
            ) from e

        logger.info(f"Local document store opened at: {self.db_path}")

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if getattr(self._local, "connection", None) is None:
            self._local.connection = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
                timeout=30,
            )
            self._local.connection.row_factory = sqlite3.Row
        return self._local.connection

    @contextmanager
    def transaction(self):
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def close(self) -> None:
        """Close this thread's database connection."""
        if getattr(self._local, "connection", None) is not None:
            self._local.connection.close()
            self._local.connection = None

    @staticmethod
    def _to_record(row: sqlite3.Row) -> Record:
        return Record(
            id=row["id"],
            revision=row["rev"],
            table=row["table_name"],
            payload=json.loads(row["payload"]) if row["payload"] is not None else None,
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def _fetch_row(self, conn: sqlite3.Connection, record_id: str) -> Optional[sqlite3.Row]:
        return conn.execute(
            f"SELECT {self.COLUMNS} FROM documents WHERE id = ?",
            [record_id],
        ).fetchone()

    # =========================================================================
    # WRITES
    # =========================================================================

    def _write(
        self,
        table: str,
        payload: Any,
        record_id: Optional[str],
        revision: Optional[str],
        require_revision: bool,
    ) -> Record:
        if not table:
            raise ValueError("table must be a non-empty string")

        record_id = record_id or _payload_id(payload) or generate_id()
        try:
            body = encode_payload(payload)
        except (TypeError, ValueError) as e:
            raise StorageError(
                f"Payload is not JSON serializable: {e}",
                table=table,
                record_id=record_id,
            ) from e

        try:
            with self._write_lock, self.transaction() as conn:
                existing = self._fetch_row(conn, record_id)
                now = _utcnow()

                if existing is None:
                    record = Record(
                        id=record_id,
                        revision=next_revision(None),
                        table=table,
                        payload=payload,
                        created_at=now,
                        updated_at=now,
                    )
                    conn.execute(
                        f"INSERT INTO documents ({self.COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
                        [record.id, record.revision, table, body,
                         now.isoformat(), now.isoformat()],
                    )
                    return record

                if existing["table_name"] != table:
                    raise RevisionConflictError(
                        f"Record {record_id} belongs to table '{existing['table_name']}'",
                        table=table,
                        record_id=record_id,
                    )
                if revision is None and require_revision:
                    raise RevisionConflictError(
                        "Update without a revision",
                        actual=existing["rev"],
                        table=table,
                        record_id=record_id,
                    )
                if revision is not None and revision != existing["rev"]:
                    raise RevisionConflictError(
                        "Stale revision",
                        expected=revision,
                        actual=existing["rev"],
                        table=table,
                        record_id=record_id,
                    )

                created_at = datetime.fromisoformat(existing["created_at"])
                previous = datetime.fromisoformat(existing["updated_at"])
                updated_at = max(now, previous, created_at)
                record = Record(
                    id=record_id,
                    revision=next_revision(existing["rev"]),
                    table=table,
                    payload=payload,
                    created_at=created_at,
                    updated_at=updated_at,
                )
                conn.execute(
                    "UPDATE documents SET rev = ?, payload = ?, updated_at = ? WHERE id = ?",
                    [record.revision, body, updated_at.isoformat(), record_id],
                )
                return record
        except sqlite3.Error as e:
            raise StorageError(
                f"Could not save record: {e}",
                table=table,
                record_id=record_id,
            ) from e

    def save(
        self,
        table: str,
        payload: Any,
        record_id: Optional[str] = None,
        revision: Optional[str] = None,
    ) -> Record:
        """
        Save a record.

        The id comes from ``record_id``, else from an ``_id`` key of a dict
        payload, else it is generated. Without ``revision`` an existing
        record is overwritten (last write wins); with one, the write only
        happens if it matches the stored revision.

        Raises:
            RevisionConflictError: stale revision, or the id is stored
                under another table
            StorageError: the payload cannot be encoded or written
        """
        return self._write(table, payload, record_id, revision, require_revision=False)

    def remove(self, table: str, record_id: str) -> bool:
        """
        Delete a record using the revision currently stored.

        Returns:
            False if there is no such record in ``table`` or the revision
            moved under us; True once deleted
        """
        record = self.get_by_id(table, record_id)
        if record is None or not record.revision:
            return False

        try:
            with self._write_lock, self.transaction() as conn:
                cursor = conn.execute(
                    "DELETE FROM documents WHERE id = ? AND rev = ? AND table_name = ?",
                    [record.id, record.revision, table],
                )
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            logger.error(f"Error removing record {record_id} from {table}: {e}")
            return False

    def delete(self, record_id: str) -> bool:
        """Delete a record by id; a missing record is not an error."""
        try:
            with self._write_lock, self.transaction() as conn:
                cursor = conn.execute("DELETE FROM documents WHERE id = ?", [record_id])
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            logger.debug(f"Delete of {record_id} failed: {e}")
            return False

    def clear(self, table: str) -> int:
        """
        Delete every record of ``table`` one by one.

        Not transactional: records deleted before a failure stay deleted
        and are counted.
        """
        deleted_count = 0
        for record in self.get_all(table):
            try:
                with self._write_lock, self.transaction() as conn:
                    cursor = conn.execute(
                        "DELETE FROM documents WHERE id = ? AND rev = ?",
                        [record.id, record.revision],
                    )
                    deleted_count += cursor.rowcount
            except sqlite3.Error as e:
                logger.error(f"Error clearing table {table}: {e}")
                break
        return deleted_count

    def bulk_save(self, records: Iterable[RecordLike]) -> int:
        """
        Save many records, counting successes.

        Like ``save``, except that an item targeting an existing id must
        carry that record's current revision. Failed items are logged and
        skipped.
        """
        success_count = 0
        failures = []
        for item in records:
            try:
                table, payload, record_id, revision = _coerce_record(item)
                self._write(table, payload, record_id, revision, require_revision=True)
                success_count += 1
            except (StorageError, ValueError, TypeError) as e:
                failures.append(str(e))

        if failures:
            logger.warning(f"Some records could not be saved ({len(failures)}): {failures}")
        return success_count

    def bulk_delete(self, records: Iterable[Union[RecordLike, str]]) -> bool:
        """
        Delete every given identity without checking revisions.

        Returns:
            False only when the engine itself failed
        """
        ids = _record_ids(records)
        missing = []
        try:
            with self._write_lock, self.transaction() as conn:
                for record_id in ids:
                    cursor = conn.execute("DELETE FROM documents WHERE id = ?", [record_id])
                    if cursor.rowcount == 0:
                        missing.append(record_id)
        except sqlite3.Error as e:
            logger.error(f"Error bulk deleting: {e}")
            return False

        if missing:
            logger.warning(f"Some documents could not be deleted (not found): {missing}")
        return True

    # =========================================================================
    # READS
    # =========================================================================

    @error_boundary(default_return=None)
    def get_by_id(self, table: str, record_id: str) -> Optional[Record]:
        row = self._fetch_row(self._get_connection(), record_id)
        if row is None or row["table_name"] != table:
            return None
        return self._to_record(row)

    @error_boundary(default_factory=list)
    def get_all(self, table: str) -> List[Record]:
        rows = self._get_connection().execute(
            f"SELECT {self.COLUMNS} FROM documents WHERE table_name = ? ORDER BY id",
            [table],
        ).fetchall()
        return [self._to_record(row) for row in rows]

    @error_boundary(default_factory=list)
    def find(self, table: str, selector: Mapping[str, Any]) -> List[Record]:
        """
        Equality query merged with the table filter.

        Selector keys ``id``, ``createdAt`` and ``updatedAt`` address the
        record; other keys (optionally prefixed ``payload.``, dotted for
        nested fields) address the payload. ``None`` matches a missing or
        null field. ``{"$eq": value}`` is accepted as a plain value.
        """
        clauses = ["table_name = ?"]
        params: List[Any] = [table]

        for key, value in (selector or {}).items():
            if isinstance(value, Mapping) and set(value) == {"$eq"}:
                value = value["$eq"]

            expr, expr_params = self._field_expression(key)
            params.extend(expr_params)
            if value is None:
                clauses.append(f"{expr} IS NULL")
            else:
                clauses.append(f"{expr} = ?")
                params.append(self._bind_value(value))

        rows = self._get_connection().execute(
            f"SELECT {self.COLUMNS} FROM documents WHERE {' AND '.join(clauses)} ORDER BY id",
            params,
        ).fetchall()
        return [self._to_record(row) for row in rows]

    @error_boundary(default_factory=set)
    def list_tables(self) -> Set[str]:
        rows = self._get_connection().execute(
            "SELECT DISTINCT table_name FROM documents"
        ).fetchall()
        return {row["table_name"] for row in rows}

    @error_boundary(default_return=None)
    def info(self) -> Optional[Dict[str, Any]]:
        row = self._get_connection().execute("SELECT COUNT(*) AS count FROM documents").fetchone()
        return {
            "db_name": self.db_path.stem,
            "path": str(self.db_path),
            "doc_count": row["count"],
            "indexes": [list(fields) for fields in self._indexes],
            "engine": "sqlite",
        }

    @staticmethod
    def _bind_value(value: Any) -> Any:
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, (Mapping, list, tuple)):
            return json.dumps(value, separators=(",", ":"), default=_json_default)
        if isinstance(value, (np.generic, datetime, date)):
            return _json_default(value)
        return value

    @staticmethod
    def _field_expression(field: str) -> Tuple[str, List[Any]]:
        """SQL expression (and its parameters) addressing a selector field."""
        if field in META_COLUMNS:
            return META_COLUMNS[field], []

        path = field[len("payload."):] if field.startswith("payload.") else field
        if _FIELD_PATTERN.match(path):
            return f"json_extract(payload, '$.{path}')", []

        quoted = ".".join(f'"{part}"' for part in path.replace('"', "").split("."))
        return "json_extract(payload, ?)", [f"$.{quoted}"]

    # =========================================================================
    # INDEXES AND LIFECYCLE
    # =========================================================================

    def create_indexes(self, fields: List[str]) -> None:
        """
        Declare a composite index on ``fields``.

        Field names follow the ``find`` selector rules. Invalid names are
        logged and the index is skipped.
        """
        if not fields:
            return

        expressions = []
        for field in fields:
            if field in META_COLUMNS:
                expressions.append(META_COLUMNS[field])
                continue
            path = field[len("payload."):] if field.startswith("payload.") else field
            if not _FIELD_PATTERN.match(path):
                logger.error(f"Error creating index: invalid field name {field!r}")
                return
            expressions.append(f"json_extract(payload, '$.{path}')")

        name = index_name(fields, expressions)
        try:
            with self._write_lock, self.transaction() as conn:
                conn.execute(
                    f"CREATE INDEX IF NOT EXISTS {name} ON documents ({', '.join(expressions)})"
                )
        except sqlite3.Error as e:
            logger.error(f"Error creating index: {e}")
            return

        key = tuple(fields)
        if key not in self._indexes:
            self._indexes.append(key)
            logger.debug(f"Index created for fields: [{', '.join(fields)}]")

    def init(self) -> None:
        for fields in MINIMUM_INDEXES:
            self.create_indexes(list(fields))

    def wipe_all(self) -> bool:
        """Drop every record and index, then rebuild the schema."""
        try:
            with self._write_lock, self.transaction() as conn:
                conn.execute("DROP TABLE IF EXISTS documents")
                conn.execute(self.SCHEMA)
        except sqlite3.Error as e:
            logger.error(f"Error clearing database: {e}")
            return False

        self._indexes = []
        self.init()
        logger.info("Local database cleared completely")
        return True


class NullDocumentStore(DocumentStore):
    """
    Stand-in used when no storage engine is available.

    Reads return nothing; saves, bulk operations, index creation and wipes
    report success without storing anything. ``remove``/``delete``/``clear``
    report that nothing was there to delete.
    """

    def save(
        self,
        table: str,
        payload: Any,
        record_id: Optional[str] = None,
        revision: Optional[str] = None,
    ) -> Record:
        now = _utcnow()
        return Record(
            id=record_id or _payload_id(payload) or generate_id(),
            revision=NULL_REVISION,
            table=table,
            payload=payload,
            created_at=now,
            updated_at=now,
        )

    def get_by_id(self, table: str, record_id: str) -> Optional[Record]:
        return None

    def get_all(self, table: str) -> List[Record]:
        return []

    def find(self, table: str, selector: Mapping[str, Any]) -> List[Record]:
        return []

    def remove(self, table: str, record_id: str) -> bool:
        return False

    def delete(self, record_id: str) -> bool:
        return False

    def clear(self, table: str) -> int:
        return 0

    def bulk_save(self, records: Iterable[RecordLike]) -> int:
        return len(list(records))

    def bulk_delete(self, records: Iterable[Union[RecordLike, str]]) -> bool:
        return True

    def list_tables(self) -> Set[str]:
        return set()

    def create_indexes(self, fields: List[str]) -> None:
        return None

    def init(self) -> None:
        return None

    def wipe_all(self) -> bool:
        return True

    def info(self) -> Optional[Dict[str, Any]]:
        return {"db_name": "null_db", "doc_count": 0, "engine": "null"}

    @property
    def is_persistent(self) -> bool:
        return False


def open_document_store(db_path: Optional[Union[str, Path]]) -> DocumentStore:
    """
    Open the persistent store, or fall back to the no-op store.

    Args:
        db_path: SQLite file; None forces the no-op store

    Returns:
        An initialized DocumentStore
    """
    if db_path is None:
        logger.warning("No local database path - using no-op store (reads return empty)")
        return NullDocumentStore()

    try:
        store = SQLiteDocumentStore(db_path)
    except StorageUnavailableError as e:
        logger.warning(f"Local database cannot be initialized (storage blocked): {e}")
        logger.warning("Using no-op store (offline functionality limited)")
        return NullDocumentStore()

    store.init()
    return store
