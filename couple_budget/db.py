"""SQLite-backed record store.

Every entity is persisted as one JSON field map keyed by (record type, id),
mirroring a remote record API: ``save`` upserts, ``query`` filters on
"match all" or "field equals literal", ``delete`` removes ids. ``apply_batch``
commits several saves and deletes in a single SQLite transaction.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .config import DB_PATH
from .records import SINGLETON_ID

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;
PRAGMA synchronous=NORMAL;

CREATE TABLE IF NOT EXISTS records (
    record_type TEXT NOT NULL,
    record_id TEXT NOT NULL,
    fields TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (record_type, record_id)
);

CREATE INDEX IF NOT EXISTS ix_records_type ON records (record_type);
"""

UPSERT_SQL = (
    "INSERT INTO records (record_type, record_id, fields, updated_at) VALUES (?, ?, ?, ?) "
    "ON CONFLICT(record_type, record_id) DO UPDATE SET fields = excluded.fields, updated_at = excluded.updated_at"
)

Save = Tuple[str, Dict[str, Any]]
Delete = Tuple[str, Sequence[str]]


class RecordStoreError(RuntimeError):
    """A save, query or delete against the record store failed."""


class StoreUnavailableError(RecordStoreError):
    """The store has not been initialised or has been closed."""


def _record_id(record_type: str, fields: Dict[str, Any]) -> str:
    record_id = fields.get('id')
    if record_id is None:
        raise RecordStoreError(f"{record_type} record has no id")
    return str(record_id)


def _sortable(fields: Dict[str, Any], field: str) -> bool:
    # Stored dates and ids are ISO strings; anything else cannot be ordered against them.
    return isinstance(fields.get(field), str)


class RecordStore:
    """Record persistence over a single SQLite file."""

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path or DB_PATH)
        self._ready = False

    @property
    def is_ready(self) -> bool:
        return self._ready

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        try:
            yield conn
        finally:
            conn.close()

    def init_db(self) -> None:
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            with self.connect() as conn:
                conn.executescript(SCHEMA_SQL)
                conn.commit()
        except (sqlite3.Error, OSError) as exc:
            raise RecordStoreError(f"Could not open record store at {self.db_path}: {exc}") from exc
        self._ready = True
        logger.debug("Record store ready at %s", self.db_path)

    def close(self) -> None:
        self._ready = False

    def _check_ready(self) -> None:
        if not self._ready:
            raise StoreUnavailableError("Record store is not available")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save(self, record_type: str, fields: Dict[str, Any]) -> None:
        self.apply_batch(saves=[(record_type, fields)])

    def save_singleton(self, record_type: str, fields: Dict[str, Any]) -> None:
        """Upsert the one record of ``record_type``."""
        self.save(record_type, dict(fields, id=SINGLETON_ID))

    def delete(self, record_type: str, ids: Iterable[str]) -> int:
        return self.apply_batch(deletes=[(record_type, list(ids))])

    def apply_batch(
        self,
        saves: Sequence[Save] = (),
        deletes: Sequence[Delete] = (),
    ) -> int:
        """Apply saves then deletes atomically. Returns the number of deleted rows."""
        self._check_ready()
        now = datetime.now().isoformat()
        rows = []
        for record_type, fields in saves:
            rows.append((record_type, _record_id(record_type, fields), json.dumps(fields), now))
        deleted = 0
        try:
            with self.connect() as conn:
                with conn:
                    if rows:
                        conn.executemany(UPSERT_SQL, rows)
                    for record_type, ids in deletes:
                        for record_id in ids:
                            cursor = conn.execute(
                                "DELETE FROM records WHERE record_type = ? AND record_id = ?",
                                (record_type, str(record_id)),
                            )
                            deleted += cursor.rowcount
        except sqlite3.Error as exc:
            raise RecordStoreError(f"Write failed: {exc}") from exc
        logger.debug("Committed %d save(s), %d delete(s)", len(rows), deleted)
        return deleted

    def clear(self, record_types: Optional[Iterable[str]] = None) -> None:
        self._check_ready()
        try:
            with self.connect() as conn:
                with conn:
                    if record_types is None:
                        conn.execute("DELETE FROM records")
                    else:
                        conn.executemany(
                            "DELETE FROM records WHERE record_type = ?",
                            [(record_type,) for record_type in record_types],
                        )
        except sqlite3.Error as exc:
            raise RecordStoreError(f"Clear failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def query(
        self,
        record_type: str,
        where: Optional[Tuple[str, Any]] = None,
        sort: Optional[Tuple[str, bool]] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch field maps of ``record_type``.

        ``where`` is an optional (field, literal) equality; ``sort`` is an
        optional (field, ascending) pair. Records whose sort field is missing or
        not a string go last, in store order.
        """
        self._check_ready()
        sql = "SELECT record_id, fields FROM records WHERE record_type = ?"
        params: List[Any] = [record_type]
        if where is not None and where[0] == 'id':
            sql += " AND record_id = ?"
            params.append(str(where[1]))
        try:
            with self.connect() as conn:
                rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise RecordStoreError(f"Query failed: {exc}") from exc

        results: List[Dict[str, Any]] = []
        for record_id, raw in rows:
            try:
                fields = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Skipping unreadable %s record %s", record_type, record_id)
                continue
            if not isinstance(fields, dict):
                logger.warning("Skipping non-object %s record %s", record_type, record_id)
                continue
            if where is not None and fields.get(where[0]) != where[1]:
                continue
            results.append(fields)

        if sort is not None:
            field, ascending = sort
            present = [r for r in results if _sortable(r, field)]
            missing = [r for r in results if not _sortable(r, field)]
            present.sort(key=lambda r: r[field], reverse=not ascending)
            results = present + missing
        return results

    def load_singleton(self, record_type: str) -> Optional[Dict[str, Any]]:
        records = self.query(record_type, sort=('lastUpdated', False))
        return records[0] if records else None
