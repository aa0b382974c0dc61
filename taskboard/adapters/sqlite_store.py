"""SQLite document store adapter - implements DocumentStore.

All collections share one table; each row holds a JSON document.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from enum import Enum
from pathlib import Path
from typing import Any

from taskboard.core.errors import NotFound, StaleState
from taskboard.data.updates import Clear

logger = logging.getLogger(__name__)


class SQLiteDocumentStore:
    """SQLite-backed implementation of the DocumentStore protocol."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from taskboard.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    collection TEXT NOT NULL,
                    id         TEXT NOT NULL,
                    data       TEXT NOT NULL,
                    PRIMARY KEY (collection, id)
                )
            """)
        logger.debug("Documents table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_doc(row: sqlite3.Row) -> dict[str, Any]:
        doc = json.loads(row["data"])
        doc["id"] = row["id"]
        return doc

    @staticmethod
    def _encode(data: dict[str, Any]) -> str:
        body = {k: v for k, v in data.items() if k != "id"}
        return json.dumps(body, ensure_ascii=False)

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT id, data FROM documents WHERE collection = ? AND id = ?",
                (collection, doc_id),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_doc(row)

    def query(self, collection: str, **equals: Any) -> list[dict[str, Any]]:
        conditions = ["collection = ?"]
        params: list[Any] = [collection]
        for key, value in equals.items():
            path = f"$.{key}"
            if isinstance(value, Enum):
                value = value.value
            if value is None:
                conditions.append("json_extract(data, ?) IS NULL")
                params.append(path)
            else:
                conditions.append("json_extract(data, ?) = ?")
                params.extend([path, value])

        sql = "SELECT id, data FROM documents WHERE " + " AND ".join(conditions)
        sql += " ORDER BY rowid"

        with self._connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_doc(r) for r in rows]

    def create(
        self, collection: str, data: dict[str, Any], doc_id: str | None = None,
    ) -> dict[str, Any]:
        doc_id = doc_id or uuid.uuid4().hex
        try:
            with self._connect() as conn:
                conn.execute(
                    "INSERT INTO documents (collection, id, data) VALUES (?, ?, ?)",
                    (collection, doc_id, self._encode(data)),
                )
        except sqlite3.IntegrityError as exc:
            raise StaleState(f"Document {collection}/{doc_id} already exists") from exc

        logger.debug("Created %s/%s", collection, doc_id)
        return {**{k: v for k, v in data.items() if k != "id"}, "id": doc_id}

    def update(
        self, collection: str, doc_id: str, changes: dict[str, Any],
    ) -> dict[str, Any]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT id, data FROM documents WHERE collection = ? AND id = ?",
                (collection, doc_id),
            ).fetchone()
            if row is None:
                raise NotFound(f"Document {collection}/{doc_id} not found")

            doc = self._row_to_doc(row)
            for key, value in changes.items():
                if key == "id":
                    continue
                if isinstance(value, Clear):
                    doc.pop(key, None)
                else:
                    doc[key] = value

            conn.execute(
                "UPDATE documents SET data = ? WHERE collection = ? AND id = ?",
                (self._encode(doc), collection, doc_id),
            )
        return doc

    def delete(self, collection: str, doc_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM documents WHERE collection = ? AND id = ?",
                (collection, doc_id),
            )
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Hard-deleted %s/%s", collection, doc_id)
        return deleted
