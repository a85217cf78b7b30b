"""
PostgreSQL record store.

Every collection shares one `records` table; documents live in a JSONB column
keyed by (collection, id). Field paths in filters and ordering are resolved
with JSONB path operators, so dotted paths work the same as in memory.
"""

import json
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Generator

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from crm_intake.config import settings
from crm_intake.core.errors import RecordNotFoundError
from crm_intake.core.logging import get_logger
from crm_intake.core.store import Filter, RecordStore

log = get_logger(__name__)

_RANGE_OPS = {"<", "<=", ">", ">=", "!="}


def _default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _dumps(value: Any) -> str:
    return json.dumps(value, default=_default)


def _jsonb(value: Any) -> Jsonb:
    return Jsonb(value, dumps=_dumps)


def _path(field: str) -> list[str]:
    return field.split(".")


def _nest(field: str, value: Any) -> dict[str, Any]:
    """Turn `a.b` = v into {"a": {"b": v}} for JSONB containment."""
    nested: Any = value
    for part in reversed(_path(field)):
        nested = {part: nested}
    return nested


def _scalar(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class PostgresRecordStore(RecordStore):
    """RecordStore backed by a PostgreSQL JSONB table."""

    def __init__(self, connection_string: str | None = None):
        """
        Initialize record store.

        Args:
            connection_string: PostgreSQL connection URL. Uses settings if not provided.
        """
        self.connection_string = connection_string or settings.database_url

    @contextmanager
    def get_connection(self) -> Generator[psycopg.Connection, None, None]:
        """Get a database connection as a context manager."""
        conn = psycopg.connect(self.connection_string, row_factory=dict_row)
        try:
            yield conn
        finally:
            conn.close()

    def init_schema(self) -> None:
        """Initialize database schema (create tables if not exist)."""
        schema_sql = """
        CREATE TABLE IF NOT EXISTS records (
            collection VARCHAR(64) NOT NULL,
            id VARCHAR(64) NOT NULL,
            data JSONB NOT NULL,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW(),
            PRIMARY KEY (collection, id)
        );

        CREATE INDEX IF NOT EXISTS idx_records_data ON records USING GIN (data jsonb_path_ops);
        CREATE INDEX IF NOT EXISTS idx_records_processed
            ON records ((data->>'processed'), (data->>'received_at'))
            WHERE collection = 'inbound_messages';
        CREATE INDEX IF NOT EXISTS idx_records_thread
            ON records ((data->>'thread_id'))
            WHERE collection = 'inbound_messages';
        """

        with self.get_connection() as conn:
            conn.execute(schema_sql)
            conn.commit()
            log.info("database_schema_initialized")

    @staticmethod
    def _row_to_document(row: dict[str, Any]) -> dict[str, Any]:
        document = dict(row["data"])
        document["id"] = row["id"]
        return document

    def insert(self, collection: str, data: dict[str, Any]) -> str:
        record_id = data.get("id") or uuid.uuid4().hex
        document = {k: v for k, v in data.items() if k != "id"}
        with self.get_connection() as conn:
            conn.execute(
                "INSERT INTO records (collection, id, data) VALUES (%s, %s, %s)",
                (collection, record_id, _jsonb(document)),
            )
            conn.commit()
        log.debug("record_inserted", collection=collection, record_id=record_id)
        return record_id

    def get(self, collection: str, record_id: str) -> dict[str, Any] | None:
        with self.get_connection() as conn:
            row = conn.execute(
                "SELECT id, data FROM records WHERE collection = %s AND id = %s",
                (collection, record_id),
            ).fetchone()
        return self._row_to_document(row) if row else None

    def update(self, collection: str, record_id: str, fields: dict[str, Any]) -> None:
        fields = {k: v for k, v in fields.items() if k != "id"}
        with self.get_connection() as conn:
            result = conn.execute(
                """
                UPDATE records
                SET data = data || %s, updated_at = NOW()
                WHERE collection = %s AND id = %s
                """,
                (_jsonb(fields), collection, record_id),
            )
            conn.commit()
        if result.rowcount == 0:
            raise RecordNotFoundError(collection, record_id)

    def _where(self, collection: str, filters: list[Filter]) -> tuple[str, list[Any]]:
        clauses = ["collection = %s"]
        params: list[Any] = [collection]
        for flt in filters:
            if flt.op == "==":
                if flt.value is None:
                    clauses.append("data #> %s IS NULL OR data #> %s = 'null'::jsonb")
                    params.extend([_path(flt.field), _path(flt.field)])
                else:
                    clauses.append("data @> %s")
                    params.append(_jsonb(_nest(flt.field, flt.value)))
            elif flt.op == "in":
                clauses.append("data #>> %s = ANY(%s)")
                params.extend([_path(flt.field), [_scalar(v) for v in flt.value]])
            elif flt.op in _RANGE_OPS:
                if isinstance(flt.value, (int, float)) and not isinstance(flt.value, bool):
                    clauses.append(f"(data #>> %s)::numeric {flt.op} %s")
                    params.extend([_path(flt.field), flt.value])
                else:
                    clauses.append(f"data #>> %s {flt.op} %s")
                    params.extend([_path(flt.field), _scalar(flt.value)])
        return " AND ".join(f"({c})" for c in clauses), params

    def query(
        self,
        collection: str,
        filters: list[Filter] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        where, params = self._where(collection, filters or [])
        sql = f"SELECT id, data FROM records WHERE {where}"
        if order_by:
            direction = "DESC" if descending else "ASC"
            sql += f" ORDER BY data #>> %s {direction} NULLS LAST"
            params.append(_path(order_by))
        if limit is not None:
            sql += " LIMIT %s"
            params.append(limit)

        with self.get_connection() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_document(row) for row in rows]

    def get_many(self, collection: str, ids: list[str]) -> list[dict[str, Any]]:
        self._check_id_cap(ids)
        if not ids:
            return []
        with self.get_connection() as conn:
            rows = conn.execute(
                "SELECT id, data FROM records WHERE collection = %s AND id = ANY(%s)",
                (collection, list(ids)),
            ).fetchall()
        return [self._row_to_document(row) for row in rows]

    def count(self, collection: str, filters: list[Filter] | None = None) -> int:
        where, params = self._where(collection, filters or [])
        with self.get_connection() as conn:
            row = conn.execute(
                f"SELECT COUNT(*) AS total FROM records WHERE {where}", params
            ).fetchone()
        return row["total"] if row else 0
