"""
Record store interface.

A document-oriented store: collections of JSON-like documents addressed by a
generated string id. The pipeline only talks to this interface; the PostgreSQL
implementation lives in core.database and an in-memory one lives here.
"""

import copy
import operator
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from crm_intake.core.errors import RecordNotFoundError

INBOUND_MESSAGES = "inbound_messages"
ORGANIZATIONS = "organizations"
DEALS = "deals"
NOTES = "notes"
TASKS = "tasks"
USERS = "users"
CONFIG_SETTINGS = "config_settings"

COLLECTIONS = (
    INBOUND_MESSAGES,
    ORGANIZATIONS,
    DEALS,
    NOTES,
    TASKS,
    USERS,
    CONFIG_SETTINGS,
)

# Upper bound of ids per get_many call; callers chunk larger sets.
MAX_IDS_PER_QUERY = 10

OPERATORS = ("==", "!=", "<", "<=", ">", ">=", "in")


@dataclass(frozen=True)
class Filter:
    """A single field condition. `field` may be a dotted path."""

    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")


def get_path(document: dict[str, Any], path: str) -> Any:
    """Resolve a dotted path against a nested document, None if absent."""
    value: Any = document
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def chunked(items: list[str], size: int = MAX_IDS_PER_QUERY) -> list[list[str]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class RecordStore(ABC):
    """Abstract document store consumed by the intake pipeline."""

    @abstractmethod
    def insert(self, collection: str, data: dict[str, Any]) -> str:
        """Insert a document and return its generated id."""

    @abstractmethod
    def get(self, collection: str, record_id: str) -> dict[str, Any] | None:
        """Fetch one document (with its `id`), or None."""

    @abstractmethod
    def update(self, collection: str, record_id: str, fields: dict[str, Any]) -> None:
        """
        Merge `fields` into an existing document.

        Raises:
            RecordNotFoundError: If the document does not exist.
        """

    @abstractmethod
    def query(
        self,
        collection: str,
        filters: list[Filter] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Return documents matching every filter."""

    @abstractmethod
    def get_many(self, collection: str, ids: list[str]) -> list[dict[str, Any]]:
        """
        Fetch up to MAX_IDS_PER_QUERY documents by id.

        Raises:
            ValueError: If more ids than the cap are passed.
        """

    def count(self, collection: str, filters: list[Filter] | None = None) -> int:
        return len(self.query(collection, filters))

    def get_many_chunked(self, collection: str, ids: list[str]) -> list[dict[str, Any]]:
        """get_many over any number of ids, one call per chunk."""
        records: list[dict[str, Any]] = []
        for chunk in chunked(ids):
            records.extend(self.get_many(collection, chunk))
        return records

    @staticmethod
    def _check_id_cap(ids: list[str]) -> None:
        if len(ids) > MAX_IDS_PER_QUERY:
            raise ValueError(
                f"get_many accepts at most {MAX_IDS_PER_QUERY} ids, got {len(ids)}"
            )


def _sort_key(value: Any) -> tuple:
    # None sorts first; datetimes and ISO strings compare by their string form.
    if value is None:
        return (0, "")
    if isinstance(value, datetime):
        return (1, value.isoformat())
    if isinstance(value, (int, float)):
        return (2, value)
    return (1, str(value))


_COMPARATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


def _matches(document: dict[str, Any], flt: Filter) -> bool:
    value = get_path(document, flt.field)
    if flt.op == "in":
        return value in flt.value
    if flt.op in ("==", "!="):
        return _COMPARATORS[flt.op](value, flt.value)
    if value is None:
        return False
    try:
        return _COMPARATORS[flt.op](value, flt.value)
    except TypeError:
        return False


class MemoryRecordStore(RecordStore):
    """In-process store backed by dictionaries. Documents are deep-copied in and out."""

    def __init__(self):
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}

    def _collection(self, name: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(name, {})

    def insert(self, collection: str, data: dict[str, Any]) -> str:
        record_id = data.get("id") or uuid.uuid4().hex
        document = copy.deepcopy(data)
        document["id"] = record_id
        self._collection(collection)[record_id] = document
        return record_id

    def get(self, collection: str, record_id: str) -> dict[str, Any] | None:
        document = self._collection(collection).get(record_id)
        return copy.deepcopy(document) if document is not None else None

    def update(self, collection: str, record_id: str, fields: dict[str, Any]) -> None:
        documents = self._collection(collection)
        if record_id not in documents:
            raise RecordNotFoundError(collection, record_id)
        documents[record_id].update(copy.deepcopy(fields))

    def query(
        self,
        collection: str,
        filters: list[Filter] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        results = [
            doc for doc in self._collection(collection).values()
            if all(_matches(doc, f) for f in filters or [])
        ]
        if order_by:
            results.sort(key=lambda d: _sort_key(get_path(d, order_by)), reverse=descending)
        if limit is not None:
            results = results[:limit]
        return copy.deepcopy(results)

    def get_many(self, collection: str, ids: list[str]) -> list[dict[str, Any]]:
        self._check_id_cap(ids)
        documents = self._collection(collection)
        return [copy.deepcopy(documents[i]) for i in ids if i in documents]

    def all(self, collection: str) -> list[dict[str, Any]]:
        """Every document in a collection, insertion order."""
        return copy.deepcopy(list(self._collection(collection).values()))


def get_store(backend: str | None = None) -> RecordStore:
    """Build the record store selected by settings.store_backend."""
    from crm_intake.config import settings

    backend = backend or settings.store_backend
    if backend == "memory":
        return MemoryRecordStore()
    if backend == "postgres":
        from crm_intake.core.database import PostgresRecordStore

        return PostgresRecordStore()
    raise ValueError(f"Unknown store backend: {backend}")
