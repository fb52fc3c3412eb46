"""
Record store capability.

The aggregation layer never talks to a database directly. It depends on the
``RecordStore`` protocol below, which any document or relational backend can
implement. ``InMemoryRecordStore`` is the reference implementation used by
tests and local tooling.
"""

import copy
import operator
from collections import defaultdict
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol
from uuid import uuid4

import structlog

from ispadmin.backoffice.domain import RecordNotFoundError, UnsupportedQueryError

logger = structlog.get_logger(__name__)

Record = dict[str, Any]


class ChangeType(str, Enum):
    """Kinds of collection change notifications."""

    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


@dataclass(frozen=True)
class RecordChange:
    """A write observed on a watched collection."""

    collection: str
    change_type: ChangeType
    record_ids: tuple[str, ...]


ChangeListener = Callable[[RecordChange], Any]
Unsubscribe = Callable[[], None]


@dataclass(frozen=True)
class RecordPatch:
    """Partial update for one record."""

    id: str
    patch: dict[str, Any] = field(default_factory=dict)


SUPPORTED_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "in": lambda actual, expected: actual in expected,
}


class RecordStore(Protocol):
    """Protocol for record store backends."""

    async def list_all(self, collection: str) -> list[Record]:
        """Return every record in a collection."""
        ...

    async def query(self, collection: str, field: str, op: str, value: Any) -> list[Record]:
        """Return records whose ``field`` compares to ``value`` with ``op``."""
        ...

    async def get(self, collection: str, record_id: str) -> Record | None:
        """Return a single record or None."""
        ...

    async def create(
        self, collection: str, record: dict[str, Any], record_id: str | None = None
    ) -> str:
        """Insert a record and return its id."""
        ...

    async def batch_update(self, collection: str, patches: Sequence[RecordPatch]) -> int:
        """Apply patches as one batch; returns the number of records updated."""
        ...

    async def batch_delete(self, collection: str, record_ids: Sequence[str]) -> int:
        """Delete records as one batch; returns the number deleted."""
        ...

    def watch(self, collection: str, listener: ChangeListener) -> Unsubscribe:
        """Register a change listener; returns a callable that removes it."""
        ...


def collection_name(collection: Any) -> str:
    return collection.value if isinstance(collection, Enum) else str(collection)


def resolve_operator(op: str) -> Callable[[Any, Any], bool]:
    try:
        return SUPPORTED_OPERATORS[op]
    except KeyError:
        raise UnsupportedQueryError(op) from None


class ListenerRegistry:
    """Per-collection change listeners shared by store implementations."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[ChangeListener]] = defaultdict(list)

    def add(self, collection: str, listener: ChangeListener) -> Unsubscribe:
        listeners = self._listeners[collection]
        listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in listeners:
                listeners.remove(listener)

        return _unsubscribe

    def notify(self, collection: str, change_type: ChangeType, record_ids: Iterable[str]) -> None:
        ids = tuple(record_ids)
        if not ids:
            return
        change = RecordChange(collection=collection, change_type=change_type, record_ids=ids)
        for listener in list(self._listeners.get(collection, ())):
            try:
                listener(change)
            except Exception as e:
                logger.error(
                    "records.listener_failed",
                    collection=collection,
                    change_type=change_type.value,
                    error=str(e),
                    exc_info=True,
                )


class InMemoryRecordStore:
    """Dictionary-backed record store."""

    def __init__(self, initial: dict[str, Iterable[Record]] | None = None) -> None:
        self._collections: dict[str, dict[str, Record]] = defaultdict(dict)
        self._listeners = ListenerRegistry()
        for collection, records in (initial or {}).items():
            for record in records:
                data = dict(record)
                record_id = str(data.pop("id", "") or uuid4())
                self._collections[collection_name(collection)][record_id] = data

    @staticmethod
    def _materialize(record_id: str, data: Record) -> Record:
        return {"id": record_id, **copy.deepcopy(data)}

    async def list_all(self, collection: str) -> list[Record]:
        name = collection_name(collection)
        return [self._materialize(rid, data) for rid, data in self._collections[name].items()]

    async def query(self, collection: str, field: str, op: str, value: Any) -> list[Record]:
        compare = resolve_operator(op)
        name = collection_name(collection)
        matches = []
        for rid, data in self._collections[name].items():
            if field not in data:
                continue
            try:
                matched = compare(data[field], value)
            except TypeError:
                matched = False
            if matched:
                matches.append(self._materialize(rid, data))
        return matches

    async def get(self, collection: str, record_id: str) -> Record | None:
        data = self._collections[collection_name(collection)].get(record_id)
        if data is None:
            return None
        return self._materialize(record_id, data)

    async def create(
        self, collection: str, record: dict[str, Any], record_id: str | None = None
    ) -> str:
        name = collection_name(collection)
        data = copy.deepcopy(dict(record))
        data.pop("id", None)
        new_id = record_id or uuid4().hex
        self._collections[name][new_id] = data
        self._listeners.notify(name, ChangeType.ADDED, [new_id])
        return new_id

    async def batch_update(self, collection: str, patches: Sequence[RecordPatch]) -> int:
        name = collection_name(collection)
        records = self._collections[name]
        # Validate the whole batch before touching anything
        for patch in patches:
            if patch.id not in records:
                raise RecordNotFoundError(name, patch.id)
        for patch in patches:
            records[patch.id].update(copy.deepcopy(patch.patch))
        self._listeners.notify(name, ChangeType.MODIFIED, [p.id for p in patches])
        return len(patches)

    async def batch_delete(self, collection: str, record_ids: Sequence[str]) -> int:
        name = collection_name(collection)
        records = self._collections[name]
        removed = [rid for rid in record_ids if records.pop(rid, None) is not None]
        self._listeners.notify(name, ChangeType.REMOVED, removed)
        return len(removed)

    def watch(self, collection: str, listener: ChangeListener) -> Unsubscribe:
        return self._listeners.add(collection_name(collection), listener)
