"""
SQLAlchemy-backed record store.

Stores every collection in one ``backoffice_records`` table as JSON documents
keyed by (collection, record_id). Comparisons on scalar values are pushed into
SQL through JSON path accessors; anything else is evaluated in Python.
"""

from collections.abc import Sequence
from typing import Any
from uuid import uuid4

import structlog
from sqlalchemy import JSON, String, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

from ispadmin.backoffice.db import Base, TimestampMixin, get_async_session_maker
from ispadmin.backoffice.domain import RecordNotFoundError, RecordStoreError
from ispadmin.backoffice.records.store import (
    ChangeListener,
    ChangeType,
    ListenerRegistry,
    Record,
    RecordPatch,
    Unsubscribe,
    collection_name,
    resolve_operator,
)

logger = structlog.get_logger(__name__)


class RecordTable(Base, TimestampMixin):
    """One stored document."""

    __tablename__ = "backoffice_records"

    collection: Mapped[str] = mapped_column(String(64), primary_key=True)
    record_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    def to_record(self) -> Record:
        return {"id": self.record_id, **(self.data or {})}


def _json_accessor(field: str, sample: Any) -> Any | None:
    """Pick the typed JSON accessor for a comparison value, or None if not pushable."""
    element = RecordTable.data[field]
    if isinstance(sample, bool):
        return element.as_boolean()
    if isinstance(sample, (int, float)):
        return element.as_float()
    if isinstance(sample, str):
        return element.as_string()
    return None


class SqlRecordStore:
    """Record store persisted through an async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self._session_factory = session_factory or get_async_session_maker()
        self._listeners = ListenerRegistry()

    async def _fetch(self, statement: Any) -> list[Record]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(statement)
                return [row.to_record() for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise RecordStoreError("Record store read failed", context={"error": str(e)}) from e

    async def list_all(self, collection: str) -> list[Record]:
        name = collection_name(collection)
        return await self._fetch(select(RecordTable).where(RecordTable.collection == name))

    async def query(self, collection: str, field: str, op: str, value: Any) -> list[Record]:
        compare = resolve_operator(op)
        name = collection_name(collection)
        base = select(RecordTable).where(RecordTable.collection == name)

        if op == "in":
            values = list(value)
            kinds = {type(v) for v in values}
            accessor = _json_accessor(field, values[0]) if len(kinds) == 1 else None
            if accessor is not None:
                return await self._fetch(base.where(accessor.in_(values)))
            if not values:
                return []
        else:
            accessor = _json_accessor(field, value)
            if accessor is not None:
                return await self._fetch(base.where(compare(accessor, value)))

        # Mixed or structured values: evaluate in Python
        logger.debug("records.query_in_python", collection=name, field=field, op=op)
        matches = []
        for record in await self._fetch(base):
            if field not in record or field == "id":
                continue
            try:
                if compare(record[field], value):
                    matches.append(record)
            except TypeError:
                continue
        return matches

    async def get(self, collection: str, record_id: str) -> Record | None:
        name = collection_name(collection)
        records = await self._fetch(
            select(RecordTable).where(
                RecordTable.collection == name, RecordTable.record_id == record_id
            )
        )
        return records[0] if records else None

    async def create(
        self, collection: str, record: dict[str, Any], record_id: str | None = None
    ) -> str:
        name = collection_name(collection)
        data = dict(record)
        data.pop("id", None)
        new_id = record_id or uuid4().hex
        try:
            async with self._session_factory() as session, session.begin():
                session.add(RecordTable(collection=name, record_id=new_id, data=data))
        except SQLAlchemyError as e:
            raise RecordStoreError(
                "Record store write failed", context={"collection": name, "error": str(e)}
            ) from e
        self._listeners.notify(name, ChangeType.ADDED, [new_id])
        return new_id

    async def batch_update(self, collection: str, patches: Sequence[RecordPatch]) -> int:
        if not patches:
            return 0
        name = collection_name(collection)
        ids = [patch.id for patch in patches]
        try:
            async with self._session_factory() as session, session.begin():
                result = await session.execute(
                    select(RecordTable).where(
                        RecordTable.collection == name, RecordTable.record_id.in_(ids)
                    )
                )
                rows = {row.record_id: row for row in result.scalars().all()}
                missing = [rid for rid in ids if rid not in rows]
                if missing:
                    raise RecordNotFoundError(name, missing[0])
                for patch in patches:
                    row = rows[patch.id]
                    # Reassign so the JSON column is flagged dirty
                    row.data = {**(row.data or {}), **patch.patch}
        except SQLAlchemyError as e:
            raise RecordStoreError(
                "Record store batch update failed", context={"collection": name, "error": str(e)}
            ) from e
        self._listeners.notify(name, ChangeType.MODIFIED, ids)
        return len(patches)

    async def batch_delete(self, collection: str, record_ids: Sequence[str]) -> int:
        if not record_ids:
            return 0
        name = collection_name(collection)
        try:
            async with self._session_factory() as session, session.begin():
                existing = await session.execute(
                    select(RecordTable.record_id).where(
                        RecordTable.collection == name,
                        RecordTable.record_id.in_(list(record_ids)),
                    )
                )
                removed = list(existing.scalars().all())
                await session.execute(
                    delete(RecordTable).where(
                        RecordTable.collection == name, RecordTable.record_id.in_(removed)
                    )
                )
        except SQLAlchemyError as e:
            raise RecordStoreError(
                "Record store batch delete failed", context={"collection": name, "error": str(e)}
            ) from e
        self._listeners.notify(name, ChangeType.REMOVED, removed)
        return len(removed)

    def watch(self, collection: str, listener: ChangeListener) -> Unsubscribe:
        """Watch writes made through this store instance."""
        return self._listeners.add(collection_name(collection), listener)
