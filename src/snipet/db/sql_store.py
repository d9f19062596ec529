from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, List, Tuple, Type

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from snipet.core.errors import ConflictError, NotFoundError, StoreError, StoreValidationError, UniqueViolationError
from snipet.core.metrics import StoreMetrics
from snipet.db.database import create_session_factory, create_tables, session_scope
from snipet.db.filters import And, Contains, Eq, Filter, IsEmpty, Or
from snipet.db.models import MODELS, RecordMixin
from snipet.db.schema import COLLECTION_FIELDS, SYSTEM_FIELDS
from snipet.db.store import Clock, Record, RecordStore, as_utc


class SqlRecordStore(RecordStore):
    """Record store over SQLAlchemy async sessions, one table per collection."""

    supports_atomic_toggle = True

    def __init__(self, engine: AsyncEngine, clock: Clock | None = None, metrics: StoreMetrics | None = None) -> None:
        super().__init__(clock=clock, metrics=metrics)
        self._engine = engine
        self._sessions: async_sessionmaker[AsyncSession] = create_session_factory(engine)

    async def create_tables(self) -> None:
        await create_tables(self._engine)

    async def close(self) -> None:
        await self._engine.dispose()

    async def _insert(self, collection: str, fields: Dict[str, Any], record_id: str | None = None) -> Record:
        model = MODELS[collection]
        now = self._next_stamp()
        row = model(id=record_id or str(uuid.uuid4()), created=now, updated=now, **fields)
        try:
            async with session_scope(self._sessions) as session:
                session.add(row)
                await session.flush()
                record = _to_record(row)
        except IntegrityError as exc:
            raise UniqueViolationError(f"Value must be unique for {collection}.") from exc
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to create {collection} record.") from exc
        return record

    async def _fetch(self, collection: str, record_id: str) -> Record:
        try:
            async with session_scope(self._sessions) as session:
                row = await session.get(MODELS[collection], record_id)
                if row is None:
                    raise NotFoundError(f"The requested {collection} record was not found.")
                return _to_record(row)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to load {collection} record.") from exc

    async def _patch(
        self, collection: str, record_id: str, fields: Dict[str, Any], expected_updated: datetime | None
    ) -> Record:
        try:
            async with session_scope(self._sessions) as session:
                row = await session.get(MODELS[collection], record_id, with_for_update=True)
                if row is None:
                    raise NotFoundError(f"The requested {collection} record was not found.")
                if expected_updated is not None and as_utc(row.updated) != as_utc(expected_updated):
                    raise ConflictError(f"The {collection} record {record_id} was modified by someone else.")
                for name, value in fields.items():
                    setattr(row, name, value)
                row.updated = self._next_stamp(row.updated)
                await session.flush()
                return _to_record(row)
        except IntegrityError as exc:
            raise UniqueViolationError(f"Value must be unique for {collection}.") from exc
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to update {collection} record.") from exc

    async def _remove(self, collection: str, record_id: str) -> None:
        try:
            async with session_scope(self._sessions) as session:
                row = await session.get(MODELS[collection], record_id)
                if row is None:
                    raise NotFoundError(f"The requested {collection} record was not found.")
                await session.delete(row)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to delete {collection} record.") from exc

    async def _select(
        self,
        collection: str,
        filter: Filter | None,
        sort_field: str,
        descending: bool,
        offset: int,
        limit: int | None,
    ) -> Tuple[List[Record], int]:
        model = MODELS[collection]
        where = _compile(model, collection, filter) if filter is not None else None
        order_col = getattr(model, sort_field)
        order = [order_col.desc(), model.id.desc()] if descending else [order_col.asc(), model.id.asc()]

        stmt = select(model).order_by(*order).offset(offset)
        count_stmt = select(func.count()).select_from(model)
        if where is not None:
            stmt = stmt.where(where)
            count_stmt = count_stmt.where(where)
        if limit is not None:
            stmt = stmt.limit(limit)
        try:
            async with session_scope(self._sessions) as session:
                total = (await session.execute(count_stmt)).scalar_one()
                rows = (await session.execute(stmt)).scalars().all()
                return [_to_record(r) for r in rows], int(total)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to list {collection} records.") from exc

    async def _toggle(self, collection: str, fields: Dict[str, Any]) -> bool:
        model = MODELS[collection]
        clauses = [getattr(model, name) == value for name, value in fields.items()]
        try:
            async with session_scope(self._sessions) as session:
                existing = (
                    await session.execute(select(model).where(and_(*clauses)).with_for_update())
                ).scalars().first()
                if existing is not None:
                    await session.delete(existing)
                    return False
                now = self._next_stamp()
                session.add(model(id=str(uuid.uuid4()), created=now, updated=now, **fields))
                await session.flush()
                return True
        except IntegrityError as exc:
            raise UniqueViolationError(f"Value must be unique for {collection}.") from exc
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to toggle {collection} record.") from exc


def _to_record(row: RecordMixin) -> Record:
    record: Record = {}
    for column in row.__table__.columns:  # type: ignore[attr-defined]
        value = getattr(row, column.key)
        if isinstance(value, datetime):
            value = as_utc(value)
        record[column.key] = value
    return record


def _column(model: Type[RecordMixin], collection: str, name: str):
    if name not in COLLECTION_FIELDS[collection] and name not in SYSTEM_FIELDS:
        raise StoreValidationError(f"Unknown field {name!r} for {collection}.", {name: "unknown field"})
    return getattr(model, name)


def _compile(model: Type[RecordMixin], collection: str, expr: Filter):
    if isinstance(expr, Eq):
        column = _column(model, collection, expr.field)
        return column.is_(None) if expr.value is None else column == expr.value
    if isinstance(expr, Contains):
        column = _column(model, collection, expr.field)
        return func.lower(column).contains(expr.value.lower(), autoescape=True)
    if isinstance(expr, IsEmpty):
        column = _column(model, collection, expr.field)
        return or_(column.is_(None), column == "")
    if isinstance(expr, And):
        return and_(*(_compile(model, collection, c) for c in expr.clauses))
    if isinstance(expr, Or):
        return or_(*(_compile(model, collection, c) for c in expr.clauses))
    raise StoreValidationError(f"Unsupported filter {type(expr).__name__}.")
