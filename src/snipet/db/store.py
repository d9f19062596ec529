from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from snipet.core.errors import NotFoundError, SnipetError, StoreValidationError
from snipet.core.metrics import StoreMetrics
from snipet.db.filters import Eq, Filter, parse_sort
from snipet.db.schema import CASCADE, COLLECTION_FIELDS, SYSTEM_FIELDS, referencing, relation_for, relations_for

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
Clock = Callable[[], datetime]

MAX_ID_LENGTH = 36


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # Some drivers (sqlite) hand back naive datetimes for tz-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class Page:
    page: int
    per_page: int
    total_items: int
    items: List[Record] = field(default_factory=list)

    @property
    def total_pages(self) -> int:
        if self.total_items == 0:
            return 0
        return (self.total_items + self.per_page - 1) // self.per_page


class RecordStore(ABC):
    """Generic CRUD and query client over the snippet collections.

    Subclasses implement the storage primitives (``_insert``, ``_fetch``,
    ``_patch``, ``_remove``, ``_select``). This base class owns everything that
    is the same for every backend: field whitelisting, relation checks,
    relation expansion, delete cascades, metrics and logging.
    """

    supports_atomic_toggle: bool = False

    def __init__(self, clock: Clock | None = None, metrics: StoreMetrics | None = None) -> None:
        self._clock: Clock = clock or utcnow
        self.metrics = metrics or StoreMetrics()

    # Public API

    async def create(self, collection: str, fields: Mapping[str, Any]) -> Record:
        fields = dict(fields)
        record_id = self._explicit_id(collection, fields.pop("id", None))
        clean = self._clean(collection, fields)
        await self._check_relations(collection, clean)
        async with self._measure("create", collection):
            record = await self._insert(collection, clean, record_id)
        logger.debug("created %s/%s", collection, record["id"])
        return record

    async def update(
        self,
        collection: str,
        record_id: str,
        fields: Mapping[str, Any],
        *,
        expected_updated: datetime | None = None,
    ) -> Record:
        clean = self._clean(collection, fields)
        await self._check_relations(collection, clean, record_id=record_id)
        async with self._measure("update", collection):
            record = await self._patch(collection, record_id, clean, expected_updated)
        logger.debug("updated %s/%s fields=%s", collection, record_id, sorted(clean))
        return record

    async def delete(self, collection: str, record_id: str) -> None:
        self._require_collection(collection)
        async with self._measure("delete", collection):
            await self._fetch(collection, record_id)
            await self._cascade(collection, record_id)
            await self._remove(collection, record_id)
        logger.debug("deleted %s/%s", collection, record_id)

    async def get_one(self, collection: str, record_id: str, *, expand: Sequence[str] = ()) -> Record:
        self._require_collection(collection)
        async with self._measure("get_one", collection):
            record = await self._fetch(collection, record_id)
            return await self._expand(collection, record, expand)

    async def get_list(
        self,
        collection: str,
        page: int = 1,
        per_page: int = 30,
        *,
        filter: Filter | None = None,
        sort: str | None = None,
        expand: Sequence[str] = (),
    ) -> Page:
        self._require_collection(collection)
        if page < 1 or per_page < 1:
            raise StoreValidationError("page and per_page must be positive")
        sort_field, descending = parse_sort(sort)
        self._require_field(collection, sort_field)
        async with self._measure("get_list", collection):
            items, total = await self._select(
                collection, filter, sort_field, descending, (page - 1) * per_page, per_page
            )
            expanded = [await self._expand(collection, item, expand) for item in items]
        return Page(page=page, per_page=per_page, total_items=total, items=expanded)

    async def get_full_list(
        self,
        collection: str,
        *,
        filter: Filter | None = None,
        sort: str | None = None,
        expand: Sequence[str] = (),
        batch: int = 200,
    ) -> List[Record]:
        records: List[Record] = []
        page = 1
        while True:
            result = await self.get_list(collection, page, batch, filter=filter, sort=sort, expand=expand)
            records.extend(result.items)
            if page >= result.total_pages:
                return records
            page += 1

    async def count(self, collection: str, filter: Filter | None = None) -> int:
        result = await self.get_list(collection, 1, 1, filter=filter)
        return result.total_items

    async def first(self, collection: str, filter: Filter | None = None, *, sort: str | None = None) -> Optional[Record]:
        result = await self.get_list(collection, 1, 1, filter=filter, sort=sort)
        return result.items[0] if result.items else None

    async def toggle(self, collection: str, fields: Mapping[str, Any]) -> bool:
        """Atomically delete the record matching ``fields`` or create it.

        Returns True when a record now exists. Only available when
        ``supports_atomic_toggle`` is set.
        """
        if not self.supports_atomic_toggle:
            raise NotImplementedError(f"{type(self).__name__} has no atomic toggle")
        clean = self._clean(collection, fields)
        await self._check_relations(collection, clean)
        async with self._measure("toggle", collection):
            return await self._toggle(collection, clean)

    async def close(self) -> None:
        return None

    # Storage primitives

    @abstractmethod
    async def _insert(self, collection: str, fields: Dict[str, Any], record_id: str | None = None) -> Record:
        raise NotImplementedError

    @abstractmethod
    async def _fetch(self, collection: str, record_id: str) -> Record:
        raise NotImplementedError

    @abstractmethod
    async def _patch(
        self, collection: str, record_id: str, fields: Dict[str, Any], expected_updated: datetime | None
    ) -> Record:
        raise NotImplementedError

    @abstractmethod
    async def _remove(self, collection: str, record_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def _select(
        self,
        collection: str,
        filter: Filter | None,
        sort_field: str,
        descending: bool,
        offset: int,
        limit: int | None,
    ) -> Tuple[List[Record], int]:
        raise NotImplementedError

    async def _toggle(self, collection: str, fields: Dict[str, Any]) -> bool:
        raise NotImplementedError

    # Helpers

    def _next_stamp(self, previous: datetime | None = None) -> datetime:
        now = as_utc(self._clock())
        if previous is not None and now <= as_utc(previous):
            # Stamps double as optimistic-concurrency tokens, so they must move.
            return as_utc(previous) + timedelta(microseconds=1)
        return now

    def _require_collection(self, collection: str) -> None:
        if collection not in COLLECTION_FIELDS:
            raise NotFoundError(f"Missing collection {collection!r}.")

    def _require_field(self, collection: str, name: str) -> None:
        if name not in COLLECTION_FIELDS[collection] and name not in SYSTEM_FIELDS:
            raise StoreValidationError(f"Unknown field {name!r} for {collection}.", {name: "unknown field"})

    def _explicit_id(self, collection: str, value: Any) -> str | None:
        if value is None:
            return None
        if not isinstance(value, str) or not value.strip() or len(value) > MAX_ID_LENGTH:
            raise StoreValidationError(
                f"Failed to write {collection}.", {"id": f"must be a non-empty string of at most {MAX_ID_LENGTH} characters"}
            )
        return value

    def _clean(self, collection: str, fields: Mapping[str, Any]) -> Dict[str, Any]:
        self._require_collection(collection)
        allowed = COLLECTION_FIELDS[collection]
        unknown = {name: "unknown field" for name in fields if name not in allowed}
        if unknown:
            raise StoreValidationError(f"Failed to write {collection}.", unknown)
        return dict(fields)

    async def _check_relations(
        self, collection: str, fields: Dict[str, Any], record_id: str | None = None
    ) -> None:
        errors: Dict[str, str] = {}
        for rel in relations_for(collection):
            value = fields.get(rel.field)
            if value in (None, ""):
                continue
            if record_id is not None and rel.target == collection and value == record_id:
                errors[rel.field] = "record cannot reference itself"
                continue
            try:
                await self._fetch(rel.target, value)
            except NotFoundError:
                errors[rel.field] = f"related {rel.target} record not found"
        if errors:
            raise StoreValidationError(f"Failed to write {collection}.", errors)

    async def _expand(self, collection: str, record: Record, expand: Iterable[str]) -> Record:
        names = list(expand)
        if not names:
            return record
        resolved: Dict[str, Record] = {}
        for name in names:
            rel = relation_for(collection, name)
            if rel is None:
                raise StoreValidationError(f"Cannot expand {name!r} on {collection}.", {name: "not a relation"})
            value = record.get(name)
            if value in (None, ""):
                continue
            try:
                resolved[name] = await self._fetch(rel.target, value)
            except NotFoundError:
                continue
        return {**record, "expand": resolved}

    async def _cascade(self, collection: str, record_id: str) -> None:
        for rel in referencing(collection):
            dependents, _ = await self._select(
                rel.collection, Eq(rel.field, record_id), "created", False, 0, None
            )
            for dependent in dependents:
                if rel.on_delete == CASCADE:
                    try:
                        await self._fetch(rel.collection, dependent["id"])
                    except NotFoundError:
                        # Already removed further down the same cascade.
                        continue
                    await self._cascade(rel.collection, dependent["id"])
                    await self._remove(rel.collection, dependent["id"])
                else:
                    await self._patch(rel.collection, dependent["id"], {rel.field: None}, None)

    @asynccontextmanager
    async def _measure(self, operation: str, collection: str) -> AsyncIterator[None]:
        self.metrics.record_operation(operation)
        start_ms = time.perf_counter() * 1000
        try:
            yield
        except SnipetError as exc:
            self.metrics.record_error(type(exc).__name__)
            logger.info("%s on %s failed: %s", operation, collection, exc.message)
            raise
        finally:
            self.metrics.record_latency(time.perf_counter() * 1000 - start_ms)
