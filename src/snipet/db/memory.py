from __future__ import annotations

import asyncio
import uuid
from datetime import datetime
from typing import Any, Dict, List, Tuple

from snipet.core.errors import ConflictError, NotFoundError, UniqueViolationError
from snipet.core.metrics import StoreMetrics
from snipet.db.filters import Filter
from snipet.db.schema import COLLECTION_FIELDS, UNIQUE_KEYS
from snipet.db.store import Clock, Record, RecordStore


class InMemoryRecordStore(RecordStore):
    """Dict-backed record store for development and tests.

    Each primitive runs under one asyncio lock, so ``toggle`` is atomic here.
    """

    supports_atomic_toggle = True

    def __init__(
        self,
        clock: Clock | None = None,
        metrics: StoreMetrics | None = None,
        *,
        atomic_toggle: bool = True,
    ) -> None:
        super().__init__(clock=clock, metrics=metrics)
        self.supports_atomic_toggle = atomic_toggle
        self._records: Dict[str, Dict[str, Record]] = {name: {} for name in COLLECTION_FIELDS}
        self._lock = asyncio.Lock()

    async def reset(self) -> None:
        async with self._lock:
            self._records = {name: {} for name in COLLECTION_FIELDS}

    async def _insert(self, collection: str, fields: Dict[str, Any], record_id: str | None = None) -> Record:
        async with self._lock:
            return self._insert_unlocked(collection, fields, record_id)

    async def _fetch(self, collection: str, record_id: str) -> Record:
        async with self._lock:
            return dict(self._get_unlocked(collection, record_id))

    async def _patch(
        self, collection: str, record_id: str, fields: Dict[str, Any], expected_updated: datetime | None
    ) -> Record:
        async with self._lock:
            current = self._get_unlocked(collection, record_id)
            if expected_updated is not None and current["updated"] != expected_updated:
                raise ConflictError(f"The {collection} record {record_id} was modified by someone else.")
            candidate = {**current, **fields}
            self._check_unique(collection, candidate, exclude_id=record_id)
            candidate["updated"] = self._next_stamp(current["updated"])
            self._records[collection][record_id] = candidate
            return dict(candidate)

    async def _remove(self, collection: str, record_id: str) -> None:
        async with self._lock:
            self._get_unlocked(collection, record_id)
            del self._records[collection][record_id]

    async def _select(
        self,
        collection: str,
        filter: Filter | None,
        sort_field: str,
        descending: bool,
        offset: int,
        limit: int | None,
    ) -> Tuple[List[Record], int]:
        async with self._lock:
            rows = [r for r in self._records[collection].values() if filter is None or filter.matches(r)]
        rows.sort(key=lambda r: (_sort_key(r.get(sort_field)), r["id"]), reverse=descending)
        window = rows[offset:] if limit is None else rows[offset : offset + limit]
        return [dict(r) for r in window], len(rows)

    async def _toggle(self, collection: str, fields: Dict[str, Any]) -> bool:
        async with self._lock:
            for record_id, record in self._records[collection].items():
                if all(record.get(k) == v for k, v in fields.items()):
                    del self._records[collection][record_id]
                    return False
            self._insert_unlocked(collection, fields)
            return True

    def _insert_unlocked(self, collection: str, fields: Dict[str, Any], record_id: str | None = None) -> Record:
        if record_id is not None and record_id in self._records[collection]:
            raise UniqueViolationError(f"Value must be unique for {collection}.", {"id": "already exists"})
        now = self._next_stamp()
        record: Record = {name: None for name in COLLECTION_FIELDS[collection]}
        record.update(fields)
        record.update({"id": record_id or str(uuid.uuid4()), "created": now, "updated": now})
        self._check_unique(collection, record)
        self._records[collection][record["id"]] = record
        return dict(record)

    def _get_unlocked(self, collection: str, record_id: str) -> Record:
        try:
            return self._records[collection][record_id]
        except KeyError:
            raise NotFoundError(f"The requested {collection} record was not found.") from None

    def _check_unique(self, collection: str, candidate: Record, exclude_id: str | None = None) -> None:
        for key in UNIQUE_KEYS.get(collection, []):
            for other in self._records[collection].values():
                if other["id"] == exclude_id or other["id"] == candidate.get("id"):
                    continue
                if all(other.get(k) == candidate.get(k) for k in key):
                    raise UniqueViolationError(
                        f"Value must be unique for {collection}.",
                        {k: "value must be unique" for k in key},
                    )


def _sort_key(value: Any) -> Tuple[int, Any]:
    return (0, "") if value is None else (1, value)
