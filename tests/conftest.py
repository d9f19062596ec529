from __future__ import annotations

import pytest

from helpers import FakeClock
from snipet.db.database import create_engine
from snipet.db.memory import InMemoryRecordStore
from snipet.db.sql_store import SqlRecordStore


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> InMemoryRecordStore:
    return InMemoryRecordStore(clock=clock)


@pytest.fixture(params=["memory", "sql"])
async def any_store(request, clock):
    if request.param == "memory":
        store = InMemoryRecordStore(clock=clock)
    else:
        store = SqlRecordStore(create_engine("sqlite+aiosqlite://"), clock=clock)
        await store.create_tables()
    yield store
    await store.close()
