from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from snipet.core.config import Settings
from snipet.db.database import create_engine
from snipet.db.memory import InMemoryRecordStore
from snipet.db.sql_store import SqlRecordStore
from snipet.db.store import Clock, RecordStore
from snipet.services.auth import StaticTokenIdentityProvider
from snipet.services.comments import CommentTreeBuilder
from snipet.services.forks import ForkEngine
from snipet.services.snippets import SnippetService
from snipet.services.upvotes import UpvoteToggleService
from snipet.services.users import UserService
from snipet.services.versions import VersionHistoryEngine


@dataclass
class Services:
    store: RecordStore
    identity: StaticTokenIdentityProvider
    versions: VersionHistoryEngine
    forks: ForkEngine
    comments: CommentTreeBuilder
    upvotes: UpvoteToggleService
    snippets: SnippetService
    users: UserService

    async def close(self) -> None:
        await self.store.close()


async def open_store(settings: Settings) -> RecordStore:
    if settings.store_backend == "sql":
        store = SqlRecordStore(create_engine(settings.database_url))
        await store.create_tables()
        return store
    if settings.store_backend == "memory":
        return InMemoryRecordStore()
    raise ValueError(f"unknown STORE_BACKEND {settings.store_backend!r}")


def build_services(settings: Settings, store: RecordStore, *, clock: Clock | None = None) -> Services:
    versions = VersionHistoryEngine(store)
    upvotes = UpvoteToggleService(store)
    comments = CommentTreeBuilder(
        store, edit_window=timedelta(seconds=settings.comment_edit_window_seconds), clock=clock
    )
    return Services(
        store=store,
        identity=StaticTokenIdentityProvider(store, settings.auth_tokens),
        versions=versions,
        forks=ForkEngine(store, title_prefix=settings.fork_title_prefix),
        comments=comments,
        upvotes=upvotes,
        snippets=SnippetService(store, versions, upvotes, comments, feed_page_size=settings.feed_page_size),
        users=UserService(store),
    )
