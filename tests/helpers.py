from __future__ import annotations

from datetime import datetime, timedelta, timezone

from snipet.services.comments import CommentTreeBuilder
from snipet.services.records import Snippet, User
from snipet.services.snippets import SnippetService
from snipet.services.upvotes import UpvoteToggleService
from snipet.services.versions import VersionHistoryEngine


class FakeClock:
    """Deterministic clock: every read advances by ``step``."""

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(seconds=1)) -> None:
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


async def make_user(store, name: str) -> User:
    return User.from_record(await store.create("users", {"name": name}))


async def make_snippet(store, author: User, **fields) -> Snippet:
    data = {
        "title": "Hello world",
        "description": "",
        "language": "python",
        "code": "print('hello world')",
        "visibility": "public",
        "author": author.id,
    }
    data.update(fields)
    return Snippet.from_record(await store.create("snippets", data))


def build_snippet_service(store, clock=None) -> SnippetService:
    versions = VersionHistoryEngine(store)
    upvotes = UpvoteToggleService(store)
    comments = CommentTreeBuilder(store, clock=clock)
    return SnippetService(store, versions, upvotes, comments)
