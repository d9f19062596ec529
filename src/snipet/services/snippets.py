from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping

from snipet.core.errors import NotFoundError, PermissionDeniedError
from snipet.db.filters import And, Contains, Eq, Filter, Or
from snipet.db.store import RecordStore
from snipet.services.comments import CommentTreeBuilder
from snipet.services.records import (
    IMMUTABLE_SNIPPET_FIELDS,
    Snippet,
    SnippetDraft,
    SnippetRevision,
    Visibility,
    parse_input,
)
from snipet.services.upvotes import UpvoteKind, UpvoteToggleService
from snipet.services.versions import VersionHistoryEngine

logger = logging.getLogger(__name__)

SEARCH_FIELDS = ("title", "description", "code", "language")


@dataclass
class SnippetPage:
    page: int
    per_page: int
    total_items: int
    total_pages: int
    items: List[Snippet] = field(default_factory=list)


@dataclass(frozen=True)
class SnippetStats:
    upvote_count: int
    comment_count: int
    upvoted: bool = False


class SnippetService:
    """Snippet CRUD, feed and ownership rules around the version engine."""

    def __init__(
        self,
        store: RecordStore,
        versions: VersionHistoryEngine,
        upvotes: UpvoteToggleService,
        comments: CommentTreeBuilder,
        *,
        feed_page_size: int = 5,
    ) -> None:
        self._store = store
        self._versions = versions
        self._upvotes = upvotes
        self._comments = comments
        self._feed_page_size = feed_page_size

    async def create_snippet(self, author_id: str, draft: SnippetDraft | Mapping[str, Any]) -> Snippet:
        data = parse_input(SnippetDraft, draft)
        record = await self._store.create("snippets", {**data.model_dump(), "author": author_id})
        logger.info("user %s created snippet %s", author_id, record["id"])
        return Snippet.from_record(record)

    async def get_snippet(self, snippet_id: str, viewer_id: str | None = None) -> Snippet:
        snippet = Snippet.from_record(
            await self._store.get_one("snippets", snippet_id, expand=("author", "forked_from"))
        )
        if not snippet.is_public and snippet.author != viewer_id:
            # Private snippets look absent to everyone but their author.
            raise NotFoundError("The requested snippets record was not found.")
        return snippet

    async def list_feed(
        self, page: int = 1, *, search: str | None = None, language: str | None = None
    ) -> SnippetPage:
        clauses: List[Filter] = [Eq("visibility", "public")]
        term = (search or "").strip()
        if term:
            clauses.append(Or(*(Contains(name, term) for name in SEARCH_FIELDS)))
        if language:
            clauses.append(Eq("language", language))
        result = await self._store.get_list(
            "snippets",
            page,
            self._feed_page_size,
            filter=And(*clauses),
            sort="-created",
            expand=("author",),
        )
        return SnippetPage(
            page=result.page,
            per_page=result.per_page,
            total_items=result.total_items,
            total_pages=result.total_pages,
            items=[Snippet.from_record(r) for r in result.items],
        )

    async def list_by_author(self, author_id: str, viewer_id: str | None = None) -> List[Snippet]:
        expr: Filter = Eq("author", author_id)
        if viewer_id != author_id:
            expr = And(expr, Eq("visibility", "public"))
        records = await self._store.get_full_list("snippets", filter=expr, sort="-created", expand=("author",))
        return [Snippet.from_record(r) for r in records]

    async def edit_snippet(
        self, snippet_id: str, user_id: str, revision: SnippetRevision | Mapping[str, Any]
    ) -> Snippet:
        changes = parse_input(SnippetRevision, revision, immutable=IMMUTABLE_SNIPPET_FIELDS)
        prior = await self._owned(snippet_id, user_id, "edit")
        return await self._versions.revise_snippet(snippet_id, prior, changes)

    async def set_visibility(self, snippet_id: str, user_id: str, visibility: Visibility | None = None) -> Snippet:
        """Set visibility, or flip it when ``visibility`` is None."""
        prior = await self._owned(snippet_id, user_id, "change")
        if visibility is None:
            visibility = "private" if prior.is_public else "public"
        return await self._versions.revise_snippet(snippet_id, prior, SnippetRevision(visibility=visibility))

    async def delete_snippet(self, snippet_id: str, user_id: str) -> None:
        await self._owned(snippet_id, user_id, "delete")
        await self._store.delete("snippets", snippet_id)
        logger.info("user %s deleted snippet %s", user_id, snippet_id)

    async def stats(self, snippet_id: str, viewer_id: str | None = None) -> SnippetStats:
        upvoted = False
        if viewer_id is not None:
            upvoted = await self._upvotes.has_upvoted(snippet_id, viewer_id, UpvoteKind.snippet)
        return SnippetStats(
            upvote_count=await self._upvotes.count(snippet_id, UpvoteKind.snippet),
            comment_count=await self._comments.comment_count(snippet_id),
            upvoted=upvoted,
        )

    async def _owned(self, snippet_id: str, user_id: str, action: str) -> Snippet:
        snippet = await self.get_snippet(snippet_id, user_id)
        if snippet.author != user_id:
            raise PermissionDeniedError(f"Only the author can {action} this snippet.")
        return snippet
