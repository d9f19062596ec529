from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterator, List, Optional

from snipet.core.errors import EditWindowClosedError, PermissionDeniedError, ValidationError
from snipet.db.filters import And, Eq, IsEmpty
from snipet.db.store import Clock, RecordStore, as_utc, utcnow
from snipet.services.records import Comment, CommentDraft, parse_input
from snipet.services.views import ViewCache

logger = logging.getLogger(__name__)

COMMENTS = "comments"
EDIT_WINDOW = timedelta(minutes=30)
MAX_INDENT = 8


@dataclass(frozen=True)
class CommentStats:
    reply_count: int
    upvote_count: int


class CommentTreeBuilder:
    """Threaded comments: lazy reply fetching and the author edit window.

    Replies are fetched one parent at a time, oldest first. Reply and upvote
    counts are count-only queries, never stored on the comment.
    """

    def __init__(self, store: RecordStore, *, edit_window: timedelta = EDIT_WINDOW, clock: Clock | None = None) -> None:
        self._store = store
        self._edit_window = edit_window
        self._clock: Clock = clock or utcnow

    async def fetch_top_level(self, snippet_id: str) -> List[Comment]:
        records = await self._store.get_full_list(
            COMMENTS,
            filter=And(Eq("snippet", snippet_id), IsEmpty("parent")),
            sort="created",
            expand=("author",),
        )
        return [Comment.from_record(r) for r in records]

    async def fetch_replies(self, comment_id: str) -> List[Comment]:
        records = await self._store.get_full_list(
            COMMENTS, filter=Eq("parent", comment_id), sort="created", expand=("author",)
        )
        return [Comment.from_record(r) for r in records]

    async def get_comment(self, comment_id: str) -> Comment:
        return Comment.from_record(await self._store.get_one(COMMENTS, comment_id, expand=("author",)))

    async def reply_count(self, comment_id: str) -> int:
        return await self._store.count(COMMENTS, Eq("parent", comment_id))

    async def upvote_count(self, comment_id: str) -> int:
        return await self._store.count("comment_upvotes", Eq("comment", comment_id))

    async def stats(self, comment_id: str) -> CommentStats:
        return CommentStats(
            reply_count=await self.reply_count(comment_id),
            upvote_count=await self.upvote_count(comment_id),
        )

    async def comment_count(self, snippet_id: str) -> int:
        return await self._store.count(COMMENTS, Eq("snippet", snippet_id))

    def is_editable(self, comment: Comment, now: datetime | None = None) -> bool:
        now = as_utc(now or self._clock())
        return now - as_utc(comment.created) < self._edit_window

    def can_modify(self, comment: Comment, user_id: str | None, now: datetime | None = None) -> bool:
        return user_id is not None and comment.author == user_id and self.is_editable(comment, now)

    async def add_comment(
        self, snippet_id: str, author_id: str, content: str, parent_id: str | None = None
    ) -> Comment:
        draft = parse_input(CommentDraft, {"content": content})
        if parent_id:
            parent = await self.get_comment(parent_id)
            if parent.snippet != snippet_id:
                raise ValidationError(
                    "Replies must belong to the same snippet as their parent.",
                    {"parent": "parent comment belongs to another snippet"},
                )
        record = await self._store.create(
            COMMENTS,
            {"content": draft.content, "author": author_id, "snippet": snippet_id, "parent": parent_id or None},
        )
        logger.info("user %s commented %s on snippet %s", author_id, record["id"], snippet_id)
        return Comment.from_record(record)

    async def edit_comment(
        self, comment: Comment, user_id: str, content: str, now: datetime | None = None
    ) -> Comment:
        draft = parse_input(CommentDraft, {"content": content})
        self._check_modifiable(comment, user_id, now, "edit")
        record = await self._store.update(
            COMMENTS, comment.id, {"content": draft.content}, expected_updated=comment.updated
        )
        return Comment.from_record(record)

    async def delete_comment(self, comment: Comment, user_id: str, now: datetime | None = None) -> None:
        """Delete ``comment``; its reply subtree goes with it (store cascade)."""
        self._check_modifiable(comment, user_id, now, "delete")
        await self._store.delete(COMMENTS, comment.id)
        logger.info("user %s deleted comment %s", user_id, comment.id)

    async def build_tree(self, snippet_id: str, *, max_indent: int = MAX_INDENT) -> "CommentTree":
        tree = CommentTree(self, snippet_id, max_indent=max_indent)
        await tree.refresh()
        return tree

    def _check_modifiable(self, comment: Comment, user_id: str, now: datetime | None, action: str) -> None:
        if comment.author != user_id:
            raise PermissionDeniedError(f"Only the author can {action} this comment.")
        if not self.is_editable(comment, now):
            raise EditWindowClosedError(
                f"Comments can only be changed within {int(self._edit_window.total_seconds() // 60)} minutes of posting."
            )


@dataclass
class CommentNode:
    comment: Comment
    depth: int = 0
    children: Optional[List["CommentNode"]] = None
    expanded: bool = False
    max_indent: int = MAX_INDENT

    @property
    def loaded(self) -> bool:
        return self.children is not None

    @property
    def indent(self) -> int:
        # Presentation cap only: deeper replies exist, they just stop indenting.
        return min(self.depth, self.max_indent)


@dataclass
class CommentTree:
    """Explicit comment forest for one snippet with memoized expansion state."""

    builder: CommentTreeBuilder
    snippet_id: str
    max_indent: int = MAX_INDENT
    roots: List[CommentNode] = field(default_factory=list)
    cache: ViewCache = field(default_factory=ViewCache)

    async def refresh(self) -> List[CommentNode]:
        self.cache.clear()
        ticket = self.cache.begin(("roots", self.snippet_id))
        comments = await self.builder.fetch_top_level(self.snippet_id)
        if self.cache.commit(ticket, comments):
            self.roots = [CommentNode(c, 0, max_indent=self.max_indent) for c in comments]
        return self.roots

    async def expand(self, node: CommentNode) -> List[CommentNode]:
        node.expanded = True
        if node.children is not None:
            return node.children
        ticket = self.cache.begin(node.comment.id)
        replies = await self.builder.fetch_replies(node.comment.id)
        if not self.cache.commit(ticket, replies):
            logger.debug("discarding stale replies for comment %s", node.comment.id)
            return []
        node.children = [CommentNode(r, node.depth + 1, max_indent=self.max_indent) for r in replies]
        return node.children

    def collapse(self, node: CommentNode) -> None:
        node.expanded = False
        if node.children is None:
            # An expansion still in flight is no longer wanted.
            self.cache.invalidate(node.comment.id)

    async def expand_all(self) -> None:
        pending = list(reversed(self.roots))
        while pending:
            node = pending.pop()
            children = await self.expand(node)
            pending.extend(reversed(children))

    def visible_nodes(self) -> Iterator[CommentNode]:
        stack = list(reversed(self.roots))
        while stack:
            node = stack.pop()
            yield node
            if node.expanded and node.children:
                stack.extend(reversed(node.children))

    def find(self, comment_id: str) -> Optional[CommentNode]:
        stack = list(self.roots)
        while stack:
            node = stack.pop()
            if node.comment.id == comment_id:
                return node
            stack.extend(node.children or [])
        return None
