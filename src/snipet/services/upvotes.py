from __future__ import annotations

import enum
import logging

from snipet.core.errors import NotFoundError, UniqueViolationError
from snipet.db.filters import And, Eq
from snipet.db.store import RecordStore

logger = logging.getLogger(__name__)


class UpvoteKind(str, enum.Enum):
    snippet = "snippet"
    comment = "comment"

    @property
    def collection(self) -> str:
        return "upvotes" if self is UpvoteKind.snippet else "comment_upvotes"

    @property
    def target_field(self) -> str:
        return self.value


class UpvoteToggleService:
    """Set-membership semantics for likes: one upvote per (user, target).

    Stores with an atomic toggle do the whole flip in one step. Otherwise the
    flip is read-then-act; the store's unique key turns a lost race into a
    no-op instead of a duplicate row.
    """

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def toggle_upvote(self, target_id: str, user_id: str, kind: UpvoteKind) -> None:
        fields = {kind.target_field: target_id, "userid": user_id}
        if self._store.supports_atomic_toggle:
            await self._store.toggle(kind.collection, fields)
            return

        existing = await self._store.first(kind.collection, self._match(target_id, user_id, kind))
        if existing is not None:
            try:
                await self._store.delete(kind.collection, existing["id"])
            except NotFoundError:
                logger.info("upvote %s was already removed by a concurrent toggle", existing["id"])
            return
        try:
            await self._store.create(kind.collection, fields)
        except UniqueViolationError:
            logger.info("concurrent upvote by %s on %s %s already exists", user_id, kind.value, target_id)

    async def has_upvoted(self, target_id: str, user_id: str, kind: UpvoteKind) -> bool:
        return await self._store.first(kind.collection, self._match(target_id, user_id, kind)) is not None

    async def count(self, target_id: str, kind: UpvoteKind) -> int:
        return await self._store.count(kind.collection, Eq(kind.target_field, target_id))

    @staticmethod
    def _match(target_id: str, user_id: str, kind: UpvoteKind) -> And:
        return And(Eq(kind.target_field, target_id), Eq("userid", user_id))
