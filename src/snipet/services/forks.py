from __future__ import annotations

import logging

from snipet.db.store import RecordStore
from snipet.services.records import Snippet, User

logger = logging.getLogger(__name__)


class ForkEngine:
    def __init__(self, store: RecordStore, *, title_prefix: str = "Fork of ") -> None:
        self._store = store
        self._title_prefix = title_prefix

    async def fork_snippet(self, source: Snippet, acting_user: User | str) -> Snippet:
        """Copy ``source`` into a new public snippet owned by ``acting_user``.

        Versions and comments stay with the source. Store errors propagate.
        """
        author_id = acting_user if isinstance(acting_user, str) else acting_user.id
        record = await self._store.create(
            "snippets",
            {
                "title": f"{self._title_prefix}{source.title}",
                "code": source.code,
                "language": source.language,
                "description": source.description,
                # Forks are always public, whatever the source's visibility.
                "visibility": "public",
                "author": author_id,
                "forked_from": source.id,
            },
        )
        logger.info("user %s forked snippet %s into %s", author_id, source.id, record["id"])
        return Snippet.from_record(record)
