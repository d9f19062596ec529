from __future__ import annotations

import logging
from typing import Any, Mapping

from snipet.db.store import RecordStore
from snipet.services.records import ProfileDraft, User, parse_input

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def get_user(self, user_id: str) -> User:
        return User.from_record(await self._store.get_one("users", user_id))

    async def update_profile(self, user_id: str, draft: ProfileDraft | Mapping[str, Any]) -> User:
        """Apply a profile edit to ``user_id``; an empty edit returns the user unchanged."""
        changes = parse_input(ProfileDraft, draft).changes()
        if not changes:
            return await self.get_user(user_id)
        record = await self._store.update("users", user_id, changes)
        logger.info("user %s updated profile fields=%s", user_id, sorted(changes))
        return User.from_record(record)
