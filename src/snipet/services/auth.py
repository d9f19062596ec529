from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Mapping, Optional

from snipet.core.errors import NotFoundError, UniqueViolationError
from snipet.db.store import RecordStore
from snipet.services.records import User

logger = logging.getLogger(__name__)

Listener = Callable[[Optional[User]], None]


class AuthSession:
    """Process-wide session state with an explicit subscribe/unsubscribe lifecycle.

    Create one at process start, hand it to whatever needs the current user,
    and ``close()`` it at exit. Listeners receive the new user (or None) on
    every sign-in and sign-out.
    """

    def __init__(self, user: User | None = None, token: str | None = None) -> None:
        self._user = user
        self._token = token
        self._listeners: List[Listener] = []
        self._closed = False

    @property
    def user(self) -> Optional[User]:
        return self._user

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        if self._closed:
            raise RuntimeError("session is closed")
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def sign_in(self, user: User, token: str) -> None:
        self._user = user
        self._token = token
        self._notify()

    def sign_out(self) -> None:
        self._user = None
        self._token = None
        self._notify()

    def close(self) -> None:
        self._listeners.clear()
        self._closed = True

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._user)


class IdentityProvider(ABC):
    """Resolves bearer tokens to users. Token issuance lives elsewhere."""

    @abstractmethod
    async def resolve(self, token: str) -> Optional[User]:
        raise NotImplementedError


class StaticTokenIdentityProvider(IdentityProvider):
    """Maps configured tokens to user records held in the record store.

    A token whose user id has no record yet gets one on first use, named
    after the id, so a fresh deployment can sign in with ``AUTH_TOKENS`` alone.
    """

    def __init__(self, store: RecordStore, tokens: Mapping[str, str] | None = None) -> None:
        self._store = store
        self._tokens: Dict[str, str] = dict(tokens or {})

    def register(self, token: str, user_id: str) -> None:
        self._tokens[token] = user_id

    def revoke(self, token: str) -> None:
        self._tokens.pop(token, None)

    async def resolve(self, token: str) -> Optional[User]:
        user_id = self._tokens.get(token)
        if user_id is None:
            return None
        try:
            return User.from_record(await self._store.get_one("users", user_id))
        except NotFoundError:
            return await self._provision_user(user_id)

    async def provision(self) -> List[Optional[User]]:
        return [await self.resolve(token) for token in list(self._tokens)]

    async def _provision_user(self, user_id: str) -> User:
        try:
            record = await self._store.create("users", {"id": user_id, "name": user_id})
        except UniqueViolationError:
            # Created concurrently by another request.
            record = await self._store.get_one("users", user_id)
        else:
            logger.info("provisioned user %s for a configured token", user_id)
        return User.from_record(record)
