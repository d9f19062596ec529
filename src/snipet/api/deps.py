from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, Request

from snipet.core.errors import AuthenticationError
from snipet.services.container import Services
from snipet.services.records import User


def get_services(request: Request) -> Services:
    return request.app.state.services


async def optional_user(
    authorization: str | None = Header(default=None),
    services: Services = Depends(get_services),
) -> Optional[User]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Expected an 'Authorization: Bearer <token>' header.")
    user = await services.identity.resolve(token.strip())
    if user is None:
        raise AuthenticationError("The request requires valid record authorization token.")
    return user


async def require_user(user: Optional[User] = Depends(optional_user)) -> User:
    if user is None:
        raise AuthenticationError("You must be signed in to do that.")
    return user


def viewer_id(user: Optional[User]) -> Optional[str]:
    return user.id if user is not None else None
