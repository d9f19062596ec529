from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query, Response
from pydantic import BaseModel

from snipet.api.deps import get_services, optional_user, require_user, viewer_id
from snipet.core.errors import NotFoundError
from snipet.services.container import Services
from snipet.services.languages import CODE_LANGUAGES
from snipet.services.records import Snippet, SnippetVersion, User, Visibility
from snipet.services.upvotes import UpvoteKind


router = APIRouter(prefix="/v1")


class SnippetPageResponse(BaseModel):
    page: int
    per_page: int
    total_items: int
    total_pages: int
    items: List[Snippet]


class VisibilityRequest(BaseModel):
    visibility: Optional[Visibility] = None


class TimelineEntryResponse(BaseModel):
    version: SnippetVersion
    inherited: bool


class DiffLineResponse(BaseModel):
    op: str
    text: str


class DiffResponse(BaseModel):
    version_id: str
    lines: List[DiffLineResponse]


class SnippetStatsResponse(BaseModel):
    upvote_count: int
    comment_count: int
    upvoted: bool


@router.get("/me", response_model=User)
async def me(user: User = Depends(require_user)) -> Any:
    return user


@router.patch("/me", response_model=User)
async def edit_profile(
    payload: Dict[str, Any] = Body(...),
    user: User = Depends(require_user),
    services: Services = Depends(get_services),
) -> Any:
    return await services.users.update_profile(user.id, payload)


@router.get("/users/{user_id}", response_model=User)
async def get_user(user_id: str, services: Services = Depends(get_services)) -> Any:
    return await services.users.get_user(user_id)


@router.get("/languages")
async def languages() -> List[Dict[str, str]]:
    return CODE_LANGUAGES


@router.post("/snippets", response_model=Snippet, status_code=201)
async def create_snippet(
    payload: Dict[str, Any] = Body(...),
    user: User = Depends(require_user),
    services: Services = Depends(get_services),
) -> Any:
    # Validated by the service so errors share one shape.
    return await services.snippets.create_snippet(user.id, payload)


@router.get("/snippets", response_model=SnippetPageResponse)
async def list_snippets(
    page: int = Query(1, ge=1),
    search: str | None = None,
    language: str | None = None,
    services: Services = Depends(get_services),
) -> Any:
    result = await services.snippets.list_feed(page, search=search, language=language)
    return SnippetPageResponse(
        page=result.page,
        per_page=result.per_page,
        total_items=result.total_items,
        total_pages=result.total_pages,
        items=result.items,
    )


@router.get("/users/{user_id}/snippets", response_model=List[Snippet])
async def list_user_snippets(
    user_id: str,
    user: Optional[User] = Depends(optional_user),
    services: Services = Depends(get_services),
) -> Any:
    return await services.snippets.list_by_author(user_id, viewer_id(user))


@router.get("/snippets/{snippet_id}", response_model=Snippet)
async def get_snippet(
    snippet_id: str,
    user: Optional[User] = Depends(optional_user),
    services: Services = Depends(get_services),
) -> Any:
    return await services.snippets.get_snippet(snippet_id, viewer_id(user))


@router.patch("/snippets/{snippet_id}", response_model=Snippet)
async def edit_snippet(
    snippet_id: str,
    payload: Dict[str, Any] = Body(...),
    user: User = Depends(require_user),
    services: Services = Depends(get_services),
) -> Any:
    return await services.snippets.edit_snippet(snippet_id, user.id, payload)


@router.post("/snippets/{snippet_id}/visibility", response_model=Snippet)
async def change_visibility(
    snippet_id: str,
    req: VisibilityRequest,
    user: User = Depends(require_user),
    services: Services = Depends(get_services),
) -> Any:
    return await services.snippets.set_visibility(snippet_id, user.id, req.visibility)


@router.delete("/snippets/{snippet_id}", status_code=204)
async def delete_snippet(
    snippet_id: str,
    user: User = Depends(require_user),
    services: Services = Depends(get_services),
) -> Response:
    await services.snippets.delete_snippet(snippet_id, user.id)
    return Response(status_code=204)


@router.post("/snippets/{snippet_id}/fork", response_model=Snippet, status_code=201)
async def fork_snippet(
    snippet_id: str,
    user: User = Depends(require_user),
    services: Services = Depends(get_services),
) -> Any:
    source = await services.snippets.get_snippet(snippet_id, user.id)
    return await services.forks.fork_snippet(source, user)


@router.get("/snippets/{snippet_id}/versions", response_model=List[TimelineEntryResponse])
async def version_timeline(
    snippet_id: str,
    user: Optional[User] = Depends(optional_user),
    services: Services = Depends(get_services),
) -> Any:
    snippet = await services.snippets.get_snippet(snippet_id, viewer_id(user))
    timeline = await services.versions.get_version_timeline(snippet, viewer_id(user))
    return [TimelineEntryResponse(version=e.version, inherited=e.inherited) for e in timeline]


@router.get("/snippets/{snippet_id}/versions/{version_id}/diff", response_model=DiffResponse)
async def version_diff(
    snippet_id: str,
    version_id: str,
    user: Optional[User] = Depends(optional_user),
    services: Services = Depends(get_services),
) -> Any:
    snippet = await services.snippets.get_snippet(snippet_id, viewer_id(user))
    version = await services.versions.get_version(version_id)
    if version.snippet not in (snippet.id, snippet.forked_from):
        raise NotFoundError("The requested snippet_versions record was not found.")
    if version.snippet != snippet.id:
        # Inherited versions are only as visible as the fork parent.
        await services.snippets.get_snippet(version.snippet, viewer_id(user))
    lines = services.versions.diff_against_current(snippet, version)
    return DiffResponse(
        version_id=version.id,
        lines=[DiffLineResponse(op=line.op, text=line.text) for line in lines],
    )


@router.post("/snippets/{snippet_id}/upvote", response_model=SnippetStatsResponse)
async def toggle_snippet_upvote(
    snippet_id: str,
    user: User = Depends(require_user),
    services: Services = Depends(get_services),
) -> Any:
    await services.snippets.get_snippet(snippet_id, user.id)
    await services.upvotes.toggle_upvote(snippet_id, user.id, UpvoteKind.snippet)
    stats = await services.snippets.stats(snippet_id, user.id)
    return SnippetStatsResponse(**asdict(stats))


@router.get("/snippets/{snippet_id}/stats", response_model=SnippetStatsResponse)
async def snippet_stats(
    snippet_id: str,
    user: Optional[User] = Depends(optional_user),
    services: Services = Depends(get_services),
) -> Any:
    await services.snippets.get_snippet(snippet_id, viewer_id(user))
    stats = await services.snippets.stats(snippet_id, viewer_id(user))
    return SnippetStatsResponse(**asdict(stats))
