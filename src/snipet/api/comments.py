from __future__ import annotations

from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from pydantic import BaseModel

from snipet.api.deps import get_services, optional_user, require_user, viewer_id
from snipet.services.comments import CommentNode
from snipet.services.container import Services
from snipet.services.records import Comment, User
from snipet.services.upvotes import UpvoteKind


router = APIRouter(prefix="/v1")


class CommentCreateRequest(BaseModel):
    content: str
    parent: str | None = None


class CommentEditRequest(BaseModel):
    content: str


class CommentResponse(BaseModel):
    comment: Comment
    edited: bool
    depth: int
    indent: int
    reply_count: int
    upvote_count: int
    upvoted: bool
    editable: bool


class CommentUpvoteResponse(BaseModel):
    upvote_count: int
    upvoted: bool


async def _describe(services: Services, node: CommentNode, user: Optional[User]) -> CommentResponse:
    comment = node.comment
    stats = await services.comments.stats(comment.id)
    upvoted = False
    if user is not None:
        upvoted = await services.upvotes.has_upvoted(comment.id, user.id, UpvoteKind.comment)
    return CommentResponse(
        comment=comment,
        edited=comment.edited,
        depth=node.depth,
        indent=node.indent,
        reply_count=stats.reply_count,
        upvote_count=stats.upvote_count,
        upvoted=upvoted,
        editable=services.comments.can_modify(comment, viewer_id(user)),
    )


@router.get("/snippets/{snippet_id}/comments", response_model=List[CommentResponse])
async def list_comments(
    snippet_id: str,
    request: Request,
    user: Optional[User] = Depends(optional_user),
    services: Services = Depends(get_services),
) -> Any:
    await services.snippets.get_snippet(snippet_id, viewer_id(user))
    max_indent = request.app.state.settings.max_reply_indent
    comments = await services.comments.fetch_top_level(snippet_id)
    return [await _describe(services, CommentNode(c, 0, max_indent=max_indent), user) for c in comments]


@router.post("/snippets/{snippet_id}/comments", response_model=Comment, status_code=201)
async def create_comment(
    snippet_id: str,
    req: CommentCreateRequest,
    user: User = Depends(require_user),
    services: Services = Depends(get_services),
) -> Any:
    await services.snippets.get_snippet(snippet_id, user.id)
    return await services.comments.add_comment(snippet_id, user.id, req.content, req.parent)


@router.get("/comments/{comment_id}/replies", response_model=List[CommentResponse])
async def list_replies(
    comment_id: str,
    request: Request,
    depth: int = Query(1, ge=1),
    user: Optional[User] = Depends(optional_user),
    services: Services = Depends(get_services),
) -> Any:
    parent = await services.comments.get_comment(comment_id)
    await services.snippets.get_snippet(parent.snippet, viewer_id(user))
    max_indent = request.app.state.settings.max_reply_indent
    replies = await services.comments.fetch_replies(comment_id)
    return [await _describe(services, CommentNode(r, depth, max_indent=max_indent), user) for r in replies]


@router.patch("/comments/{comment_id}", response_model=Comment)
async def edit_comment(
    comment_id: str,
    req: CommentEditRequest,
    user: User = Depends(require_user),
    services: Services = Depends(get_services),
) -> Any:
    comment = await services.comments.get_comment(comment_id)
    return await services.comments.edit_comment(comment, user.id, req.content)


@router.delete("/comments/{comment_id}", status_code=204)
async def delete_comment(
    comment_id: str,
    user: User = Depends(require_user),
    services: Services = Depends(get_services),
) -> Response:
    comment = await services.comments.get_comment(comment_id)
    await services.comments.delete_comment(comment, user.id)
    return Response(status_code=204)


@router.post("/comments/{comment_id}/upvote", response_model=CommentUpvoteResponse)
async def toggle_comment_upvote(
    comment_id: str,
    user: User = Depends(require_user),
    services: Services = Depends(get_services),
) -> Any:
    comment = await services.comments.get_comment(comment_id)
    await services.snippets.get_snippet(comment.snippet, user.id)
    await services.upvotes.toggle_upvote(comment_id, user.id, UpvoteKind.comment)
    return CommentUpvoteResponse(
        upvote_count=await services.upvotes.count(comment_id, UpvoteKind.comment),
        upvoted=await services.upvotes.has_upvoted(comment_id, user.id, UpvoteKind.comment),
    )
