from __future__ import annotations

from datetime import datetime
from typing import Dict, Type

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class RecordMixin:
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    created: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    updated: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class User(RecordMixin, Base):
    __tablename__ = "users"

    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    avatar: Mapped[str | None] = mapped_column(String(255), nullable=True)
    about: Mapped[str | None] = mapped_column(Text, nullable=True)


class Snippet(RecordMixin, Base):
    __tablename__ = "snippets"

    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    language: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    code: Mapped[str | None] = mapped_column(Text, nullable=True)
    visibility: Mapped[str | None] = mapped_column(String(16), nullable=True, index=True)
    author: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    forked_from: Mapped[str | None] = mapped_column(String(36), ForeignKey("snippets.id"), nullable=True, index=True)


class SnippetVersion(RecordMixin, Base):
    __tablename__ = "snippet_versions"

    snippet: Mapped[str | None] = mapped_column(String(36), ForeignKey("snippets.id"), nullable=True, index=True)
    code: Mapped[str | None] = mapped_column(Text, nullable=True)
    language: Mapped[str | None] = mapped_column(String(64), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    author: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id"), nullable=True)


class Comment(RecordMixin, Base):
    __tablename__ = "comments"

    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    author: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id"), nullable=True)
    snippet: Mapped[str | None] = mapped_column(String(36), ForeignKey("snippets.id"), nullable=True)
    parent: Mapped[str | None] = mapped_column(String(36), ForeignKey("comments.id"), nullable=True, index=True)


class Upvote(RecordMixin, Base):
    __tablename__ = "upvotes"
    __table_args__ = (UniqueConstraint("snippet", "userid", name="uq_upvotes_snippet_user"),)

    snippet: Mapped[str | None] = mapped_column(String(36), ForeignKey("snippets.id"), nullable=True)
    userid: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id"), nullable=True)


class CommentUpvote(RecordMixin, Base):
    __tablename__ = "comment_upvotes"
    __table_args__ = (UniqueConstraint("comment", "userid", name="uq_comment_upvotes_comment_user"),)

    comment: Mapped[str | None] = mapped_column(String(36), ForeignKey("comments.id"), nullable=True)
    userid: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id"), nullable=True)


Index("ix_comments_snippet_parent", Comment.snippet, Comment.parent)


MODELS: Dict[str, Type[RecordMixin]] = {
    "users": User,
    "snippets": Snippet,
    "snippet_versions": SnippetVersion,
    "comments": Comment,
    "upvotes": Upvote,
    "comment_upvotes": CommentUpvote,
}
