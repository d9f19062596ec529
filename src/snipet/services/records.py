from __future__ import annotations

from datetime import datetime
from typing import Any, ClassVar, Dict, Literal, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from snipet.core.errors import ValidationError

Visibility = Literal["public", "private"]

R = TypeVar("R", bound="StoredRecord")
M = TypeVar("M", bound=BaseModel)


class StoredRecord(BaseModel):
    """A typed view over a raw store record.

    Unknown fields are dropped; relation expansions named in ``expansions``
    are lifted out of the store's ``expand`` map into typed attributes.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    expansions: ClassVar[Dict[str, str]] = {}

    id: str
    created: datetime
    updated: datetime

    @classmethod
    def from_record(cls: Type[R], record: Dict[str, Any]) -> R:
        data = dict(record)
        expanded = data.pop("expand", None) or {}
        for relation, attribute in cls.expansions.items():
            if relation in expanded:
                data[attribute] = expanded[relation]
        return cls.model_validate(data)


class User(StoredRecord):
    name: str = ""
    avatar: Optional[str] = None
    about: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def _none_name(cls, value: Any) -> Any:
        return "" if value is None else value


class Snippet(StoredRecord):
    expansions: ClassVar[Dict[str, str]] = {"author": "author_info", "forked_from": "origin"}

    title: str
    description: Optional[str] = None
    language: str
    code: str
    visibility: Visibility = "public"
    author: str
    forked_from: Optional[str] = None
    author_info: Optional[User] = None
    origin: Optional["SnippetSummary"] = None

    @property
    def is_public(self) -> bool:
        return self.visibility == "public"


class SnippetSummary(StoredRecord):
    title: str
    author: Optional[str] = None


class SnippetVersion(StoredRecord):
    expansions: ClassVar[Dict[str, str]] = {"author": "author_info"}

    snippet: str
    code: str
    language: Optional[str] = None
    description: Optional[str] = None
    author: Optional[str] = None
    author_info: Optional[User] = None


class Comment(StoredRecord):
    expansions: ClassVar[Dict[str, str]] = {"author": "author_info"}

    content: str
    author: str
    snippet: str
    parent: Optional[str] = None
    author_info: Optional[User] = None

    @property
    def edited(self) -> bool:
        return self.updated != self.created


class Upvote(StoredRecord):
    snippet: Optional[str] = None
    comment: Optional[str] = None
    userid: str


Snippet.model_rebuild()


# Input models


class SnippetDraft(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(min_length=3)
    description: str = ""
    language: str = Field(min_length=1)
    code: str = Field(min_length=10)
    visibility: Visibility = "public"


class SnippetChanges(BaseModel):
    """Fields that may change on an existing snippet; ``None`` means unchanged."""

    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    description: Optional[str] = None
    language: Optional[str] = None
    code: Optional[str] = None
    visibility: Optional[Visibility] = None

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class SnippetRevision(SnippetChanges):
    """An author's edit form, held to the same rules as a new snippet."""

    title: Optional[str] = Field(default=None, min_length=3)
    language: Optional[str] = Field(default=None, min_length=1)
    code: Optional[str] = Field(default=None, min_length=10)


class CommentDraft(BaseModel):
    model_config = ConfigDict(extra="forbid")

    content: str

    @field_validator("content")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Comment cannot be empty")
        return value


class ProfileDraft(BaseModel):
    """Profile edits; ``None`` leaves a field as it is."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=2)
    about: Optional[str] = Field(default=None, max_length=500)

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


IMMUTABLE_SNIPPET_FIELDS = ("author", "forked_from")


def parse_input(model: Type[M], data: Any, *, immutable: Sequence[str] = ()) -> M:
    """Validate ``data`` into ``model``, raising our ValidationError with a field map."""
    if isinstance(data, model):
        return data
    if isinstance(data, dict):
        frozen = [name for name in immutable if name in data]
        if frozen:
            raise ValidationError(
                "Some fields cannot be changed.", {name: "field is immutable" for name in frozen}
            )
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        errors = {".".join(str(p) for p in err["loc"]) or "__root__": err["msg"] for err in exc.errors()}
        raise ValidationError("Failed to validate the submitted data.", errors) from exc
