from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Tuple

# Fields every record carries, managed by the store.
SYSTEM_FIELDS: FrozenSet[str] = frozenset({"id", "created", "updated"})

CASCADE = "cascade"
SET_NULL = "set_null"


@dataclass(frozen=True)
class Relation:
    collection: str
    field: str
    target: str
    on_delete: str


COLLECTION_FIELDS: Dict[str, FrozenSet[str]] = {
    "users": frozenset({"name", "avatar", "about"}),
    "snippets": frozenset(
        {"title", "description", "language", "code", "visibility", "author", "forked_from"}
    ),
    "snippet_versions": frozenset({"snippet", "code", "language", "description", "author"}),
    "comments": frozenset({"content", "author", "snippet", "parent"}),
    "upvotes": frozenset({"snippet", "userid"}),
    "comment_upvotes": frozenset({"comment", "userid"}),
}

RELATIONS: List[Relation] = [
    Relation("snippets", "author", "users", CASCADE),
    Relation("snippets", "forked_from", "snippets", SET_NULL),
    Relation("snippet_versions", "snippet", "snippets", CASCADE),
    Relation("snippet_versions", "author", "users", SET_NULL),
    Relation("comments", "snippet", "snippets", CASCADE),
    Relation("comments", "parent", "comments", CASCADE),
    Relation("comments", "author", "users", CASCADE),
    Relation("upvotes", "snippet", "snippets", CASCADE),
    Relation("upvotes", "userid", "users", CASCADE),
    Relation("comment_upvotes", "comment", "comments", CASCADE),
    Relation("comment_upvotes", "userid", "users", CASCADE),
]

UNIQUE_KEYS: Dict[str, List[Tuple[str, ...]]] = {
    "upvotes": [("snippet", "userid")],
    "comment_upvotes": [("comment", "userid")],
}


def relation_for(collection: str, field: str) -> Relation | None:
    for rel in RELATIONS:
        if rel.collection == collection and rel.field == field:
            return rel
    return None


def relations_for(collection: str) -> List[Relation]:
    return [rel for rel in RELATIONS if rel.collection == collection]


def referencing(target: str) -> List[Relation]:
    """Relations pointing at ``target``, i.e. what a delete must visit."""
    return [rel for rel in RELATIONS if rel.target == target]
