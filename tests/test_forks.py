from __future__ import annotations

import pytest

from helpers import build_snippet_service, make_snippet, make_user
from snipet.core.errors import NotFoundError
from snipet.services.comments import CommentTreeBuilder
from snipet.services.forks import ForkEngine
from snipet.services.records import Snippet
from snipet.services.versions import VersionHistoryEngine


@pytest.mark.anyio
@pytest.mark.parametrize("visibility", ["public", "private"])
async def test_fork_copies_content_and_is_always_public(store, visibility):
    alice = await make_user(store, "alice")
    bob = await make_user(store, "bob")
    source = await make_snippet(
        store,
        alice,
        title="Quicksort",
        code="def qs(xs): return xs",
        language="python",
        description="tiny sort",
        visibility=visibility,
    )

    fork = await ForkEngine(store).fork_snippet(source, bob)

    assert fork.id != source.id
    assert fork.author == bob.id
    assert fork.forked_from == source.id
    assert fork.visibility == "public"
    assert fork.title == "Fork of Quicksort"
    assert (fork.code, fork.language, fork.description) == (source.code, source.language, source.description)


@pytest.mark.anyio
async def test_fork_leaves_versions_and_comments_behind(store):
    alice = await make_user(store, "alice")
    bob = await make_user(store, "bob")
    versions = VersionHistoryEngine(store)
    comments = CommentTreeBuilder(store)
    source = await make_snippet(store, alice)
    source = await versions.revise_snippet(source.id, source, {"code": "print('second take')"})
    await comments.add_comment(source.id, bob.id, "neat")

    fork = await ForkEngine(store, title_prefix="Copy: ").fork_snippet(source, bob.id)

    assert fork.title == f"Copy: {source.title}"
    assert await versions.list_versions(fork.id) == []
    assert await comments.fetch_top_level(fork.id) == []
    timeline = await versions.get_version_timeline(fork)
    assert [e.inherited for e in timeline] == [True]


@pytest.mark.anyio
async def test_deleting_the_source_detaches_forks(store):
    service = build_snippet_service(store)
    alice = await make_user(store, "alice")
    bob = await make_user(store, "bob")
    source = await make_snippet(store, alice)
    fork = await ForkEngine(store).fork_snippet(source, bob)

    await service.delete_snippet(source.id, alice.id)

    with pytest.raises(NotFoundError):
        await service.get_snippet(source.id, alice.id)
    detached = Snippet.from_record(await store.get_one("snippets", fork.id))
    assert detached.forked_from is None
    assert detached.code == source.code
