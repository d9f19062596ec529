from __future__ import annotations

from datetime import timedelta

import pytest

from helpers import make_snippet, make_user
from snipet.core.errors import EditWindowClosedError, NotFoundError, PermissionDeniedError, ValidationError
from snipet.services.comments import CommentTreeBuilder
from snipet.services.upvotes import UpvoteKind, UpvoteToggleService


@pytest.fixture
def builder(store, clock):
    return CommentTreeBuilder(store, clock=clock)


@pytest.mark.anyio
async def test_edit_window_boundaries(store, builder):
    alice = await make_user(store, "alice")
    snippet = await make_snippet(store, alice)
    comment = await builder.add_comment(snippet.id, alice.id, "first!")

    assert builder.is_editable(comment, comment.created + timedelta(minutes=29, seconds=59))
    assert not builder.is_editable(comment, comment.created + timedelta(minutes=30, seconds=1))


@pytest.mark.anyio
async def test_replies_come_back_oldest_first(store, builder):
    alice = await make_user(store, "alice")
    bob = await make_user(store, "bob")
    snippet = await make_snippet(store, alice)
    root = await builder.add_comment(snippet.id, alice.id, "what does this do?")
    r1 = await builder.add_comment(snippet.id, bob.id, "it prints", root.id)
    r2 = await builder.add_comment(snippet.id, alice.id, "thanks", root.id)

    replies = await builder.fetch_replies(root.id)

    assert r1.created < r2.created
    assert [r.id for r in replies] == [r1.id, r2.id]
    assert replies[0].author_info is not None
    assert replies[0].author_info.name == "bob"


@pytest.mark.anyio
async def test_top_level_excludes_replies_and_other_snippets(store, builder):
    alice = await make_user(store, "alice")
    snippet = await make_snippet(store, alice)
    other = await make_snippet(store, alice, title="Another one")
    first = await builder.add_comment(snippet.id, alice.id, "one")
    await builder.add_comment(snippet.id, alice.id, "reply", first.id)
    second = await builder.add_comment(snippet.id, alice.id, "two")
    await builder.add_comment(other.id, alice.id, "elsewhere")

    top = await builder.fetch_top_level(snippet.id)

    assert [c.id for c in top] == [first.id, second.id]
    assert await builder.reply_count(first.id) == 1
    assert await builder.comment_count(snippet.id) == 3


@pytest.mark.anyio
async def test_reply_parent_must_share_the_snippet(store, builder):
    alice = await make_user(store, "alice")
    snippet = await make_snippet(store, alice)
    other = await make_snippet(store, alice, title="Another one")
    parent = await builder.add_comment(snippet.id, alice.id, "root")

    with pytest.raises(ValidationError) as exc:
        await builder.add_comment(other.id, alice.id, "wrong thread", parent.id)

    assert "parent" in exc.value.data


@pytest.mark.anyio
async def test_blank_comment_is_rejected(store, builder):
    alice = await make_user(store, "alice")
    snippet = await make_snippet(store, alice)

    with pytest.raises(ValidationError):
        await builder.add_comment(snippet.id, alice.id, "   ")
    assert await builder.comment_count(snippet.id) == 0


@pytest.mark.anyio
async def test_edit_within_window_marks_comment_edited(store, builder):
    alice = await make_user(store, "alice")
    snippet = await make_snippet(store, alice)
    comment = await builder.add_comment(snippet.id, alice.id, "tpyo")

    edited = await builder.edit_comment(comment, alice.id, "typo")

    assert edited.content == "typo"
    assert edited.edited
    assert not comment.edited
    assert await store.count("snippet_versions") == 0


@pytest.mark.anyio
async def test_only_the_author_may_edit_or_delete(store, builder):
    alice = await make_user(store, "alice")
    mallory = await make_user(store, "mallory")
    snippet = await make_snippet(store, alice)
    comment = await builder.add_comment(snippet.id, alice.id, "mine")

    with pytest.raises(PermissionDeniedError):
        await builder.edit_comment(comment, mallory.id, "not yours")
    with pytest.raises(PermissionDeniedError):
        await builder.delete_comment(comment, mallory.id)
    assert not builder.can_modify(comment, mallory.id)
    assert not builder.can_modify(comment, None)


@pytest.mark.anyio
async def test_closed_window_blocks_edit_and_delete(store, builder, clock):
    alice = await make_user(store, "alice")
    snippet = await make_snippet(store, alice)
    comment = await builder.add_comment(snippet.id, alice.id, "old news")
    clock.advance(timedelta(minutes=31))

    with pytest.raises(EditWindowClosedError):
        await builder.edit_comment(comment, alice.id, "too late")
    with pytest.raises(EditWindowClosedError):
        await builder.delete_comment(comment, alice.id)
    assert (await builder.get_comment(comment.id)).content == "old news"


@pytest.mark.anyio
async def test_delete_cascades_to_replies_and_their_upvotes(any_store, clock):
    store = any_store
    builder = CommentTreeBuilder(store, clock=clock)
    alice = await make_user(store, "alice")
    bob = await make_user(store, "bob")
    snippet = await make_snippet(store, alice)
    upvotes = UpvoteToggleService(store)
    root = await builder.add_comment(snippet.id, alice.id, "root")
    reply = await builder.add_comment(snippet.id, bob.id, "reply", root.id)
    nested = await builder.add_comment(snippet.id, alice.id, "nested", reply.id)
    await upvotes.toggle_upvote(nested.id, bob.id, UpvoteKind.comment)
    survivor = await builder.add_comment(snippet.id, bob.id, "unrelated")

    await builder.delete_comment(root, alice.id)

    for gone in (root, reply, nested):
        with pytest.raises(NotFoundError):
            await builder.get_comment(gone.id)
    assert await store.count("comment_upvotes") == 0
    assert [c.id for c in await builder.fetch_top_level(snippet.id)] == [survivor.id]


@pytest.mark.anyio
async def test_stats_are_count_queries(store, builder):
    alice = await make_user(store, "alice")
    bob = await make_user(store, "bob")
    snippet = await make_snippet(store, alice)
    upvotes = UpvoteToggleService(store)
    root = await builder.add_comment(snippet.id, alice.id, "root")
    await builder.add_comment(snippet.id, bob.id, "reply", root.id)
    await upvotes.toggle_upvote(root.id, bob.id, UpvoteKind.comment)
    await upvotes.toggle_upvote(root.id, alice.id, UpvoteKind.comment)

    stats = await builder.stats(root.id)

    assert stats.reply_count == 1
    assert stats.upvote_count == 2


@pytest.mark.anyio
async def test_tree_expands_lazily_and_caps_indent(store, builder):
    alice = await make_user(store, "alice")
    snippet = await make_snippet(store, alice)
    parent = await builder.add_comment(snippet.id, alice.id, "depth 0")
    for depth in range(1, 5):
        parent = await builder.add_comment(snippet.id, alice.id, f"depth {depth}", parent.id)

    tree = await builder.build_tree(snippet.id, max_indent=2)
    assert [n.loaded for n in tree.roots] == [False]
    assert len(list(tree.visible_nodes())) == 1

    await tree.expand_all()
    nodes = list(tree.visible_nodes())

    assert [n.comment.content for n in nodes] == [f"depth {d}" for d in range(5)]
    assert [n.depth for n in nodes] == [0, 1, 2, 3, 4]
    assert [n.indent for n in nodes] == [0, 1, 2, 2, 2]


@pytest.mark.anyio
async def test_collapse_hides_children_and_reexpand_reuses_them(store, builder):
    alice = await make_user(store, "alice")
    snippet = await make_snippet(store, alice)
    root = await builder.add_comment(snippet.id, alice.id, "root")
    await builder.add_comment(snippet.id, alice.id, "child", root.id)
    tree = await builder.build_tree(snippet.id)
    node = tree.roots[0]

    children = await tree.expand(node)
    tree.collapse(node)
    assert [n.comment.content for n in tree.visible_nodes()] == ["root"]

    await builder.add_comment(snippet.id, alice.id, "late child", root.id)
    again = await tree.expand(node)
    assert again is children
    assert tree.find(children[0].comment.id) is children[0]


@pytest.mark.anyio
async def test_collapse_during_expand_discards_the_result(store, builder):
    alice = await make_user(store, "alice")
    snippet = await make_snippet(store, alice)
    root = await builder.add_comment(snippet.id, alice.id, "root")
    await builder.add_comment(snippet.id, alice.id, "child", root.id)
    tree = await builder.build_tree(snippet.id)
    node = tree.roots[0]

    original = builder.fetch_replies

    async def slow_fetch(comment_id):
        # The user collapses the node while the replies are on their way.
        tree.collapse(node)
        return await original(comment_id)

    builder.fetch_replies = slow_fetch
    assert await tree.expand(node) == []
    assert not node.loaded

    builder.fetch_replies = original
    assert [n.comment.content for n in await tree.expand(node)] == ["child"]
