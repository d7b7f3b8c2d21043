"""Tests for DocumentSession commands against an in-memory buffer."""

import asyncio
import json
from pathlib import Path

import pytest

from tests.unit.fakes import FakeProvider
from text_loom.buffer import FileBuffer, TextBuffer
from text_loom.core.tree.navigation import children, roots
from text_loom.exceptions import CannotMerge, NodeNotFound
from text_loom.protocols import Cursor
from text_loom.session import DocumentSession, Loom
from text_loom.store import StateStore


def _open(loom: Loom, text: str, cursor: Cursor | None = None) -> DocumentSession:
    return loom.open("story.md", TextBuffer(text, cursor))


def test_open_wraps_buffer_in_single_root(loom: Loom) -> None:
    session = _open(loom, "Once upon a time")

    assert list(session.state.nodes) == [session.state.current]
    assert session.full_text() == "Once upon a time"
    assert loom.store is not None and loom.store.path.exists()


def test_open_existing_document_keeps_tree(loom: Loom) -> None:
    session = _open(loom, "Once upon")
    child = session.create_child()

    again = _open(loom, "ignored")
    assert again.state.current == child


def test_sync_folds_buffer_edits_into_tree(loom: Loom) -> None:
    session = _open(loom, "Once upon")
    child = session.create_child()

    session.buffer.set_value("Once upon a time")
    assert session.sync() is None

    assert session.state.nodes[child].text == " a time"
    assert session.full_text() == "Once upon a time"


def test_sync_with_clone_on_edit_switches_to_new_branch(loom: Loom) -> None:
    loom.set_setting("cloneParentOnEdit", True)
    session = _open(loom, "Once upon")
    root = session.state.current
    child = session.create_child()
    session.buffer.set_value("Once upon a time")
    session.sync()

    session.buffer.set_value("Twice upon a time")
    new_id = session.sync()

    assert new_id is not None
    assert session.state.current == new_id
    assert session.state.nodes[root].text == "Once upon"
    assert session.state.nodes[child].text == " a time"
    assert session.buffer.get_value() == "Twice upon a time"


def test_create_child_keeps_cursor(loom: Loom) -> None:
    session = _open(loom, "Once upon", Cursor(0, 4))
    session.create_child()
    assert session.buffer.get_value() == "Once upon"
    assert session.buffer.get_cursor() == Cursor(0, 4)


def test_switch_moves_cursor_to_end_when_prefix_changes(loom: Loom) -> None:
    session = _open(loom, "Once upon")
    first = session.create_child()
    session.buffer.set_value("Once upon a time")
    session.sync()
    session.create_sibling()
    session.buffer.set_value("Once upon the end")
    session.sync()

    session.buffer.set_cursor(Cursor(0, 12))
    session.switch_to(first)

    assert session.buffer.get_value() == "Once upon a time"
    assert session.buffer.get_cursor() == Cursor(0, len("Once upon a time"))


def test_switch_keeps_cursor_inside_shared_prefix(loom: Loom) -> None:
    session = _open(loom, "Once upon")
    first = session.create_child()
    session.create_sibling()

    session.buffer.set_cursor(Cursor(0, 3))
    session.switch_to(first)

    assert session.buffer.get_cursor() == Cursor(0, 3)


def test_navigation_commands(loom: Loom) -> None:
    session = _open(loom, "Once upon")
    root = session.state.current
    first = session.create_child()
    second = session.create_sibling()

    assert session.switch_to_prev_sibling().node_id == first
    assert session.switch_to_next_sibling().node_id == second
    assert session.switch_to_parent().node_id == root
    # Visits can share a millisecond; make the most recent one unambiguous.
    session.state.nodes[second].last_visited = session.state.nodes[first].last_visited + 1
    assert session.switch_to_child().node_id == second
    assert session.switch_to_child() is None
    assert session.state.current == second


def test_split_at_point_inside_node(loom: Loom) -> None:
    session = _open(loom, "Once upon a time", Cursor(0, 9))
    root = session.state.current

    new_id = session.split_at_point()

    assert session.state.nodes[root].text == "Once upon"
    assert session.state.nodes[new_id].parent_id == root
    assert session.state.nodes[new_id].text == ""
    assert len(children(session.state, root)) == 2
    assert session.buffer.get_value() == "Once upon"


def test_split_at_point_at_end_creates_child(loom: Loom) -> None:
    session = _open(loom, "Once upon")
    root = session.state.current

    new_id = session.split_at_point()

    assert session.state.nodes[new_id].parent_id == root
    assert session.state.nodes[root].text == "Once upon"


def test_split_at_point_at_start_creates_sibling(loom: Loom) -> None:
    session = _open(loom, "Once upon", Cursor(0, 0))
    root = session.state.current
    new_id = session.split_at_point()
    assert roots(session.state) == [root, new_id]
    assert session.buffer.get_value() == ""


def test_merge_with_parent_shows_parent(loom: Loom) -> None:
    session = _open(loom, "Once upon")
    root = session.state.current
    session.create_child()
    session.buffer.set_value("Once upon a time")
    session.sync()

    assert session.merge_with_parent() == root
    assert session.state.nodes[root].text == "Once upon a time"
    assert session.buffer.get_value() == "Once upon a time"


def test_merge_failure_leaves_state(loom: Loom) -> None:
    session = _open(loom, "Once upon")
    with pytest.raises(CannotMerge):
        session.merge_with_parent()
    assert len(session.state.nodes) == 1


def test_delete_current_shows_fallback(loom: Loom) -> None:
    session = _open(loom, "Once upon")
    root = session.state.current
    child = session.create_child()
    session.buffer.set_value("Once upon a time")
    session.sync()

    result = session.delete([child])

    assert result.fallback == root
    assert session.buffer.get_value() == "Once upon"


def test_failed_command_does_not_save(loom: Loom) -> None:
    session = _open(loom, "Once upon")
    assert loom.store is not None
    before = loom.store.path.read_text()

    with pytest.raises(NodeNotFound):
        session.switch_to("nope")

    assert loom.store.path.read_text() == before


def test_commands_persist_state(loom: Loom) -> None:
    session = _open(loom, "Once upon")
    child = session.create_child()
    session.toggle_bookmark(child)

    assert loom.store is not None
    reloaded = Loom(StateStore(loom.store.path))
    state = reloaded.documents["story.md"]
    assert state.current == child
    assert state.nodes[child].bookmarked


def test_hoist_and_search(loom: Loom) -> None:
    session = _open(loom, "Once upon")
    root = session.state.current
    session.hoist(root)
    assert session.state.hoisted == [root]
    assert session.unhoist() == root

    assert session.search("upon") == [root]
    assert session.state.nodes[root].search_result_state == "result"


def test_export_then_import(loom: Loom, tmp_path: Path) -> None:
    session = _open(loom, "Once upon")
    child = session.create_child()
    path = tmp_path / "export.json"
    session.export_state(path)

    other = loom.open("other.md", TextBuffer("Something else"))
    other.import_state(path)

    assert other.state.current == child
    assert other.buffer.get_value() == "Once upon"
    assert json.loads(path.read_text())["current"] == child


def test_make_prompt_from_passages(loom: Loom, tmp_path: Path) -> None:
    (tmp_path / "one.md").write_text("First")
    (tmp_path / "two.md").write_text("Second")
    loom.set_setting("passageFolder", str(tmp_path))
    session = _open(loom, "Once upon")

    new_id = session.make_prompt_from_passages(["one", "two.md"], separator="\\n---\\n")

    assert session.state.nodes[new_id].parent_id is None
    assert session.buffer.get_value() == "First\n---\nSecond\n---\n"


def test_complete_at_end_generates_children(loom: Loom, fake_provider: FakeProvider) -> None:
    fake_provider.completions = [" there", " here"]
    session = _open(loom, "Once upon a time")
    root = session.state.current

    outcome = asyncio.run(session.complete())

    assert outcome.status == "attached"
    assert children(session.state, root) == list(outcome.child_ids)
    assert session.state.current == outcome.child_ids[0]
    assert session.buffer.get_value() == "Once upon a time there"
    assert fake_provider.requests[0].prompt == "Once upon a time"


def test_complete_mid_text_splits_and_generates_from_cursor(
    loom: Loom, fake_provider: FakeProvider
) -> None:
    session = _open(loom, "Once upon a time", Cursor(0, 9))
    root = session.state.current

    outcome = asyncio.run(session.complete())

    assert session.state.nodes[root].text == "Once upon"
    assert fake_provider.requests[0].prompt == "Once upon"
    assert len(children(session.state, root)) == 3
    assert outcome.focus == outcome.child_ids[0]


def test_complete_failure_creates_nothing(loom: Loom, fake_provider: FakeProvider) -> None:
    fake_provider.fail(429, "slow down")
    session = _open(loom, "Once upon")

    outcome = asyncio.run(session.complete())

    assert outcome.status == "failed"
    assert outcome.notice == "fake API rate limit exceeded."
    assert len(session.state.nodes) == 1
    assert session.state.generating is None


def test_generate_siblings(loom: Loom, fake_provider: FakeProvider) -> None:
    session = _open(loom, "Once upon")
    root = session.state.current
    child = session.create_child()

    outcome = asyncio.run(session.generate_siblings(child))

    assert outcome.status == "attached"
    assert children(session.state, root) == [child, *outcome.child_ids]


def test_generate_siblings_of_root_is_rejected(loom: Loom, fake_provider: FakeProvider) -> None:
    session = _open(loom, "Once upon")
    outcome = asyncio.run(session.generate_siblings())
    assert outcome.status == "rejected"
    assert fake_provider.requests == []


def test_reset_during_generation_discards_results(
    loom: Loom, fake_provider: FakeProvider
) -> None:
    session = _open(loom, "Once upon")

    async def scenario():
        fake_provider.gate = asyncio.Event()
        task = asyncio.create_task(session.complete())
        await asyncio.sleep(0)
        loom.reset()
        fake_provider.gate.set()
        return await task

    outcome = asyncio.run(scenario())

    assert outcome.status == "discarded"
    assert "story.md" not in loom.documents


def test_split_is_written_before_the_request_returns(
    loom: Loom, fake_provider: FakeProvider, tmp_path: Path
) -> None:
    path = tmp_path / "hello.md"
    path.write_text("Hello world")
    session = loom.open("hello.md", FileBuffer(path, Cursor(0, 5)))
    root = session.state.current

    async def scenario():
        fake_provider.gate = asyncio.Event()
        task = asyncio.create_task(session.complete())
        await asyncio.sleep(0)
        assert path.read_text() == "Hello"
        loom.open("hello.md", FileBuffer(path)).sync()
        fake_provider.gate.set()
        return await task

    outcome = asyncio.run(scenario())

    assert outcome.status == "attached"
    assert outcome.root_id == root
    texts = sorted(node.text for node in session.state.nodes.values())
    assert texts == [" world", "Hello", "bar", "foo"]
    split_child = next(i for i, n in session.state.nodes.items() if n.text == " world")
    assert session.full_text(split_child) == "Hello world"


def test_rename_and_forget_document(loom: Loom) -> None:
    _open(loom, "Once upon")
    loom.rename_document("story.md", "renamed.md")
    assert list(loom.documents) == ["renamed.md"]

    loom.forget_document("renamed.md")
    assert loom.documents == {}


def test_loom_reuses_one_rest_client(loom: Loom) -> None:
    assert loom.rest is loom.rest
