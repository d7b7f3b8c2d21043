"""Tests for tree navigation (ancestors, full text, siblings, switching)."""

import pytest

from tests.unit.conftest import make_state
from text_loom.core.tree.navigation import (
    ancestors,
    children,
    descendants,
    family,
    full_text,
    is_descendant,
    last_visited_child,
    next_sibling,
    prev_sibling,
    roots,
    siblings,
    switch_to,
)
from text_loom.exceptions import CorruptTree, NodeNotFound
from text_loom.models.node import DocumentState


def test_ancestors_are_root_first(sample_state: DocumentState) -> None:
    assert ancestors(sample_state, "a1") == ["root", "a"]
    assert ancestors(sample_state, "root") == []
    assert family(sample_state, "a1") == ["root", "a", "a1"]


def test_full_text_concatenates_path(sample_state: DocumentState) -> None:
    assert full_text(sample_state, "a1") == "Once upon a time there"
    assert full_text(sample_state, "b") == "Once upon the end"


def test_full_text_is_ancestors_plus_own_text(sample_state: DocumentState) -> None:
    for node_id, node in sample_state.nodes.items():
        prefix = "".join(sample_state.nodes[i].text for i in ancestors(sample_state, node_id))
        assert full_text(sample_state, node_id) == prefix + node.text


def test_missing_node_raises(sample_state: DocumentState) -> None:
    with pytest.raises(NodeNotFound) as exc:
        full_text(sample_state, "nope")
    assert exc.value.node_id == "nope"


def test_dangling_parent_raises_corrupt_tree() -> None:
    state = make_state({"x": ("x", "ghost")}, current="x")
    with pytest.raises(CorruptTree, match="Dangling"):
        ancestors(state, "x")


def test_cycle_raises_corrupt_tree_without_looping() -> None:
    state = make_state({"x": ("x", "y"), "y": ("y", "x")}, current="x")
    with pytest.raises(CorruptTree, match="Cycle"):
        full_text(state, "x")


def test_children_in_insertion_order(sample_state: DocumentState) -> None:
    assert children(sample_state, "root") == ["a", "b"]
    assert children(sample_state, "a") == ["a1", "a2"]
    assert children(sample_state, "b") == []
    assert roots(sample_state) == ["root"]
    assert siblings(sample_state, "a1") == ["a1", "a2"]


def test_sibling_navigation_wraps(sample_state: DocumentState) -> None:
    assert next_sibling(sample_state, "a1") == "a2"
    assert next_sibling(sample_state, "a2") == "a1"
    assert prev_sibling(sample_state, "a1") == "a2"


def test_only_child_has_no_siblings() -> None:
    state = make_state({"r": ("r", None), "c": ("c", "r")}, current="c")
    assert next_sibling(state, "c") is None
    assert prev_sibling(state, "c") is None


def test_last_visited_child_prefers_most_recent(sample_state: DocumentState) -> None:
    sample_state.nodes["a2"].last_visited = 5
    sample_state.nodes["a1"].last_visited = 3
    assert last_visited_child(sample_state, "a") == "a2"
    assert last_visited_child(sample_state, "a1") is None


def test_descendants_enumerates_closure(sample_state: DocumentState) -> None:
    assert set(descendants(sample_state, "root")) == {"a", "a1", "a2", "b"}
    assert descendants(sample_state, "a1") == []


def test_is_descendant(sample_state: DocumentState) -> None:
    assert is_descendant(sample_state, "a1", "root")
    assert is_descendant(sample_state, "a", "a")
    assert not is_descendant(sample_state, "b", "a")


def test_switch_to_updates_view_state(sample_state: DocumentState) -> None:
    sample_state.nodes["root"].collapsed = True
    sample_state.nodes["a"].collapsed = True
    sample_state.nodes["a2"].unread = True

    result = switch_to(sample_state, "a2")

    assert sample_state.current == "a2"
    assert result.text == "Once upon a time here"
    assert not sample_state.nodes["a2"].unread
    assert sample_state.nodes["a2"].last_visited is not None
    assert not sample_state.nodes["root"].collapsed
    assert not sample_state.nodes["a"].collapsed


def test_switch_to_is_idempotent(sample_state: DocumentState) -> None:
    first = switch_to(sample_state, "b")
    second = switch_to(sample_state, "b")
    assert first.text == second.text
    assert sample_state.current == "b"


def test_switch_to_reports_prefix_change(sample_state: DocumentState) -> None:
    buffer_text = full_text(sample_state, "a1")

    same_prefix = switch_to(sample_state, "a2", buffer_text=buffer_text, offset=10)
    assert not same_prefix.prefix_changed

    changed = switch_to(sample_state, "b", buffer_text=buffer_text, offset=len(buffer_text))
    assert changed.prefix_changed


def test_switch_to_missing_node_changes_nothing(sample_state: DocumentState) -> None:
    with pytest.raises(NodeNotFound):
        switch_to(sample_state, "nope")
    assert sample_state.current == "a1"
