"""Tests for reading and writing persisted document state."""

import pytest

from text_loom.core.importer.json_reader import (
    dump_document_state,
    dump_node,
    parse_document_state,
    parse_node,
)
from text_loom.exceptions import CorruptTree, NodeNotFound
from text_loom.models.node import DocumentState, Node


def _raw_state() -> dict:
    return {
        "current": "c",
        "hoisted": ["r", "gone"],
        "searchTerm": "",
        "nodes": {
            "r": {"text": "Hello", "parentId": None, "collapsed": False},
            "c": {
                "text": " world",
                "parentId": "r",
                "unread": True,
                "bookmarked": True,
                "lastVisited": 1700000000000,
                "searchResultState": "result",
                "color": "blue",
            },
        },
        "generating": None,
    }


def test_parse_document_state() -> None:
    state = parse_document_state(_raw_state())

    assert state.current == "c"
    assert state.hoisted == ["r"]
    node = state.nodes["c"]
    assert node.parent_id == "r"
    assert node.unread and node.bookmarked
    assert node.last_visited == 1700000000000
    assert node.search_result_state == "result"
    assert node.color == "blue"


def test_parse_node_defaults_missing_flags() -> None:
    node = parse_node("x", {"text": "hi", "parentId": None})
    assert node == Node(text="hi", parent_id=None)


def test_parse_node_drops_unknown_color_and_search_state() -> None:
    node = parse_node("x", {"text": "hi", "color": "mauve", "searchResultState": "maybe"})
    assert node.color is None
    assert node.search_result_state is None


def test_node_without_text_is_corrupt() -> None:
    with pytest.raises(CorruptTree, match="'x'"):
        parse_node("x", {"parentId": None})


def test_empty_document_is_corrupt() -> None:
    with pytest.raises(CorruptTree, match="no nodes"):
        parse_document_state({"current": "x", "nodes": {}})


def test_missing_current_is_rejected() -> None:
    raw = _raw_state()
    raw["current"] = "nope"
    with pytest.raises(NodeNotFound):
        parse_document_state(raw)


def test_dangling_parent_is_rejected() -> None:
    raw = _raw_state()
    raw["nodes"]["c"]["parentId"] = "ghost"
    with pytest.raises(CorruptTree):
        parse_document_state(raw)


def test_dump_node_omits_unset_optional_fields() -> None:
    raw = dump_node(Node(text="hi", parent_id=None))
    assert "lastVisited" not in raw
    assert "color" not in raw
    assert raw["searchResultState"] is None


def test_dump_then_parse_preserves_state(sample_state: DocumentState) -> None:
    sample_state.nodes["a"].color = "red"
    sample_state.hoisted = ["a"]

    restored = parse_document_state(dump_document_state(sample_state))

    assert restored == sample_state
    assert list(restored.nodes) == list(sample_state.nodes)
