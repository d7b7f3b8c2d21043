"""Parse persisted document state (camelCase JSON) into domain models."""

from typing import Any

from text_loom.core.tree.navigation import ancestors
from text_loom.exceptions import CorruptTree, NodeNotFound
from text_loom.models.node import COLORS, DocumentState, Node

_SEARCH_STATES = ("result", "ancestor", "none", None)


def parse_node(node_id: str, raw: dict[str, Any]) -> Node:
    if not isinstance(raw, dict) or not isinstance(raw.get("text"), str):
        msg = f"Node {node_id!r} has no text"
        raise CorruptTree(msg)

    search_state = raw.get("searchResultState")
    if search_state not in _SEARCH_STATES:
        search_state = None
    color = raw.get("color")
    if color not in COLORS:
        color = None

    return Node(
        text=raw["text"],
        parent_id=raw.get("parentId"),
        collapsed=bool(raw.get("collapsed", False)),
        unread=bool(raw.get("unread", False)),
        bookmarked=bool(raw.get("bookmarked", False)),
        last_visited=raw.get("lastVisited"),
        search_result_state=search_state,
        color=color,
    )


def validate_state(state: DocumentState) -> None:
    """Check that ``current`` resolves and every parent chain reaches a root.

    Raises:
        NodeNotFound: If ``current`` is absent.
        CorruptTree: On a dangling parent id or a cycle.
    """
    if state.current not in state.nodes:
        raise NodeNotFound(state.current)
    for node_id in state.nodes:
        ancestors(state, node_id)


def parse_document_state(data: dict[str, Any]) -> DocumentState:
    """Parse and validate one document's state.

    Args:
        data: Raw state (as written by ``dump_document_state``).

    Returns:
        A validated DocumentState.
    """
    raw_nodes = data.get("nodes")
    if not isinstance(raw_nodes, dict) or not raw_nodes:
        msg = "Document state has no nodes"
        raise CorruptTree(msg)

    nodes = {node_id: parse_node(node_id, raw) for node_id, raw in raw_nodes.items()}
    state = DocumentState(
        current=data.get("current", ""),
        nodes=nodes,
        hoisted=[h for h in data.get("hoisted", []) if h in nodes],
        search_term=data.get("searchTerm", ""),
        generating=data.get("generating"),
    )
    validate_state(state)
    return state


def dump_node(node: Node) -> dict[str, Any]:
    raw: dict[str, Any] = {
        "text": node.text,
        "parentId": node.parent_id,
        "collapsed": node.collapsed,
        "unread": node.unread,
        "bookmarked": node.bookmarked,
    }
    if node.last_visited is not None:
        raw["lastVisited"] = node.last_visited
    raw["searchResultState"] = node.search_result_state
    if node.color is not None:
        raw["color"] = node.color
    return raw


def dump_document_state(state: DocumentState) -> dict[str, Any]:
    return {
        "current": state.current,
        "hoisted": list(state.hoisted),
        "searchTerm": state.search_term,
        "nodes": {node_id: dump_node(node) for node_id, node in state.nodes.items()},
        "generating": state.generating,
    }
