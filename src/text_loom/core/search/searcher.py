"""Substring search over a document's nodes."""

from text_loom.core.tree.navigation import ancestors
from text_loom.models.node import DocumentState


def search(state: DocumentState, term: str) -> list[str]:
    """Mark every node as a result, an ancestor of a result, or neither.

    The whole document is recomputed on each call. An empty term clears the
    marks.

    Args:
        state: Document to search.
        term: Case-insensitive substring to look for in node text.

    Returns:
        Ids of the matching nodes, in insertion order.
    """
    state.search_term = term

    if not term:
        for node in state.nodes.values():
            node.search_result_state = None
        return []

    needle = term.lower()
    matches = [i for i, node in state.nodes.items() if needle in node.text.lower()]

    ancestor_set: set[str] = set()
    for node_id in matches:
        ancestor_set.update(ancestors(state, node_id))

    matched = set(matches)
    for node_id, node in state.nodes.items():
        if node_id in matched:
            node.search_result_state = "result"
        elif node_id in ancestor_set:
            node.search_result_state = "ancestor"
        else:
            node.search_result_state = "none"
    return matches
