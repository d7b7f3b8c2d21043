"""Tree navigation: ancestor chains, full text, siblings, children, switching."""

import time

from text_loom.exceptions import CorruptTree, NodeNotFound
from text_loom.models.node import DocumentState, Node, SwitchResult


def get_node(state: DocumentState, node_id: str) -> Node:
    """Return a node, raising NodeNotFound if it is absent."""
    try:
        return state.nodes[node_id]
    except KeyError:
        raise NodeNotFound(node_id) from None


def ancestors(state: DocumentState, node_id: str) -> list[str]:
    """Return the ancestor ids of a node, root first, excluding the node itself.

    Raises:
        NodeNotFound: If ``node_id`` is absent.
        CorruptTree: If the walk meets a dangling parent id or a cycle.
    """
    node = get_node(state, node_id)
    chain: list[str] = []
    seen = {node_id}
    parent_id = node.parent_id
    while parent_id is not None:
        if parent_id in seen:
            msg = f"Cycle through node {parent_id!r} while walking up from {node_id!r}"
            raise CorruptTree(msg)
        parent = state.nodes.get(parent_id)
        if parent is None:
            msg = f"Dangling parent id {parent_id!r} while walking up from {node_id!r}"
            raise CorruptTree(msg)
        seen.add(parent_id)
        chain.append(parent_id)
        parent_id = parent.parent_id
    chain.reverse()
    return chain


def family(state: DocumentState, node_id: str) -> list[str]:
    """Ancestors plus the node itself, root first."""
    return [*ancestors(state, node_id), node_id]


def family_texts(state: DocumentState, node_id: str) -> list[str]:
    return [state.nodes[i].text for i in family(state, node_id)]


def full_text(state: DocumentState, node_id: str) -> str:
    """Concatenate node texts from the root down to ``node_id``."""
    return "".join(family_texts(state, node_id))


def is_descendant(state: DocumentState, node_id: str, ancestor_id: str) -> bool:
    """True if ``node_id`` is ``ancestor_id`` or lies below it."""
    return node_id == ancestor_id or ancestor_id in ancestors(state, node_id)


def children(state: DocumentState, parent_id: str | None) -> list[str]:
    """Direct children of ``parent_id`` in insertion order.

    ``parent_id=None`` returns the roots.
    """
    return [i for i, node in state.nodes.items() if node.parent_id == parent_id]


def roots(state: DocumentState) -> list[str]:
    return children(state, None)


def siblings(state: DocumentState, node_id: str) -> list[str]:
    """All nodes sharing ``node_id``'s parent, the node included."""
    return children(state, get_node(state, node_id).parent_id)


def next_sibling(state: DocumentState, node_id: str) -> str | None:
    """The sibling after ``node_id``, wrapping; None for an only child."""
    sibs = siblings(state, node_id)
    if len(sibs) == 1:
        return None
    return sibs[(sibs.index(node_id) + 1) % len(sibs)]


def prev_sibling(state: DocumentState, node_id: str) -> str | None:
    """The sibling before ``node_id``, wrapping; None for an only child."""
    sibs = siblings(state, node_id)
    if len(sibs) == 1:
        return None
    return sibs[(sibs.index(node_id) - 1) % len(sibs)]


def last_visited_child(state: DocumentState, node_id: str) -> str | None:
    """The most recently visited child; unvisited children sort last."""
    get_node(state, node_id)
    kids = children(state, node_id)
    if not kids:
        return None
    return max(kids, key=lambda i: state.nodes[i].last_visited or 0)


def descendants(state: DocumentState, node_id: str) -> list[str]:
    """Every node below ``node_id``, enumerated explicitly (excludes the node)."""
    by_parent: dict[str, list[str]] = {}
    for i, node in state.nodes.items():
        if node.parent_id is not None:
            by_parent.setdefault(node.parent_id, []).append(i)

    found: list[str] = []
    seen = {node_id}
    todo = list(by_parent.get(node_id, ()))
    while todo:
        current = todo.pop(0)
        if current in seen:
            msg = f"Cycle through node {current!r} below {node_id!r}"
            raise CorruptTree(msg)
        seen.add(current)
        found.append(current)
        todo.extend(by_parent.get(current, ()))
    return found


def switch_to(
    state: DocumentState, node_id: str, *, buffer_text: str = "", offset: int = 0
) -> SwitchResult:
    """Make ``node_id`` the active node.

    Marks it read and visited, uncollapses its ancestors and returns the text
    the host buffer must show. ``prefix_changed`` tells the host whether the
    text before ``offset`` in ``buffer_text`` differs from the new text, so it
    can decide whether to keep the cursor.
    """
    chain = ancestors(state, node_id)
    node = state.nodes[node_id]

    state.current = node_id
    node.unread = False
    node.last_visited = int(time.time() * 1000)
    for ancestor_id in chain:
        state.nodes[ancestor_id].collapsed = False

    text = "".join(state.nodes[i].text for i in [*chain, node_id])
    prefix_changed = buffer_text[:offset] != text[:offset]
    return SwitchResult(node_id=node_id, text=text, prefix_changed=prefix_changed)
