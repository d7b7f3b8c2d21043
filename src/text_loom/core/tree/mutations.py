"""Structural edits: create, clone, split, merge, delete, hoist.

Every function checks its preconditions before touching the tree, so a
raised exception always leaves the document as it was.
"""

import uuid

from loguru import logger

from text_loom.core.tree.navigation import (
    ancestors,
    children,
    descendants,
    family,
    get_node,
    roots,
    siblings,
)
from text_loom.exceptions import CannotDeleteLastRoot, CannotMerge
from text_loom.models.node import COLORS, BreakPoint, Color, DeleteResult, DocumentState, Node


def add_node(
    state: DocumentState, text: str, parent_id: str | None, *, unread: bool = False
) -> str:
    """Append a node to the arena and return its new id."""
    node_id = str(uuid.uuid4())
    state.nodes[node_id] = Node(text=text, parent_id=parent_id, unread=unread)
    return node_id


def new_document(text: str) -> DocumentState:
    """Wrap existing buffer content as the single root of a new document."""
    node_id = str(uuid.uuid4())
    return DocumentState(current=node_id, nodes={node_id: Node(text=text, parent_id=None)})


def create_child(state: DocumentState, parent_id: str, text: str = "") -> str:
    get_node(state, parent_id)
    return add_node(state, text, parent_id)


def create_sibling(state: DocumentState, node_id: str) -> str:
    return add_node(state, "", get_node(state, node_id).parent_id)


def clone(state: DocumentState, node_id: str) -> str:
    node = get_node(state, node_id)
    return add_node(state, node.text, node.parent_id)


def locate_offset(texts: list[str], offset: int) -> tuple[int, int, bool]:
    """Find which path segment owns a buffer offset.

    Returns:
        ``(segment index, offset inside it, past the end of the last segment)``.
    """
    local = max(offset, 0)
    index = 0
    while True:
        if local < len(texts[index]):
            return index, local, False
        if index == len(texts) - 1:
            return index, local, True
        local -= len(texts[index])
        index += 1


def break_at_point(state: DocumentState, offset: int) -> BreakPoint:
    """Split the active path at a buffer offset.

    A cursor at the start of a node asks for a sibling of that node, a cursor
    at the very end asks for a child of the current node. Anywhere else the
    owning node is split in two: it keeps the text before the cursor, and a
    new child takes the text after it together with the node's old children.
    """
    path = family(state, state.current)
    texts = [state.nodes[i].text for i in path]
    index, local, at_end = locate_offset(texts, offset)

    if local == 0:
        return BreakPoint(kind="sibling", node_id=path[index])
    if at_end:
        return BreakPoint(kind="child", node_id=state.current)

    node_id = path[index]
    node = state.nodes[node_id]
    former_children = children(state, node_id)

    before, after = node.text[:local], node.text[local:]
    node.text = before
    after_id = add_node(state, after, node_id)
    for child_id in former_children:
        state.nodes[child_id].parent_id = after_id

    logger.debug(f"Split node {node_id} at {local} into {after_id}")
    return BreakPoint(kind="split", node_id=node_id, new_id=after_id)


def merge_with_parent(state: DocumentState, node_id: str) -> str:
    """Fold a node into its parent and return the parent's id.

    Raises:
        CannotMerge: If the node is a root or has siblings.
    """
    node = get_node(state, node_id)
    parent_id = node.parent_id
    if parent_id is None:
        raise CannotMerge("no parent")
    if len(children(state, parent_id)) > 1:
        raise CannotMerge("has siblings")

    parent = state.nodes[parent_id]
    parent.text += node.text
    for child_id in children(state, node_id):
        state.nodes[child_id].parent_id = parent_id
    del state.nodes[node_id]
    state.hoisted = [h for h in state.hoisted if h != node_id]
    if state.current == node_id:
        state.current = parent_id
    return parent_id


def _fallback(state: DocumentState, doomed: set[str]) -> str | None:
    """Pick a surviving node to replace a deleted ``current``.

    Next surviving sibling after current's position (wrapping), then the
    nearest surviving ancestor, then the first surviving root.
    """
    current = state.current
    sibs = siblings(state, current)
    start = sibs.index(current)
    for step in range(1, len(sibs)):
        candidate = sibs[(start + step) % len(sibs)]
        if candidate not in doomed:
            return candidate

    for ancestor_id in reversed(ancestors(state, current)):
        if ancestor_id not in doomed:
            return ancestor_id

    for root_id in roots(state):
        if root_id not in doomed:
            return root_id
    return None


def delete(state: DocumentState, ids: list[str]) -> DeleteResult:
    """Delete nodes together with all of their descendants.

    Ids that would remove the last surviving root are skipped; the rest are
    deleted. If every requested id is skipped the call raises and nothing
    changes.

    Raises:
        NodeNotFound: If any id is absent (nothing is deleted).
        CannotDeleteLastRoot: If only the last root was requested.
    """
    ids = list(dict.fromkeys(ids))
    for node_id in ids:
        get_node(state, node_id)

    surviving_roots = set(roots(state))
    accepted: list[str] = []
    rejected: list[str] = []
    for node_id in ids:
        if state.nodes[node_id].parent_id is None:
            if surviving_roots == {node_id}:
                rejected.append(node_id)
                continue
            surviving_roots.discard(node_id)
        accepted.append(node_id)

    if not accepted:
        if rejected:
            raise CannotDeleteLastRoot(rejected[0])
        return DeleteResult(deleted=frozenset())
    for node_id in rejected:
        logger.warning(f"The last root node can't be deleted ({node_id})")

    doomed: set[str] = set()
    for node_id in accepted:
        doomed.add(node_id)
        doomed.update(descendants(state, node_id))

    fallback = _fallback(state, doomed) if state.current in doomed else None

    for node_id in doomed:
        del state.nodes[node_id]
    state.hoisted = [h for h in state.hoisted if h not in doomed]
    if fallback is not None:
        state.current = fallback

    logger.debug(f"Deleted {len(doomed)} nodes")
    return DeleteResult(deleted=frozenset(doomed), rejected=tuple(rejected), fallback=fallback)


def clear_children(state: DocumentState, node_id: str) -> DeleteResult:
    get_node(state, node_id)
    return delete(state, children(state, node_id))


def clear_siblings(state: DocumentState, node_id: str) -> DeleteResult:
    return delete(state, [i for i in siblings(state, node_id) if i != node_id])


def toggle_collapse(state: DocumentState, node_id: str) -> bool:
    node = get_node(state, node_id)
    node.collapsed = not node.collapsed
    return node.collapsed


def toggle_bookmark(state: DocumentState, node_id: str) -> bool:
    node = get_node(state, node_id)
    node.bookmarked = not node.bookmarked
    return node.bookmarked


def set_color(state: DocumentState, node_id: str, color: Color) -> None:
    if color is not None and color not in COLORS:
        msg = f"Unknown color: {color!r}"
        raise ValueError(msg)
    get_node(state, node_id).color = color


def hoist(state: DocumentState, node_id: str) -> None:
    """Scope the view to a subtree. Never touches the tree itself."""
    get_node(state, node_id)
    state.hoisted.append(node_id)


def unhoist(state: DocumentState) -> str | None:
    return state.hoisted.pop() if state.hoisted else None
