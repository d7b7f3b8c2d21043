"""Render document trees as markdown outlines."""

import io

from text_loom.core.tree.navigation import children, get_node, roots
from text_loom.models.node import DocumentState


def _label(text: str, width: int) -> str:
    line = text.replace("\n", "\\n")
    if width and len(line) > width:
        line = line[: width - 3] + "..."
    return line


def render_tree_as_markdown(
    state: DocumentState,
    *,
    node_id: str | None = None,
    max_depth: int | None = None,
    width: int = 60,
) -> str:
    """Render a node and its descendants as an indented bullet list.

    Args:
        state: Document to render.
        node_id: Start node (None = every root).
        max_depth: Max levels below the start node to include (None = unlimited).
        width: Truncate node text to this many characters (0 = no limit).

    Returns:
        Markdown string. The current node is marked ``*``, unread nodes
        ``(new)`` and bookmarked nodes ``[b]``.
    """
    start = [node_id] if node_id is not None else roots(state)
    if node_id is not None:
        get_node(state, node_id)

    out = io.StringIO()
    todo: list[tuple[str, int]] = [(i, 0) for i in reversed(start)]
    while todo:
        current_id, depth = todo.pop()
        node = state.nodes[current_id]
        indent = "    " * depth

        marks = ""
        if current_id == state.current:
            marks += "* "
        if node.bookmarked:
            marks += "[b] "
        if node.color:
            marks += f"({node.color}) "
        suffix = " (new)" if node.unread else ""
        out.write(f"{indent}- {marks}{_label(node.text, width)}{suffix}  `{current_id[:8]}`\n")

        kids = children(state, current_id)
        if not kids:
            continue
        if node.collapsed or (max_depth is not None and depth >= max_depth):
            noun = "child" if len(kids) == 1 else "children"
            out.write(f"{indent}    - ... ({len(kids)} more {noun})\n")
            continue
        todo.extend((k, depth + 1) for k in reversed(kids))

    return out.getvalue()
