"""MCP server exposing loom navigation, editing and generation tools."""

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from loguru import logger
from mcp.server.fastmcp import Context, FastMCP

from text_loom.buffer import FileBuffer, offset_to_cursor
from text_loom.config import STATE_ENV_VAR, resolve_state_file
from text_loom.core.tree.markdown import render_tree_as_markdown
from text_loom.core.tree.navigation import children, family
from text_loom.exceptions import LoomError
from text_loom.models.node import DocumentState
from text_loom.session import DocumentSession, Loom
from text_loom.store import StateStore


def _open(loom: Loom, document: str, offset: int | None = None) -> DocumentSession:
    path = Path(document).expanduser()
    buffer = FileBuffer(path)
    if offset is not None:
        buffer.set_cursor(offset_to_cursor(buffer.get_value(), offset))
    session = loom.open(str(path.resolve()), buffer)
    session.sync()
    return session


def _node_entry(state: DocumentState, node_id: str, width: int = 120) -> dict[str, Any]:
    node = state.nodes[node_id]
    return {
        "id": node_id,
        "text": node.text[:width] if width else node.text,
        "unread": node.unread,
        "bookmarked": node.bookmarked,
        "child_count": len(children(state, node_id)),
    }


def _guarded(func: Callable[[], dict[str, Any]]) -> dict[str, Any]:
    try:
        return func()
    except (LoomError, OSError, ValueError) as e:
        return {"error": str(e)}


# --- Core functions (testable without MCP context) ---


def loom_show(
    loom: Loom,
    *,
    document: str,
    node_id: str | None = None,
    max_depth: int | None = None,
) -> dict[str, Any]:
    """Render a document's tree as markdown.

    Args:
        document: Path of the text file holding the document.
        node_id: Start node (None = whole tree).
        max_depth: Max depth levels to include (None = unlimited).
    """

    def run() -> dict[str, Any]:
        session = _open(loom, document)
        md = render_tree_as_markdown(
            session.state, node_id=node_id, max_depth=max_depth, width=0
        )
        return {
            "content": md,
            "current": session.state.current,
            "node_count": len(session.state.nodes),
        }

    return _guarded(run)


def loom_get_node(loom: Loom, *, document: str, node_id: str | None = None) -> dict[str, Any]:
    """Get a node with its full text, ancestors, siblings and children.

    Args:
        document: Path of the text file holding the document.
        node_id: Node ID (None = current node).
    """

    def run() -> dict[str, Any]:
        session = _open(loom, document)
        state = session.state
        target = node_id or state.current
        path = family(state, target)
        parent_id = state.nodes[target].parent_id
        return {
            "node": _node_entry(state, target, width=0),
            "full_text": session.full_text(target),
            "ancestors": [_node_entry(state, i, width=40) for i in path[:-1]],
            "siblings": [
                _node_entry(state, i, width=80)
                for i in children(state, parent_id)
                if i != target
            ],
            "children": [_node_entry(state, i, width=80) for i in children(state, target)],
            "is_current": target == state.current,
        }

    return _guarded(run)


def loom_switch(loom: Loom, *, document: str, node_id: str) -> dict[str, Any]:
    """Switch to a node; its full text is written to the document.

    Args:
        document: Path of the text file holding the document.
        node_id: Node to switch to.
    """

    def run() -> dict[str, Any]:
        result = _open(loom, document).switch_to(node_id)
        return {"current": result.node_id, "text": result.text}

    return _guarded(run)


def loom_edit(
    loom: Loom, *, document: str, action: str, node_id: str | None = None
) -> dict[str, Any]:
    """Apply a structural edit.

    Args:
        document: Path of the text file holding the document.
        action: One of "create_child", "create_sibling", "clone",
            "merge_with_parent", "delete", "clear_children", "clear_siblings",
            "toggle_bookmark", "toggle_collapse", "hoist", "unhoist".
        node_id: Target node (None = current node).
    """

    def run() -> dict[str, Any]:
        session = _open(loom, document)
        target = node_id or session.state.current
        result: Any
        if action in ("create_child", "create_sibling", "clone", "merge_with_parent"):
            result = getattr(session, action)(target)
        elif action == "delete":
            result = sorted(session.delete([target]).deleted)
        elif action in ("clear_children", "clear_siblings"):
            result = sorted(getattr(session, action)(target).deleted)
        elif action in ("toggle_bookmark", "toggle_collapse", "hoist"):
            result = getattr(session, action)(target)
        elif action == "unhoist":
            result = session.unhoist()
        else:
            return {"error": f"Unknown action '{action}'."}
        return {"result": result, "current": session.state.current}

    return _guarded(run)


def loom_navigate(loom: Loom, *, document: str, direction: str) -> dict[str, Any]:
    """Move to the parent, last visited child, or next/previous sibling.

    Args:
        document: Path of the text file holding the document.
        direction: "parent", "child", "next" or "prev".
    """

    def run() -> dict[str, Any]:
        session = _open(loom, document)
        moves = {
            "parent": session.switch_to_parent,
            "child": session.switch_to_child,
            "next": session.switch_to_next_sibling,
            "prev": session.switch_to_prev_sibling,
        }
        if direction not in moves:
            return {"error": f"Unknown direction '{direction}'."}
        result = moves[direction]()
        return {"moved": result is not None, "current": session.state.current}

    return _guarded(run)


def loom_search(loom: Loom, *, document: str, term: str) -> dict[str, Any]:
    """Mark nodes whose text contains a term (case-insensitive).

    Args:
        document: Path of the text file holding the document.
        term: Substring to look for; empty clears the marks.
    """

    def run() -> dict[str, Any]:
        session = _open(loom, document)
        matches = session.search(term)
        return {
            "results": [_node_entry(session.state, i) for i in matches],
            "count": len(matches),
        }

    return _guarded(run)


def loom_set_setting(loom: Loom, *, name: str, value: Any) -> dict[str, Any]:
    """Change one setting, e.g. maxTokens or temperature.

    Args:
        name: Setting name.
        value: New value.
    """

    def run() -> dict[str, Any]:
        loom.set_setting(name, value)
        return {"ok": True}

    return _guarded(run)


async def loom_generate(
    loom: Loom,
    *,
    document: str,
    offset: int | None = None,
    siblings: bool = False,
) -> dict[str, Any]:
    """Generate completions with the selected model preset.

    Args:
        document: Path of the text file holding the document.
        offset: Cursor offset to complete at (None = end of document).
        siblings: Generate alternatives to the current node instead.
    """
    try:
        session = _open(loom, document, offset)
        if siblings:
            outcome = await session.generate_siblings()
        else:
            outcome = await session.complete()
    except (LoomError, OSError, ValueError) as e:
        return {"error": str(e)}

    output: dict[str, Any] = {
        "status": outcome.status,
        "root_id": outcome.root_id,
        "children": [_node_entry(session.state, i, width=0) for i in outcome.child_ids],
        "current": session.state.current,
    }
    if outcome.notice:
        output["error"] = outcome.notice
    return output


# --- MCP Server Setup ---


@dataclass
class ServerContext:
    """Shared resources for the MCP server lifetime."""

    loom: Loom


@asynccontextmanager
async def server_lifespan(_server: FastMCP) -> AsyncIterator[ServerContext]:
    """Load settings and trees on startup."""
    state_file = resolve_state_file()
    logger.debug(f"Using state file {str(state_file)!r} (override with {STATE_ENV_VAR})")
    yield ServerContext(loom=Loom(StateStore(state_file)))


mcp_server = FastMCP(
    "text-loom",
    instructions="""\
A loom keeps a tree of alternative continuations for a text file. The file
always holds the full text of the current node: the concatenation of every
node on the path from a root down to it.

## Typical flow

1. loom_show_tool to see the tree; the current node is marked with *.
2. loom_generate_tool to add model continuations below the current node.
3. loom_get_node_tool to read a candidate, loom_switch_tool to adopt it.

Node ids may be abbreviated in loom_show_tool output; pass full ids from
loom_get_node_tool to the other tools.
""",
    lifespan=server_lifespan,
)


def _loom(mcp_ctx: Context) -> Loom:
    return mcp_ctx.request_context.lifespan_context.loom  # type: ignore[no-any-return]


# --- MCP Tool Wrappers ---


@mcp_server.tool()
async def loom_show_tool(
    ctx: Context,
    document: str,
    node_id: str | None = None,
    max_depth: int | None = None,
) -> dict[str, Any]:
    """Render a document's loom tree as markdown.

    Args:
        document: Path of the text file holding the document.
        node_id: Start node (None = whole tree).
        max_depth: Max depth levels (None = unlimited).
    """
    return loom_show(_loom(ctx), document=document, node_id=node_id, max_depth=max_depth)


@mcp_server.tool()
async def loom_get_node_tool(
    ctx: Context, document: str, node_id: str | None = None
) -> dict[str, Any]:
    """Get a node's full text with its ancestors, siblings and children.

    Args:
        document: Path of the text file holding the document.
        node_id: Node ID (None = current node).
    """
    return loom_get_node(_loom(ctx), document=document, node_id=node_id)


@mcp_server.tool()
async def loom_switch_tool(ctx: Context, document: str, node_id: str) -> dict[str, Any]:
    """Make a node current and write its full text to the document.

    Args:
        document: Path of the text file holding the document.
        node_id: Node to switch to.
    """
    return loom_switch(_loom(ctx), document=document, node_id=node_id)


@mcp_server.tool()
async def loom_navigate_tool(ctx: Context, document: str, direction: str) -> dict[str, Any]:
    """Move to the parent, last visited child, or next/previous sibling.

    Args:
        document: Path of the text file holding the document.
        direction: "parent", "child", "next" or "prev".
    """
    return loom_navigate(_loom(ctx), document=document, direction=direction)


@mcp_server.tool()
async def loom_edit_tool(
    ctx: Context,
    document: str,
    action: str,
    node_id: str | None = None,
) -> dict[str, Any]:
    """Apply a structural edit to the tree.

    Args:
        document: Path of the text file holding the document.
        action: "create_child", "create_sibling", "clone", "merge_with_parent",
            "delete", "clear_children", "clear_siblings", "toggle_bookmark",
            "toggle_collapse", "hoist" or "unhoist".
        node_id: Target node (None = current node).
    """
    return loom_edit(_loom(ctx), document=document, action=action, node_id=node_id)


@mcp_server.tool()
async def loom_search_tool(ctx: Context, document: str, term: str) -> dict[str, Any]:
    """Find nodes whose text contains a term (case-insensitive).

    Args:
        document: Path of the text file holding the document.
        term: Substring to look for; empty clears the marks.
    """
    return loom_search(_loom(ctx), document=document, term=term)


@mcp_server.tool()
async def loom_generate_tool(
    ctx: Context,
    document: str,
    offset: int | None = None,
    siblings: bool = False,
) -> dict[str, Any]:
    """Generate continuations with the selected model preset.

    New nodes are unread children of the node being continued. Use
    loom_get_node_tool on them to read the results.

    Args:
        document: Path of the text file holding the document.
        offset: Cursor offset to complete at (None = end of document).
        siblings: Generate alternatives to the current node instead.
    """
    return await loom_generate(_loom(ctx), document=document, offset=offset, siblings=siblings)


@mcp_server.tool()
async def loom_set_setting_tool(ctx: Context, name: str, value: Any) -> dict[str, Any]:
    """Change one setting, e.g. maxTokens, temperature, n or modelPreset.

    Args:
        name: Setting name.
        value: New value.
    """
    return loom_set_setting(_loom(ctx), name=name, value=value)


def run_mcp_server() -> None:
    """Run the MCP server with stdio transport."""
    from text_loom.logging_config import configure_logging

    configure_logging(verbose=False)
    mcp_server.run(transport="stdio")
