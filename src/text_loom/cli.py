"""CLI for text-loom: branch a text file and grow it with model completions."""

import asyncio
import json
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated, Any

import typer
from loguru import logger

from text_loom.buffer import FileBuffer, offset_to_cursor
from text_loom.config import resolve_state_file
from text_loom.core.completion.dispatcher import GenerationOutcome
from text_loom.core.tree.markdown import render_tree_as_markdown
from text_loom.exceptions import LoomError, NodeNotFound
from text_loom.logging_config import configure_logging
from text_loom.models.node import COLORS, DeleteResult
from text_loom.models.settings import PROVIDERS, ModelPreset, settings_to_data
from text_loom.session import DocumentSession, Loom
from text_loom.store import StateStore

app = typer.Typer(help="Loom: explore branching continuations of a text file.")

_state_file: Path | None = None


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    state: Annotated[
        Path | None,
        typer.Option("--state", "-s", help="State file (settings and trees)"),
    ] = None,
) -> None:
    global _state_file
    configure_logging(verbose=verbose)
    _state_file = state


def _loom() -> Loom:
    return Loom(StateStore(_state_file or resolve_state_file()))


def _document_key(file: Path) -> str:
    return str(file.expanduser().resolve())


def _open(file: Path, offset: int | None = None) -> DocumentSession:
    """Open a document, folding any edits made to the file since last time."""
    buffer = FileBuffer(file)
    if offset is not None:
        buffer.set_cursor(offset_to_cursor(buffer.get_value(), offset))
    session = _loom().open(_document_key(file), buffer)
    session.sync()
    return session


def _resolve_node(session: DocumentSession, node: str | None) -> str:
    """Accept a full node id or any unique prefix of one; None means the current node."""
    if node is None:
        return session.state.current
    if node in session.state.nodes:
        return node
    matches = [i for i in session.state.nodes if i.startswith(node)]
    if len(matches) != 1:
        raise NodeNotFound(node)
    return matches[0]


@contextmanager
def _errors() -> Iterator[None]:
    """Turn loom errors into an error message and exit code 1."""
    try:
        yield
    except (LoomError, OSError, ValueError) as e:
        logger.error(str(e))
        raise typer.Exit(1) from e


def _parse_value(value: str) -> Any:
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


FileArg = Annotated[Path, typer.Argument(help="Text file holding the document")]
NodeOpt = Annotated[
    str | None, typer.Option("--node", "-n", help="Node id or id prefix (default: current)")
]
OffsetOpt = Annotated[
    int | None, typer.Option("--offset", "-o", help="Cursor offset (default: end of file)")
]


@app.command()
def show(
    file: FileArg,
    node: NodeOpt = None,
    max_depth: Annotated[
        int | None,
        typer.Option("--max-depth", "-m", help="Max depth levels to render"),
    ] = None,
) -> None:
    """Show the document tree (or the hoisted subtree) as markdown."""
    with _errors():
        session = _open(file)
        start = session.state.hoisted[-1] if session.state.hoisted else None
        if node is not None:
            start = _resolve_node(session, node)
        typer.echo(
            render_tree_as_markdown(session.state, node_id=start, max_depth=max_depth),
            nl=False,
        )


@app.command()
def text(file: FileArg, node: NodeOpt = None) -> None:
    """Print the full text of a node."""
    with _errors():
        session = _open(file)
        typer.echo(session.full_text(_resolve_node(session, node)))


@app.command()
def sync(file: FileArg) -> None:
    """Fold edits made to the file into the tree."""
    with _errors():
        session = _open(file)
        typer.echo(f"current={session.state.current}")


# --- Structure ---


@app.command()
def switch(file: FileArg, node: Annotated[str, typer.Argument(help="Node id or prefix")]) -> None:
    """Switch to a node and write its full text to the file."""
    with _errors():
        session = _open(file)
        session.switch_to(_resolve_node(session, node))


@app.command()
def parent(file: FileArg) -> None:
    """Switch to the parent of the current node."""
    with _errors():
        if _open(file).switch_to_parent() is None:
            typer.echo("Already at a root.")


@app.command()
def child(file: FileArg) -> None:
    """Switch to the most recently visited child."""
    with _errors():
        if _open(file).switch_to_child() is None:
            typer.echo("No children.")


@app.command(name="next")
def next_cmd(file: FileArg) -> None:
    """Switch to the next sibling."""
    with _errors():
        if _open(file).switch_to_next_sibling() is None:
            typer.echo("No siblings.")


@app.command()
def prev(file: FileArg) -> None:
    """Switch to the previous sibling."""
    with _errors():
        if _open(file).switch_to_prev_sibling() is None:
            typer.echo("No siblings.")


@app.command(name="create-child")
def create_child(file: FileArg, node: NodeOpt = None) -> None:
    """Create an empty child and switch to it."""
    with _errors():
        session = _open(file)
        typer.echo(session.create_child(_resolve_node(session, node)))


@app.command(name="create-sibling")
def create_sibling(file: FileArg, node: NodeOpt = None) -> None:
    """Create an empty sibling and switch to it."""
    with _errors():
        session = _open(file)
        typer.echo(session.create_sibling(_resolve_node(session, node)))


@app.command()
def clone(file: FileArg, node: NodeOpt = None) -> None:
    """Copy a node beside itself and switch to the copy."""
    with _errors():
        session = _open(file)
        typer.echo(session.clone(_resolve_node(session, node)))


@app.command()
def split(file: FileArg, offset: OffsetOpt = None) -> None:
    """Break the tree at the cursor and start an empty branch there."""
    with _errors():
        typer.echo(_open(file, offset).split_at_point())


@app.command()
def merge(file: FileArg, node: NodeOpt = None) -> None:
    """Merge a node into its parent."""
    with _errors():
        session = _open(file)
        typer.echo(session.merge_with_parent(_resolve_node(session, node)))


def _report_delete(result: DeleteResult) -> None:
    typer.echo(f"Deleted {len(result.deleted)} nodes")
    for node_id in result.rejected:
        typer.echo(f"  kept last root {node_id}")


@app.command()
def delete(
    file: FileArg,
    nodes: Annotated[list[str], typer.Argument(help="Node ids or prefixes")],
) -> None:
    """Delete nodes and everything below them."""
    with _errors():
        session = _open(file)
        ids = [_resolve_node(session, n) for n in nodes]
        _report_delete(session.delete(ids))


@app.command(name="clear-children")
def clear_children(file: FileArg, node: NodeOpt = None) -> None:
    """Delete every child of a node."""
    with _errors():
        session = _open(file)
        _report_delete(session.clear_children(_resolve_node(session, node)))


@app.command(name="clear-siblings")
def clear_siblings(file: FileArg, node: NodeOpt = None) -> None:
    """Delete every sibling of a node."""
    with _errors():
        session = _open(file)
        _report_delete(session.clear_siblings(_resolve_node(session, node)))


# --- View state ---


@app.command()
def collapse(file: FileArg, node: Annotated[str, typer.Argument(help="Node id or prefix")]) -> None:
    """Toggle whether a node's children are shown."""
    with _errors():
        session = _open(file)
        collapsed = session.toggle_collapse(_resolve_node(session, node))
        typer.echo("collapsed" if collapsed else "expanded")


@app.command()
def bookmark(file: FileArg, node: NodeOpt = None) -> None:
    """Toggle a bookmark on a node."""
    with _errors():
        session = _open(file)
        bookmarked = session.toggle_bookmark(_resolve_node(session, node))
        typer.echo("bookmarked" if bookmarked else "unbookmarked")


@app.command()
def color(
    file: FileArg,
    node: Annotated[str, typer.Argument(help="Node id or prefix")],
    value: Annotated[str, typer.Argument(help=f"One of {', '.join(COLORS)}, or 'none'")],
) -> None:
    """Set or clear a node's color."""
    with _errors():
        session = _open(file)
        color_value: Any = None if value == "none" else value
        session.set_color(_resolve_node(session, node), color_value)


@app.command()
def hoist(file: FileArg, node: Annotated[str, typer.Argument(help="Node id or prefix")]) -> None:
    """Scope the tree view to a node."""
    with _errors():
        session = _open(file)
        session.hoist(_resolve_node(session, node))


@app.command()
def unhoist(file: FileArg) -> None:
    """Undo the last hoist."""
    with _errors():
        if _open(file).unhoist() is None:
            typer.echo("Nothing hoisted.")


@app.command()
def search(
    file: FileArg,
    term: Annotated[str, typer.Argument(help="Substring to look for")] = "",
) -> None:
    """Mark nodes matching a term; an empty term clears the marks."""
    with _errors():
        session = _open(file)
        matches = session.search(term)
        if term:
            typer.echo(f"Found {len(matches)} results:\n")
        for node_id in matches:
            typer.echo(f"  {session.state.nodes[node_id].text[:80]!r}")
            typer.echo(f"    id={node_id}")


# --- Generation ---


def _report_outcome(outcome: GenerationOutcome) -> None:
    if outcome.status == "attached":
        typer.echo(f"Generated {len(outcome.child_ids)} completions")
        for node_id in outcome.child_ids:
            typer.echo(f"  {node_id}")
    elif outcome.status == "failed":
        raise typer.Exit(1)
    else:
        typer.echo(f"Generation {outcome.status}")


@app.command()
def complete(file: FileArg, offset: OffsetOpt = None) -> None:
    """Generate continuations of the text before the cursor."""
    with _errors():
        outcome = asyncio.run(_open(file, offset).complete())
    _report_outcome(outcome)


@app.command(name="generate-siblings")
def generate_siblings(file: FileArg, node: NodeOpt = None) -> None:
    """Generate alternatives to a node."""
    with _errors():
        session = _open(file)
        outcome = asyncio.run(session.generate_siblings(_resolve_node(session, node)))
    _report_outcome(outcome)


@app.command()
def passages(
    file: FileArg,
    names: Annotated[list[str], typer.Argument(help="Passage files (relative to passageFolder)")],
    separator: Annotated[
        str | None, typer.Option("--separator", help="Text between passages")
    ] = None,
    frontmatter: Annotated[
        str | None,
        typer.Option("--frontmatter", help="Text before each passage (%n, %r: passage number)"),
    ] = None,
) -> None:
    """Make a new root from passage files."""
    with _errors():
        session = _open(file)
        typer.echo(
            session.make_prompt_from_passages(names, separator=separator, frontmatter=frontmatter)
        )


# --- State ---


@app.command(name="import")
def import_cmd(
    file: FileArg,
    source: Annotated[Path, typer.Argument(help="JSON file written by 'export'")],
) -> None:
    """Replace a document's tree with an exported one."""
    with _errors():
        _open(file).import_state(source)


@app.command()
def export(
    file: FileArg,
    dest: Annotated[Path, typer.Argument(help="JSON file to write")],
) -> None:
    """Write a document's tree to a JSON file."""
    with _errors():
        _open(file).export_state(dest)


@app.command()
def rename(
    old: Annotated[Path, typer.Argument(help="Previous path of the document")],
    new: Annotated[Path, typer.Argument(help="New path of the document")],
) -> None:
    """Move a document's tree to its new path."""
    with _errors():
        _loom().rename_document(_document_key(old), _document_key(new))


@app.command()
def forget(file: FileArg) -> None:
    """Drop the tree of a document."""
    with _errors():
        _loom().forget_document(_document_key(file))


@app.command()
def reset() -> None:
    """Clear the trees of every document (settings are kept)."""
    with _errors():
        _loom().reset()


# --- Settings ---


@app.command()
def settings() -> None:
    """Print the current settings as JSON."""
    data = settings_to_data(_loom().settings)
    for preset in data["modelPresets"]:
        if preset.get("apiKey"):
            preset["apiKey"] = "***"
    typer.echo(json.dumps(data, indent=2))


@app.command(name="set")
def set_cmd(
    name: Annotated[str, typer.Argument(help="Setting name, e.g. maxTokens")],
    value: Annotated[str, typer.Argument(help="New value (JSON, or a bare string)")],
) -> None:
    """Change one setting."""
    with _errors():
        _loom().set_setting(name, _parse_value(value))


@app.command(name="add-preset")
def add_preset(
    name: Annotated[str, typer.Argument(help="Preset name")],
    provider: Annotated[
        str, typer.Option("--provider", "-p", help=f"One of {', '.join(PROVIDERS)}")
    ],
    model: Annotated[str, typer.Option("--model", "-m", help="Model (or Azure deployment) name")],
    context_length: Annotated[int, typer.Option("--context-length", "-c")] = 2048,
    api_key: Annotated[str, typer.Option("--api-key", "-k")] = "",
    url: Annotated[str, typer.Option("--url", help="Endpoint for ocp, azure and anthropic")] = "",
    organization: Annotated[str, typer.Option("--organization")] = "",
    select: bool = typer.Option(True, "--select/--no-select", help="Select the new preset"),
) -> None:
    """Add a model preset."""
    with _errors():
        if provider not in PROVIDERS:
            msg = f"Invalid provider: {provider}"
            raise ValueError(msg)
        loom = _loom()
        preset = ModelPreset(
            name=name,
            provider=provider,
            model=model,
            context_length=context_length,
            api_key=api_key,
            organization=organization,
            url=url,
        )
        presets = [*loom.settings.model_presets, preset]
        loom.set_setting("modelPresets", presets)
        if select:
            loom.set_setting("modelPreset", len(presets) - 1)


@app.command()
def serve() -> None:
    """Start the MCP server (stdio transport)."""
    from text_loom.mcp.server import run_mcp_server

    run_mcp_server()
