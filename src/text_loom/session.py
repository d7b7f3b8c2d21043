"""Command surface over loom documents.

A ``Loom`` owns the settings and the state of every document, and persists
them through a ``StateStore``. A ``DocumentSession`` binds one document's
state to the host buffer showing it and runs commands against both: each
command either fully succeeds or raises before changing anything, and the
state is saved once it returns.
"""

import json
from collections.abc import Callable, Sequence
from functools import wraps
from pathlib import Path
from typing import Any, ParamSpec, TypeVar

from loguru import logger

from text_loom.api import ApiCallLog, RestClient
from text_loom.buffer import cursor_to_offset, end_cursor
from text_loom.core.completion.dispatcher import GenerationOutcome, generate
from text_loom.core.completion.passages import join_passages
from text_loom.core.completion.providers import Provider
from text_loom.core.importer.json_reader import dump_document_state, parse_document_state
from text_loom.core.search.searcher import search
from text_loom.core.tree import mutations
from text_loom.core.tree.navigation import (
    full_text,
    get_node,
    last_visited_child,
    next_sibling,
    prev_sibling,
    switch_to,
)
from text_loom.core.tree.reconcile import reconcile_buffer
from text_loom.models.node import BreakPoint, Color, DeleteResult, DocumentState, SwitchResult
from text_loom.models.settings import LoomSettings, with_setting
from text_loom.protocols import BufferProtocol
from text_loom.store import StateStore

P = ParamSpec("P")
R = TypeVar("R")


class Loom:
    """Settings plus the state of every document, keyed by document path."""

    def __init__(
        self,
        store: StateStore | None = None,
        *,
        providers: dict[str, Provider] | None = None,
        rest: RestClient | None = None,
        call_log: ApiCallLog | None = None,
    ) -> None:
        self.store = store
        self.providers = providers
        self._rest = rest
        self.call_log = call_log or ApiCallLog()
        if store is not None:
            self.settings, self.documents = store.load()
        else:
            self.settings, self.documents = LoomSettings(), {}

    @property
    def rest(self) -> RestClient:
        """One HTTP session shared by every generation."""
        if self._rest is None:
            self._rest = RestClient()
        return self._rest

    def save(self) -> bool:
        if self.store is None:
            return False
        return self.store.save(self.settings, self.documents)

    def open(self, key: str, buffer: BufferProtocol) -> "DocumentSession":
        return DocumentSession(self, key, buffer)

    def set_setting(self, name: str, value: Any) -> LoomSettings:
        self.settings = with_setting(self.settings, name, value)
        self.save()
        return self.settings

    def rename_document(self, old_key: str, new_key: str) -> None:
        """Follow a document that moved on disk."""
        if old_key in self.documents:
            self.documents[new_key] = self.documents.pop(old_key)
        if self.store is not None:
            self.store.forget(old_key)
        self.save()

    def forget_document(self, key: str) -> None:
        """Drop the state of a document that was deleted."""
        self.documents.pop(key, None)
        if self.store is not None:
            self.store.forget(key)
        self.save()

    def reset(self) -> None:
        """Clear the state of every document; settings are kept."""
        logger.info(f"Resetting state of {len(self.documents)} documents")
        self.documents.clear()
        self.save()


def _command(func: Callable[P, R]) -> Callable[P, R]:
    """Persist document state and the buffer after a command succeeds."""

    @wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        result = func(*args, **kwargs)
        args[0]._commit()  # type: ignore[attr-defined]
        return result

    return wrapper


class DocumentSession:
    """One document's tree, mirrored into a host buffer."""

    def __init__(self, loom: Loom, key: str, buffer: BufferProtocol) -> None:
        self.loom = loom
        self.key = key
        self.buffer = buffer
        if key not in loom.documents:
            logger.debug(f"Initializing state for {key!r}")
            loom.documents[key] = mutations.new_document(buffer.get_value())
            self._commit()

    @property
    def state(self) -> DocumentState:
        return self.loom.documents[self.key]

    @property
    def settings(self) -> LoomSettings:
        return self.loom.settings

    def _commit(self) -> None:
        self.loom.save()
        flush = getattr(self.buffer, "flush", None)
        if flush is not None:
            flush()

    def _offset(self) -> int:
        return cursor_to_offset(self.buffer, self.buffer.get_cursor())

    def _show(self, node_id: str) -> SwitchResult:
        """Switch to a node and materialize it in the buffer.

        The cursor stays put when the text before it is unchanged, and moves
        to the end of the buffer otherwise.
        """
        cursor = self.buffer.get_cursor()
        result = switch_to(
            self.state, node_id, buffer_text=self.buffer.get_value(), offset=self._offset()
        )
        self.buffer.set_value(result.text)
        self.buffer.set_cursor(end_cursor(result.text) if result.prefix_changed else cursor)
        return result

    # --- Buffer sync ---

    @_command
    def sync(self) -> str | None:
        """Fold the buffer's current contents into the tree.

        Returns:
            The node switched to when the edit had to branch, else None.
        """
        new_id = reconcile_buffer(
            self.state,
            self.buffer.get_value(),
            clone_on_edit=self.settings.clone_parent_on_edit,
        )
        if new_id is not None:
            self._show(new_id)
        return new_id

    # --- Structure ---

    @_command
    def switch_to(self, node_id: str) -> SwitchResult:
        return self._show(node_id)

    @_command
    def create_child(self, node_id: str | None = None) -> str:
        new_id = mutations.create_child(self.state, node_id or self.state.current)
        self._show(new_id)
        return new_id

    @_command
    def create_sibling(self, node_id: str | None = None) -> str:
        new_id = mutations.create_sibling(self.state, node_id or self.state.current)
        self._show(new_id)
        return new_id

    @_command
    def clone(self, node_id: str | None = None) -> str:
        new_id = mutations.clone(self.state, node_id or self.state.current)
        self._show(new_id)
        return new_id

    @_command
    def split_at_point(self) -> str:
        """Break the tree at the cursor and start an empty branch there."""
        point = mutations.break_at_point(self.state, self._offset())
        new_id = self._branch_at(point)
        self._show(new_id)
        return new_id

    def _branch_at(self, point: BreakPoint) -> str:
        if point.kind == "sibling":
            return mutations.create_sibling(self.state, point.node_id)
        return mutations.create_child(self.state, point.node_id)

    @_command
    def merge_with_parent(self, node_id: str | None = None) -> str:
        parent_id = mutations.merge_with_parent(self.state, node_id or self.state.current)
        self._show(parent_id)
        return parent_id

    @_command
    def delete(self, node_ids: Sequence[str]) -> DeleteResult:
        result = mutations.delete(self.state, list(node_ids))
        if result.fallback is not None:
            self._show(result.fallback)
        return result

    @_command
    def clear_children(self, node_id: str | None = None) -> DeleteResult:
        result = mutations.clear_children(self.state, node_id or self.state.current)
        if result.fallback is not None:
            self._show(result.fallback)
        return result

    @_command
    def clear_siblings(self, node_id: str | None = None) -> DeleteResult:
        result = mutations.clear_siblings(self.state, node_id or self.state.current)
        if result.fallback is not None:
            self._show(result.fallback)
        return result

    # --- Navigation ---

    def _follow(self, target: str | None) -> SwitchResult | None:
        if target is None:
            return None
        return self._show(target)

    @_command
    def switch_to_parent(self) -> SwitchResult | None:
        return self._follow(get_node(self.state, self.state.current).parent_id)

    @_command
    def switch_to_child(self) -> SwitchResult | None:
        return self._follow(last_visited_child(self.state, self.state.current))

    @_command
    def switch_to_next_sibling(self) -> SwitchResult | None:
        return self._follow(next_sibling(self.state, self.state.current))

    @_command
    def switch_to_prev_sibling(self) -> SwitchResult | None:
        return self._follow(prev_sibling(self.state, self.state.current))

    # --- View state ---

    @_command
    def toggle_collapse(self, node_id: str) -> bool:
        return mutations.toggle_collapse(self.state, node_id)

    @_command
    def toggle_bookmark(self, node_id: str | None = None) -> bool:
        return mutations.toggle_bookmark(self.state, node_id or self.state.current)

    @_command
    def set_color(self, node_id: str, color: Color) -> None:
        mutations.set_color(self.state, node_id, color)

    @_command
    def hoist(self, node_id: str) -> None:
        mutations.hoist(self.state, node_id)

    @_command
    def unhoist(self) -> str | None:
        return mutations.unhoist(self.state)

    @_command
    def search(self, term: str) -> list[str]:
        return search(self.state, term)

    # --- Import / export ---

    def export_state(self, path: str | Path) -> None:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(dump_document_state(self.state), f, indent=2)

    @_command
    def import_state(self, path: str | Path) -> SwitchResult:
        """Replace this document's tree with one exported earlier."""
        with open(path, encoding="utf-8") as f:
            state = parse_document_state(json.load(f))
        state.generating = None
        self.loom.documents[self.key] = state
        return self._show(state.current)

    @_command
    def make_prompt_from_passages(
        self,
        passages: Sequence[str | Path],
        *,
        separator: str | None = None,
        frontmatter: str | None = None,
    ) -> str:
        """Join passage files into a new root and switch to it.

        Relative names are looked up in the passage folder; a missing
        ``.md`` suffix is added.
        """
        folder = Path(self.settings.passage_folder or ".")
        texts = []
        for passage in passages:
            path = Path(passage)
            if not path.is_absolute():
                path = folder / path
            if not path.exists() and path.suffix != ".md":
                path = path.with_name(path.name + ".md")
            texts.append(path.read_text(encoding="utf-8"))

        if separator is None:
            separator = self.settings.default_passage_separator
        if frontmatter is None:
            frontmatter = self.settings.default_passage_frontmatter
        text = join_passages(texts, separator=separator, frontmatter=frontmatter)
        new_id = mutations.add_node(self.state, text, None)
        self._show(new_id)
        return new_id

    # --- Generation ---

    async def _generate(self, root_id: str) -> GenerationOutcome:
        # Bound before the await so a concurrent reset or import cannot
        # redirect the results into a different tree.
        state = self.state
        outcome = await generate(
            state,
            root_id,
            self.settings,
            providers=self.loom.providers,
            rest=self.loom.rest,
            call_log=self.loom.call_log,
        )
        if self.loom.documents.get(self.key) is not state:
            logger.debug("Document state was replaced during generation, dropping results")
            return GenerationOutcome(status="discarded", root_id=root_id)
        if outcome.focus is not None:
            self._show(outcome.focus)
        self._commit()
        return outcome

    async def complete(self) -> GenerationOutcome:
        """Generate continuations of the text before the cursor."""
        if self.state.generating is not None:
            logger.warning("A generation is already running for this document")
            return GenerationOutcome(status="rejected", root_id=self.state.current)
        mutations.break_at_point(self.state, self._offset())
        self._show(self.state.current)
        # Other commands may sync the host file while the request is out.
        self._commit()
        return await self._generate(self.state.current)

    async def generate_siblings(self, node_id: str | None = None) -> GenerationOutcome:
        """Generate alternatives to a node, as new children of its parent."""
        node = get_node(self.state, node_id or self.state.current)
        if node.parent_id is None:
            logger.warning("Can't generate siblings of a root node")
            return GenerationOutcome(status="rejected", root_id=node_id or self.state.current)
        return await self._generate(node.parent_id)

    def full_text(self, node_id: str | None = None) -> str:
        return full_text(self.state, node_id or self.state.current)

