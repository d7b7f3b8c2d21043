"""Domain models for loom documents."""

from dataclasses import dataclass, field
from typing import Literal

SearchResultState = Literal["result", "ancestor", "none"] | None

Color = Literal["red", "orange", "yellow", "green", "blue", "purple"] | None

COLORS: tuple[str, ...] = ("red", "orange", "yellow", "green", "blue", "purple")


@dataclass
class Node:
    """A single text segment in a document tree.

    ``parent_id`` is a lookup-only back-reference; ownership flows from the
    roots down, and a node only goes away through an explicit delete.
    """

    text: str
    parent_id: str | None
    collapsed: bool = False
    unread: bool = False
    bookmarked: bool = False
    last_visited: int | None = None
    search_result_state: SearchResultState = None
    color: Color = None


@dataclass
class DocumentState:
    """Per-document tree, active node, hoist stack and generation lock."""

    current: str
    nodes: dict[str, Node]
    hoisted: list[str] = field(default_factory=list)
    search_term: str = ""
    generating: str | None = None


@dataclass(frozen=True)
class BreakPoint:
    """Where a cursor falls in the active path.

    ``kind`` is ``"sibling"`` when the cursor sits at the start of
    ``node_id``, ``"child"`` when it sits at the end of the current node, and
    ``"split"`` when ``node_id`` was split and ``new_id`` holds the text after
    the cursor.
    """

    kind: Literal["sibling", "child", "split"]
    node_id: str
    new_id: str | None = None


@dataclass(frozen=True)
class DeleteResult:
    """Outcome of a delete command.

    ``fallback`` is the node that replaced a deleted ``current``, if any.
    """

    deleted: frozenset[str]
    rejected: tuple[str, ...] = ()
    fallback: str | None = None


@dataclass(frozen=True)
class SwitchResult:
    """Text materialized by a switch, and whether text before the cursor moved."""

    node_id: str
    text: str
    prefix_changed: bool
