"""Reconcile the host buffer against the active path.

The buffer carries no node ids, so the only way to tell which node the user
edited is to compare the buffer text against the cumulative texts of the
active path. ``reconcile`` does that comparison as a pure function of the
path segments and the new buffer text, and returns a plan; ``apply_plan``
carries the plan out on a document.

Two policies exist:

- in place (default): the edited segment is rewritten. When that segment is
  an ancestor, every branch below it sees the change.
- clone on edit: history is left alone. A new branch is created beside the
  edited segment, holding the edited text, and the untouched trailing
  segments are copied under it.
"""

from collections.abc import Sequence
from dataclasses import dataclass

from loguru import logger

from text_loom.core.tree.mutations import add_node
from text_loom.core.tree.navigation import children, family
from text_loom.models.node import DocumentState


@dataclass(frozen=True)
class SegmentEdit:
    """Rewrite path segments in place: ``(segment index, new text)`` pairs."""

    edits: tuple[tuple[int, str], ...]


@dataclass(frozen=True)
class SplitPlan:
    """Branch beside segment ``index`` instead of rewriting it.

    The new node goes under segment ``index - 1`` (or becomes a root when
    ``index`` is 0) and holds ``text``; ``rebuilt`` are fresh copies of the
    trailing segments that the edit left intact, chained below it.
    """

    index: int
    text: str
    rebuilt: tuple[str, ...]


ReconcilePlan = SegmentEdit | SplitPlan


def _kept_tail(segments: Sequence[str], tail: str, *, floor: int) -> int:
    """Index of the first trailing segment ``tail`` still ends with, not below ``floor``.

    Walks from the leaf towards ``floor`` and stops at the first segment
    whose addition breaks the suffix match. ``len(segments)`` means no
    segment is kept.
    """
    start = len(segments)
    suffix = ""
    while start > floor:
        candidate = segments[start - 1] + suffix
        if not tail.endswith(candidate):
            break
        suffix = candidate
        start -= 1
    return start


def _edit_in_place(segments: Sequence[str], text: str, index: int, prefix_len: int) -> SegmentEdit:
    tail = text[prefix_len:]
    start = _kept_tail(segments, tail, floor=index + 1)
    kept_len = sum(len(s) for s in segments[start:])
    edits = [(index, tail[: len(tail) - kept_len])]
    # Segments between the edit and the kept tail were overwritten too.
    edits.extend((j, "") for j in range(index + 1, start) if segments[j])
    return SegmentEdit(tuple(edits))


def _split(segments: Sequence[str], text: str, index: int, prefix_len: int) -> SplitPlan:
    tail = text[prefix_len:]
    start = _kept_tail(segments, tail, floor=index)
    kept_len = sum(len(s) for s in segments[start:])
    return SplitPlan(
        index=index,
        text=tail[: len(tail) - kept_len],
        rebuilt=tuple(segments[start:]),
    )


def reconcile(
    segments: Sequence[str],
    text: str,
    *,
    clone_on_edit: bool = False,
    has_children: bool = False,
) -> ReconcilePlan | None:
    """Work out which path segments an edit touched.

    Args:
        segments: Texts along the active path, root first, current node last.
        text: The buffer's new contents.
        clone_on_edit: Branch instead of rewriting shared history.
        has_children: Whether the current node has children.

    Returns:
        A plan, or None when ``text`` already equals the joined segments.
    """
    if not segments:
        msg = "Active path is empty"
        raise ValueError(msg)

    last = len(segments) - 1
    prefix = ""
    for i in range(last):
        cumulative = prefix + segments[i]
        if not text.startswith(cumulative):
            if clone_on_edit:
                return _split(segments, text, i, len(prefix))
            return _edit_in_place(segments, text, i, len(prefix))
        prefix = cumulative

    if text == prefix + segments[last]:
        return None

    # A leaf with children is a shared prefix for them; branch rather than
    # silently change what every child continues from.
    if clone_on_edit and has_children:
        return _split(segments, text, last, len(prefix))

    return SegmentEdit(((last, text[len(prefix) :]),))


def apply_plan(state: DocumentState, path: Sequence[str], plan: ReconcilePlan) -> str | None:
    """Carry out a plan on the nodes of ``path``.

    Returns:
        The id of the deepest newly created node for a split plan (the caller
        switches to it), or None for in-place edits.
    """
    if isinstance(plan, SegmentEdit):
        for index, new_text in plan.edits:
            state.nodes[path[index]].text = new_text
        return None

    parent_id = path[plan.index - 1] if plan.index > 0 else None
    node_id = add_node(state, plan.text, parent_id)
    for segment in plan.rebuilt:
        node_id = add_node(state, segment, node_id)
    return node_id


def reconcile_buffer(state: DocumentState, text: str, *, clone_on_edit: bool = False) -> str | None:
    """Bring the active path in line with the buffer contents.

    Returns:
        The node to switch to when the edit created a new branch, else None.
    """
    path = family(state, state.current)
    segments = [state.nodes[i].text for i in path]
    plan = reconcile(
        segments,
        text,
        clone_on_edit=clone_on_edit,
        has_children=bool(children(state, state.current)),
    )
    if plan is None:
        return None

    logger.debug(f"Reconciling buffer edit with {type(plan).__name__} {repr(plan)[:64]}")
    return apply_plan(state, path, plan)
