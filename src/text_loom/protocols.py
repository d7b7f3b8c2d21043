"""Protocols for the host collaborators the loom core drives."""

from typing import NamedTuple, Protocol, runtime_checkable


class Cursor(NamedTuple):
    """A buffer position as the host reports it: zero-based line and column."""

    line: int
    ch: int


@runtime_checkable
class BufferProtocol(Protocol):
    """Protocol for the editable text the active path is mirrored into."""

    def get_value(self) -> str:
        """Return the whole buffer."""
        ...

    def set_value(self, text: str) -> None:
        """Replace the whole buffer."""
        ...

    def get_cursor(self) -> Cursor:
        ...

    def set_cursor(self, cursor: Cursor) -> None:
        ...

    def get_line(self, line: int) -> str:
        """Return one line, without its newline."""
        ...

    def line_count(self) -> int:
        ...
