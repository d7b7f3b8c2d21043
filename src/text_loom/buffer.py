"""Host buffers: an in-memory one and one backed by a text file."""

from pathlib import Path

from loguru import logger

from text_loom.protocols import BufferProtocol, Cursor


def cursor_to_offset(buffer: BufferProtocol, cursor: Cursor) -> int:
    """Convert a (line, ch) cursor to a character offset into the buffer.

    Out-of-range positions are clamped to the buffer.
    """
    line = max(0, min(cursor.line, buffer.line_count() - 1))
    offset = sum(len(buffer.get_line(i)) + 1 for i in range(line))
    return offset + max(0, min(cursor.ch, len(buffer.get_line(line))))


def offset_to_cursor(text: str, offset: int) -> Cursor:
    offset = max(0, min(offset, len(text)))
    before = text[:offset]
    line = before.count("\n")
    return Cursor(line, offset - (before.rfind("\n") + 1))


def end_cursor(text: str) -> Cursor:
    return offset_to_cursor(text, len(text))


class TextBuffer:
    """A buffer that lives only in memory."""

    def __init__(self, text: str = "", cursor: Cursor | None = None) -> None:
        self._text = text
        self._cursor = cursor or end_cursor(text)

    def get_value(self) -> str:
        return self._text

    def set_value(self, text: str) -> None:
        self._text = text

    def get_cursor(self) -> Cursor:
        return self._cursor

    def set_cursor(self, cursor: Cursor) -> None:
        self._cursor = cursor

    def get_line(self, line: int) -> str:
        return self._text.split("\n")[line]

    def line_count(self) -> int:
        return self._text.count("\n") + 1


class FileBuffer(TextBuffer):
    """A buffer loaded from a text file and written back on ``flush``.

    The file is only rewritten when its contents actually changed.
    """

    def __init__(self, path: str | Path, cursor: Cursor | None = None) -> None:
        self.path = Path(path)
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            text = ""
        self._on_disk = text
        super().__init__(text, cursor)

    def flush(self) -> bool:
        """Write the buffer back. Returns True if the file changed."""
        text = self.get_value()
        if text == self._on_disk and self.path.exists():
            return False
        logger.debug(f"Writing buffer to {str(self.path)!r}")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            f.write(text)
        self._on_disk = text
        return True
