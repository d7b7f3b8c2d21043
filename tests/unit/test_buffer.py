"""Tests for host buffers and cursor conversion."""

from pathlib import Path

from text_loom.buffer import FileBuffer, TextBuffer, cursor_to_offset, end_cursor, offset_to_cursor
from text_loom.protocols import Cursor


def test_cursor_offset_conversion() -> None:
    buffer = TextBuffer("ab\ncde\n")
    assert cursor_to_offset(buffer, Cursor(0, 1)) == 1
    assert cursor_to_offset(buffer, Cursor(1, 2)) == 5
    assert cursor_to_offset(buffer, Cursor(2, 0)) == 7
    assert offset_to_cursor("ab\ncde\n", 5) == Cursor(1, 2)


def test_cursor_out_of_range_is_clamped() -> None:
    buffer = TextBuffer("ab\ncde")
    assert cursor_to_offset(buffer, Cursor(9, 9)) == 6
    assert cursor_to_offset(buffer, Cursor(0, 99)) == 2
    assert offset_to_cursor("ab", 99) == Cursor(0, 2)


def test_text_buffer_defaults_cursor_to_end() -> None:
    buffer = TextBuffer("ab\ncd")
    assert buffer.get_cursor() == end_cursor("ab\ncd") == Cursor(1, 2)
    assert buffer.line_count() == 2
    assert buffer.get_line(1) == "cd"


def test_file_buffer_reads_and_flushes(tmp_path: Path) -> None:
    path = tmp_path / "story.md"
    path.write_text("Once upon")

    buffer = FileBuffer(path)
    assert buffer.get_value() == "Once upon"
    assert not buffer.flush()

    buffer.set_value("Once upon a time")
    assert buffer.flush()
    assert path.read_text() == "Once upon a time"


def test_file_buffer_missing_file_starts_empty(tmp_path: Path) -> None:
    path = tmp_path / "new" / "story.md"
    buffer = FileBuffer(path)
    assert buffer.get_value() == ""
    assert buffer.flush()
    assert path.read_text() == ""
