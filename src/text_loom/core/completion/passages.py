"""Build a prompt out of passage files."""

import re

_ROMAN = (
    (1000, "M"),
    (900, "CM"),
    (500, "D"),
    (400, "CD"),
    (100, "C"),
    (90, "XC"),
    (50, "L"),
    (40, "XL"),
    (10, "X"),
    (9, "IX"),
    (5, "V"),
    (4, "IV"),
    (1, "I"),
)


def to_roman(number: int) -> str:
    out = ""
    for value, numeral in _ROMAN:
        while number >= value:
            out += numeral
            number -= value
    return out


def unescape_separator(separator: str) -> str:
    """Turn literal ``\\n`` sequences typed into a settings field into newlines."""
    return separator.replace("\\n", "\n")


def format_frontmatter(frontmatter: str, index: int) -> str:
    """Expand ``%n`` to ``index`` and ``%r`` to ``index`` in Roman numerals."""
    return re.sub(
        r"%[nr]",
        lambda m: str(index) if m.group(0) == "%n" else to_roman(index),
        unescape_separator(frontmatter),
    )


def join_passages(passages: list[str], *, separator: str, frontmatter: str) -> str:
    """Join passage texts into one prompt.

    Each passage is preceded by its numbered frontmatter and followed by the
    separator; one more frontmatter (numbered after the last passage) closes
    the prompt so the model continues with a fresh passage.
    """
    sep = unescape_separator(separator)
    text = ""
    for i, passage in enumerate(passages, start=1):
        text += format_frontmatter(frontmatter, i) + passage + sep
    text += format_frontmatter(frontmatter, len(passages) + 1)
    return text
