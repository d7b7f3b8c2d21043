"""Prompt assembly and completion post-processing."""

import re
from dataclasses import dataclass

_TRAILING_WS = re.compile(r"\s+$")


@dataclass(frozen=True)
class PreparedPrompt:
    """A prompt ready for truncation, and whether trailing whitespace was cut."""

    text: str
    trailing_whitespace: bool


def unescape(text: str) -> str:
    """Undo the buffer's escaping of ``<``."""
    return text.replace("\\<", "<")


def escape(text: str) -> str:
    """Escape ``<`` so the buffer does not render it as markup."""
    return text.replace("<", "\\<")


def prepare_prompt(prepend: str, full_text: str) -> PreparedPrompt:
    """Join ``prepend`` and the document text, then strip and unescape."""
    prompt = prepend + full_text
    stripped = _TRAILING_WS.sub("", prompt)
    return PreparedPrompt(text=unescape(stripped), trailing_whitespace=stripped != prompt)


def postprocess(completion: str | None, *, chat: bool, trailing_whitespace: bool) -> str:
    """Turn a raw completion into node text.

    Chat models never echo the prompt's last space, so one is added when the
    prompt had none. Plain models tend to start with the space that was
    stripped from the prompt; the buffer already ends in whitespace, so it is
    dropped.
    """
    text = escape(completion or "")
    if chat:
        if not trailing_whitespace:
            text = " " + text
    elif trailing_whitespace and text.startswith(" "):
        text = text[1:]
    return text
