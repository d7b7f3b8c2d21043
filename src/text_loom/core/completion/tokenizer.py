"""Tokenizer-aware prompt truncation."""

import functools

import tiktoken

CHAT_ENCODING = "cl100k_base"
CODE_ENCODING = "p50k_base"
DEFAULT_ENCODING = "r50k_base"

_CODE_PREFIXES = ("code-", "text-davinci-002", "text-davinci-003")


def encoding_name(model: str, *, chat: bool = False) -> str:
    """Pick the tokenizer family for a model name."""
    if chat or model.startswith(("gpt-3.5", "gpt-4")):
        return CHAT_ENCODING
    if model.startswith(_CODE_PREFIXES):
        return CODE_ENCODING
    return DEFAULT_ENCODING


@functools.cache
def get_encoding(name: str) -> tiktoken.Encoding:
    return tiktoken.get_encoding(name)


def truncate_prompt(prompt: str, limit: int, *, encoding: str = DEFAULT_ENCODING) -> str:
    """Keep the last ``limit`` tokens of ``prompt``.

    Returns the prompt unchanged when it already fits, and an empty string
    when there is no budget at all.
    """
    if limit <= 0:
        return ""
    enc = get_encoding(encoding)
    tokens = enc.encode(prompt, disallowed_special=())
    if len(tokens) <= limit:
        return prompt
    return enc.decode(tokens[-limit:])
