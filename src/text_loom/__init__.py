"""Branching-text loom: explore model continuations of a document as a tree."""

from text_loom.api import ApiCallLog, RestClient
from text_loom.buffer import FileBuffer, TextBuffer
from text_loom.protocols import BufferProtocol, Cursor
from text_loom.session import DocumentSession, Loom
from text_loom.store import StateStore

__all__ = [
    "ApiCallLog",
    "BufferProtocol",
    "Cursor",
    "DocumentSession",
    "FileBuffer",
    "Loom",
    "RestClient",
    "StateStore",
    "TextBuffer",
]
