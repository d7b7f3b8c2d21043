"""Exceptions raised by the loom core.

Structural errors abort the single command that raised them; the tree is
left as it was before the command started.
"""


class LoomError(Exception):
    """Base exception for all loom errors."""


class NodeNotFound(LoomError):
    """Raised when a referenced node id is absent from the document."""

    def __init__(self, node_id: str) -> None:
        super().__init__(f"Node {node_id!r} not found")
        self.node_id = node_id


class CorruptTree(LoomError):
    """Raised when a parent walk meets a cycle or a dangling parent id."""


class CannotMerge(LoomError):
    """Raised when a node cannot be merged into its parent."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Can't merge this node with its parent: {reason}")
        self.reason = reason


class CannotDeleteLastRoot(LoomError):
    """Raised when a delete would remove the only remaining root node."""

    def __init__(self, node_id: str) -> None:
        super().__init__("The last root node can't be deleted")
        self.node_id = node_id


class ProviderError(LoomError):
    """Raised by provider request functions on transport or API failure."""

    def __init__(self, status: int | None, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message


class UnknownProvider(LoomError):
    """Raised when no usable model preset or provider is configured."""

    def __init__(self, provider: str | None) -> None:
        if provider is None:
            super().__init__("No model preset selected")
        else:
            super().__init__(f"Invalid provider: {provider}")
        self.provider = provider


class InvalidSetting(LoomError):
    """Raised when set-setting names an unknown setting or a bad value."""
