"""Configuration constants for text-loom."""

import os
from pathlib import Path

# Persisted settings and document state. First file found is used.
STATE_FILES: list[Path] = [
    Path("~/.local/share/text-loom/data.json").expanduser(),
    Path("~/.config/text-loom/data.json").expanduser(),
    Path("~/.text-loom.json").expanduser(),
]

# Overrides STATE_FILES when set.
STATE_ENV_VAR = "TEXT_LOOM_STATE"

# Provider requests and results, written only when logApiCalls is on.
API_LOG_DIR: Path = Path("~/.local/share/text-loom/api-logs").expanduser()


def resolve_state_file() -> Path:
    """Return the state file to use.

    The environment override wins; otherwise the first existing candidate,
    falling back to the first candidate for a fresh install.
    """
    env = os.environ.get(STATE_ENV_VAR)
    if env:
        return Path(env).expanduser()
    for path in STATE_FILES:
        if path.is_file():
            return path
    return STATE_FILES[0]
