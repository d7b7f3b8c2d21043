"""Load and save settings plus per-document state as one JSON file."""

import json
from pathlib import Path
from typing import Any

from loguru import logger

from text_loom.core.importer.json_reader import dump_document_state, parse_document_state
from text_loom.exceptions import InvalidSetting, LoomError
from text_loom.models.node import DocumentState
from text_loom.models.settings import LoomSettings, settings_from_data, settings_to_data


class StateStore:
    """Persist ``{settings, state}`` in a JSON file.

    - Do not rewrite the file if contents are the same.
    - Documents that fail validation on load are kept verbatim, so saving
      never throws away state this version could not read.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._unparsed: dict[str, Any] = {}

    def load(self) -> tuple[LoomSettings, dict[str, DocumentState]]:
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            logger.debug(f"No state file at {str(self.path)!r}, starting fresh")
            return LoomSettings(), {}

        try:
            settings = settings_from_data(data.get("settings"))
        except InvalidSetting as e:
            logger.warning(f"Ignoring unreadable settings, using defaults: {e}")
            settings = LoomSettings()
        documents: dict[str, DocumentState] = {}
        self._unparsed = {}
        for key, raw in (data.get("state") or {}).items():
            try:
                state = parse_document_state(raw)
            except LoomError as e:
                logger.warning(f"Ignoring unreadable state for {key!r}: {e}")
                self._unparsed[key] = raw
                continue
            # No generation survives a restart.
            state.generating = None
            documents[key] = state
        return settings, documents

    def dumps(self, settings: LoomSettings, documents: dict[str, DocumentState]) -> str:
        # Node order is sibling order, so keys are never sorted.
        state = {**self._unparsed, **{k: dump_document_state(v) for k, v in documents.items()}}
        return json.dumps({"settings": settings_to_data(settings), "state": state}, indent=2) + "\n"

    def forget(self, key: str) -> None:
        self._unparsed.pop(key, None)

    def save(self, settings: LoomSettings, documents: dict[str, DocumentState]) -> bool:
        """Write the state file. Returns True if it changed."""
        contents = self.dumps(settings, documents)
        try:
            with open(self.path, encoding="utf-8") as f:
                if f.read() == contents:
                    return False
        except (FileNotFoundError, UnicodeDecodeError):
            pass

        logger.debug(f"Writing state to {str(self.path)!r}")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            f.write(contents)
        return True
