"""Shared test fixtures."""

from pathlib import Path

import pytest

from tests.unit.fakes import FakeCallLog, FakeEncoding, FakeProvider
from text_loom.core.completion import tokenizer
from text_loom.models.node import DocumentState, Node
from text_loom.models.settings import LoomSettings, ModelPreset
from text_loom.session import Loom
from text_loom.store import StateStore

# root "Once upon" -> a " a time" -> a1 " there", a2 " here"
#                  -> b " the end"
SAMPLE_NODES = {
    "root": ("Once upon", None),
    "a": (" a time", "root"),
    "a1": (" there", "a"),
    "a2": (" here", "a"),
    "b": (" the end", "root"),
}


def make_state(nodes: dict[str, tuple[str, str | None]], current: str) -> DocumentState:
    """Build a document from ``{id: (text, parent_id)}``, in that order."""
    return DocumentState(
        current=current,
        nodes={
            node_id: Node(text=text, parent_id=parent) for node_id, (text, parent) in nodes.items()
        },
    )


@pytest.fixture(autouse=True)
def fake_encoding(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep tiktoken from downloading encodings during tests."""
    monkeypatch.setattr(tokenizer, "get_encoding", lambda name: FakeEncoding())


@pytest.fixture
def sample_state() -> DocumentState:
    """A small document whose current node is ``a1``."""
    return make_state(SAMPLE_NODES, current="a1")


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider(["foo", "bar"])


@pytest.fixture
def loom_settings() -> LoomSettings:
    """Settings with a single 'fake' preset selected and no prepend."""
    return LoomSettings(
        model_presets=(
            ModelPreset(name="Fake", provider="fake", model="davinci", context_length=2048),
        ),
        model_preset=0,
        prepend="",
        n=2,
    )


@pytest.fixture
def loom(tmp_path: Path, fake_provider: FakeProvider, loom_settings: LoomSettings) -> Loom:
    """A Loom persisting to a temporary state file and generating with a fake provider."""
    loom = Loom(
        StateStore(tmp_path / "data.json"),
        providers={"fake": fake_provider.as_provider()},
        call_log=FakeCallLog(),
    )
    loom.settings = loom_settings
    return loom
