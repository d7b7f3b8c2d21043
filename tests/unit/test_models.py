"""Tests for settings and model presets."""

import pytest

from text_loom.exceptions import InvalidSetting, UnknownProvider
from text_loom.models.settings import (
    LoomSettings,
    ModelPreset,
    get_preset,
    settings_from_data,
    settings_to_data,
    with_setting,
)


def test_defaults() -> None:
    settings = LoomSettings()
    assert settings.max_tokens == 60
    assert settings.n == 5
    assert settings.prepend == "<|endoftext|>"
    assert settings.model_preset == -1
    assert not settings.clone_parent_on_edit


def test_get_preset_requires_selection() -> None:
    with pytest.raises(UnknownProvider, match="No model preset selected"):
        get_preset(LoomSettings())

    preset = ModelPreset(name="GPT", provider="openai", model="gpt-4", context_length=8192)
    settings = LoomSettings(model_presets=(preset,), model_preset=0)
    assert get_preset(settings) is preset


def test_settings_round_trip_through_persisted_form() -> None:
    preset = ModelPreset(
        name="Chat", provider="anthropic", model="chat-model", context_length=200000, api_key="k"
    )
    settings = LoomSettings(model_presets=(preset,), model_preset=0, temperature=0.5)

    data = settings_to_data(settings)

    assert data["modelPresets"][0]["contextLength"] == 200000
    assert data["modelPresets"][0]["apiKey"] == "k"
    assert settings_from_data(data) == settings


def test_settings_from_partial_data_fills_defaults() -> None:
    settings = settings_from_data({"n": 2, "visibility": {"topP": True}, "futureKey": 1})
    assert settings.n == 2
    assert settings.max_tokens == 60
    assert settings.visibility["topP"] is True
    assert settings.visibility["maxTokens"] is True


def test_with_setting_accepts_both_key_styles() -> None:
    settings = with_setting(LoomSettings(), "maxTokens", 100)
    settings = with_setting(settings, "top_p", 0.5)
    assert settings.max_tokens == 100
    assert settings.top_p == 0.5


def test_with_setting_coerces_int_to_float() -> None:
    assert with_setting(LoomSettings(), "temperature", 1).temperature == 1.0


def test_with_setting_builds_presets_from_data() -> None:
    settings = with_setting(
        LoomSettings(),
        "modelPresets",
        [{"name": "A", "provider": "cohere", "model": "command", "contextLength": 4096}],
    )
    assert settings.model_presets[0].context_length == 4096


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("nope", 1),
        ("maxTokens", "many"),
        ("maxTokens", True),
        ("temperature", "hot"),
        ("logApiCalls", 1),
        ("prepend", 3),
        ("modelPresets", "x"),
        ("modelPresets", [{"name": "A"}]),
        ("visibility", []),
    ],
)
def test_with_setting_rejects_bad_values(name: str, value: object) -> None:
    with pytest.raises(InvalidSetting):
        with_setting(LoomSettings(), name, value)


def test_preset_without_context_length_is_invalid() -> None:
    data = {"modelPresets": [{"name": "A", "provider": "openai", "model": "gpt-4"}]}
    with pytest.raises(InvalidSetting, match="contextLength"):
        settings_from_data(data)
