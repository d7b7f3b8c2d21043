"""Loom settings and model presets, with their persisted (camelCase) form."""

import dataclasses
from dataclasses import dataclass, field
from typing import Any

from text_loom.exceptions import InvalidSetting, UnknownProvider

PROVIDERS: tuple[str, ...] = (
    "cohere",
    "textsynth",
    "ocp",
    "openai",
    "openai-chat",
    "azure",
    "azure-chat",
    "anthropic",
)

DEFAULT_SYSTEM_PROMPT = (
    "The assistant is in CLI simulation mode, and responds to the user's CLI "
    "commands only with the output of the command."
)
DEFAULT_USER_MESSAGE = "<cmd>cat untitled.txt</cmd>"


@dataclass(frozen=True)
class ModelPreset:
    """A named provider/model configuration."""

    name: str
    provider: str
    model: str
    context_length: int
    api_key: str = ""
    organization: str = ""
    url: str = ""


def _default_visibility() -> dict[str, bool]:
    return {
        "visibility": True,
        "modelPreset": True,
        "maxTokens": True,
        "n": True,
        "bestOf": False,
        "temperature": True,
        "topP": False,
        "frequencyPenalty": False,
        "presencePenalty": False,
        "prepend": False,
        "systemPrompt": False,
        "userMessage": False,
    }


@dataclass(frozen=True)
class LoomSettings:
    """Global settings shared by every document."""

    passage_folder: str = ""
    default_passage_separator: str = "\\n\\n---\\n\\n"
    default_passage_frontmatter: str = ""

    log_api_calls: bool = False

    model_presets: tuple[ModelPreset, ...] = ()
    model_preset: int = -1

    visibility: dict[str, bool] = field(default_factory=_default_visibility)
    max_tokens: int = 60
    temperature: float = 1.0
    top_p: float = 1.0
    frequency_penalty: float = 0.0
    presence_penalty: float = 0.0
    prepend: str = "<|endoftext|>"
    best_of: int = 0
    n: int = 5
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    user_message: str = DEFAULT_USER_MESSAGE

    show_settings: bool = False
    show_search_bar: bool = False
    show_node_borders: bool = False
    show_export: bool = False

    clone_parent_on_edit: bool = False


# Persisted key -> dataclass attribute.
SETTING_KEYS: dict[str, str] = {
    "passageFolder": "passage_folder",
    "defaultPassageSeparator": "default_passage_separator",
    "defaultPassageFrontmatter": "default_passage_frontmatter",
    "logApiCalls": "log_api_calls",
    "modelPresets": "model_presets",
    "modelPreset": "model_preset",
    "visibility": "visibility",
    "maxTokens": "max_tokens",
    "temperature": "temperature",
    "topP": "top_p",
    "frequencyPenalty": "frequency_penalty",
    "presencePenalty": "presence_penalty",
    "prepend": "prepend",
    "bestOf": "best_of",
    "n": "n",
    "systemPrompt": "system_prompt",
    "userMessage": "user_message",
    "showSettings": "show_settings",
    "showSearchBar": "show_search_bar",
    "showNodeBorders": "show_node_borders",
    "showExport": "show_export",
    "cloneParentOnEdit": "clone_parent_on_edit",
}

_PRESET_KEYS: dict[str, str] = {
    "name": "name",
    "provider": "provider",
    "model": "model",
    "contextLength": "context_length",
    "apiKey": "api_key",
    "organization": "organization",
    "url": "url",
}


def get_preset(settings: LoomSettings) -> ModelPreset:
    """Return the selected model preset.

    Raises:
        UnknownProvider: If no preset is selected.
    """
    if not 0 <= settings.model_preset < len(settings.model_presets):
        raise UnknownProvider(None)
    return settings.model_presets[settings.model_preset]


def preset_from_data(data: Any) -> ModelPreset:
    """Build a preset from its persisted form.

    Raises:
        InvalidSetting: If ``data`` is not a mapping or lacks a required field.
    """
    if not isinstance(data, dict):
        msg = f"Model preset must be a mapping, got {data!r}"
        raise InvalidSetting(msg)
    missing = [key for key in ("name", "provider", "model", "contextLength") if key not in data]
    if missing:
        msg = f"Model preset is missing {', '.join(missing)}"
        raise InvalidSetting(msg)
    kwargs = {attr: data[key] for key, attr in _PRESET_KEYS.items() if key in data}
    return ModelPreset(**kwargs)


def preset_to_data(preset: ModelPreset) -> dict[str, Any]:
    return {key: getattr(preset, attr) for key, attr in _PRESET_KEYS.items()}


def settings_from_data(data: dict[str, Any] | None) -> LoomSettings:
    """Build settings from persisted data, filling in defaults.

    Unknown keys are ignored so that state files written by newer versions
    still load.
    """
    if not data:
        return LoomSettings()
    kwargs: dict[str, Any] = {}
    for key, attr in SETTING_KEYS.items():
        if key not in data:
            continue
        value = data[key]
        if attr == "model_presets":
            value = tuple(preset_from_data(p) for p in value)
        elif attr == "visibility":
            value = {**_default_visibility(), **value}
        kwargs[attr] = value
    return LoomSettings(**kwargs)


def settings_to_data(settings: LoomSettings) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for key, attr in SETTING_KEYS.items():
        value = getattr(settings, attr)
        if attr == "model_presets":
            value = [preset_to_data(p) for p in value]
        elif attr == "visibility":
            value = dict(value)
        data[key] = value
    return data


def _check_type(name: str, default: Any, value: Any) -> Any:
    if isinstance(default, bool):
        if not isinstance(value, bool):
            msg = f"Setting {name!r} expects a boolean, got {value!r}"
            raise InvalidSetting(msg)
        return value
    if isinstance(default, float):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            msg = f"Setting {name!r} expects a number, got {value!r}"
            raise InvalidSetting(msg)
        return float(value)
    if isinstance(default, int):
        if isinstance(value, bool) or not isinstance(value, int):
            msg = f"Setting {name!r} expects an integer, got {value!r}"
            raise InvalidSetting(msg)
        return value
    if isinstance(default, str):
        if not isinstance(value, str):
            msg = f"Setting {name!r} expects a string, got {value!r}"
            raise InvalidSetting(msg)
        return value
    return value


def with_setting(settings: LoomSettings, name: str, value: Any) -> LoomSettings:
    """Return a copy of ``settings`` with one setting replaced.

    ``name`` may be the persisted camelCase key or the attribute name.

    Raises:
        InvalidSetting: If the name is unknown or the value has the wrong type.
    """
    attr = SETTING_KEYS.get(name, name)
    if attr not in SETTING_KEYS.values():
        msg = f"Unknown setting: {name!r}"
        raise InvalidSetting(msg)

    if attr == "model_presets":
        if not isinstance(value, (list, tuple)):
            msg = f"Setting {name!r} expects a list of presets"
            raise InvalidSetting(msg)
        value = tuple(p if isinstance(p, ModelPreset) else preset_from_data(p) for p in value)
    elif attr == "visibility":
        if not isinstance(value, dict):
            msg = f"Setting {name!r} expects a mapping"
            raise InvalidSetting(msg)
        value = {**settings.visibility, **value}
    else:
        value = _check_type(name, getattr(LoomSettings(), attr), value)

    return dataclasses.replace(settings, **{attr: value})
