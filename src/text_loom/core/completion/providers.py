"""Per-provider completion requests.

Each provider is an async function taking a ``CompletionRequest`` and
returning the raw completions (``None`` for an empty one). Every failure is
raised as ``ProviderError``; nothing else is expected to escape.

REST providers go through ``RestClient`` in a worker thread; OpenAI, Azure
and Anthropic go through their SDKs' async clients.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from typing import Any

import anthropic
import openai

from text_loom.api import RestClient
from text_loom.exceptions import ProviderError

COHERE_URL = "https://api.cohere.ai/v1/generate"
TEXTSYNTH_URL = "https://api.textsynth.com/v1/engines/{model}/completions"
AZURE_API_VERSION = "2024-02-01"


@dataclass(frozen=True)
class CompletionRequest:
    """Everything a provider needs for one generation."""

    prompt: str
    model: str
    max_tokens: int
    n: int
    temperature: float
    top_p: float
    frequency_penalty: float = 0.0
    presence_penalty: float = 0.0
    best_of: int = 0
    api_key: str = ""
    organization: str = ""
    url: str = ""
    system_prompt: str = ""
    user_message: str = ""

    def for_log(self) -> dict[str, Any]:
        """The request without its credentials."""
        data = asdict(self)
        data.pop("api_key")
        return data


ProviderFn = Callable[[CompletionRequest, RestClient], Awaitable[list[str | None]]]
ClientFactory = Callable[[CompletionRequest], Any]


@dataclass(frozen=True)
class Provider:
    """A provider's request function and whether it is chat-style.

    Chat-style providers never echo the prompt, which changes how leading
    whitespace is handled on their completions.
    """

    name: str
    chat: bool
    request: ProviderFn


def _bearer(api_key: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {api_key}"}


def normalize_ocp_url(url: str) -> str:
    """Turn a proxy base URL into its completions endpoint."""
    if not url.startswith(("http://", "https://")):
        url = "https://" + url
    if not url.endswith("/"):
        url += "/"
    return url + "v1/completions"


def chat_messages(req: CompletionRequest) -> list[dict[str, str]]:
    """Optional system prompt, optional user turn, then the prompt as the assistant turn."""
    messages = []
    if req.system_prompt:
        messages.append({"role": "system", "content": req.system_prompt})
    if req.user_message:
        messages.append({"role": "user", "content": req.user_message})
    messages.append({"role": "assistant", "content": req.prompt})
    return messages


def _field(data: Any, *keys: str) -> Any:
    try:
        for key in keys:
            data = data[key]
    except (KeyError, IndexError, TypeError) as e:
        msg = f"Unexpected response: missing {'.'.join(keys)!r}"
        raise ProviderError(None, msg) from e
    return data


# --- REST providers ---


async def request_cohere(req: CompletionRequest, rest: RestClient) -> list[str | None]:
    body = {
        "model": req.model,
        "prompt": req.prompt,
        "max_tokens": req.max_tokens,
        "num_generations": req.n,
        "temperature": req.temperature,
        "p": req.top_p,
    }
    data = await asyncio.to_thread(rest.post, COHERE_URL, body, headers=_bearer(req.api_key))
    return [g.get("text") for g in _field(data, "generations")]


async def request_textsynth(req: CompletionRequest, rest: RestClient) -> list[str | None]:
    body = {
        "prompt": req.prompt,
        "max_tokens": req.max_tokens,
        "n": req.n,
        "temperature": req.temperature,
        "top_p": req.top_p,
    }
    url = TEXTSYNTH_URL.format(model=req.model)
    data = await asyncio.to_thread(rest.post, url, body, headers=_bearer(req.api_key))
    text = _field(data, "text")
    # A single completion comes back as a bare string.
    if isinstance(text, str):
        return [text]
    return list(text)


async def request_ocp(req: CompletionRequest, rest: RestClient) -> list[str | None]:
    body = {
        "prompt": req.prompt,
        "max_tokens": req.max_tokens,
        "n": req.n,
        "temperature": req.temperature,
        "top_p": req.top_p,
    }
    url = normalize_ocp_url(req.url)
    data = await asyncio.to_thread(rest.post, url, body, headers=_bearer(req.api_key))
    return [c.get("text") for c in _field(data, "choices")]


# --- SDK providers ---


def _openai_errors(e: Exception) -> ProviderError:
    if isinstance(e, openai.APIStatusError):
        return ProviderError(e.status_code, e.message)
    return ProviderError(None, str(e))


def _completion_params(req: CompletionRequest) -> dict[str, Any]:
    params: dict[str, Any] = {
        "model": req.model,
        "prompt": req.prompt,
        "max_tokens": req.max_tokens,
        "n": req.n,
        "temperature": req.temperature,
        "top_p": req.top_p,
        "frequency_penalty": req.frequency_penalty,
        "presence_penalty": req.presence_penalty,
    }
    if req.best_of > 0:
        params["best_of"] = req.best_of
    return params


def _chat_params(req: CompletionRequest) -> dict[str, Any]:
    return {
        "model": req.model,
        "messages": chat_messages(req),
        "max_tokens": req.max_tokens,
        "n": req.n,
        "temperature": req.temperature,
        "top_p": req.top_p,
        "frequency_penalty": req.frequency_penalty,
        "presence_penalty": req.presence_penalty,
    }


def _openai_client(req: CompletionRequest) -> openai.AsyncOpenAI:
    return openai.AsyncOpenAI(api_key=req.api_key, organization=req.organization or None)


def _azure_client(req: CompletionRequest) -> openai.AsyncAzureOpenAI:
    return openai.AsyncAzureOpenAI(
        api_key=req.api_key,
        api_version=AZURE_API_VERSION,
        azure_endpoint=req.url,
    )


async def _plain_completion(make_client: ClientFactory, req: CompletionRequest) -> list[str | None]:
    try:
        response = await make_client(req).completions.create(**_completion_params(req))
    except openai.OpenAIError as e:
        raise _openai_errors(e) from e
    return [choice.text for choice in response.choices]


async def _chat_completion(make_client: ClientFactory, req: CompletionRequest) -> list[str | None]:
    try:
        response = await make_client(req).chat.completions.create(**_chat_params(req))
    except openai.OpenAIError as e:
        raise _openai_errors(e) from e
    return [choice.message.content for choice in response.choices]


async def request_openai(req: CompletionRequest, rest: RestClient) -> list[str | None]:
    return await _plain_completion(_openai_client, req)


async def request_openai_chat(req: CompletionRequest, rest: RestClient) -> list[str | None]:
    return await _chat_completion(_openai_client, req)


async def request_azure(req: CompletionRequest, rest: RestClient) -> list[str | None]:
    return await _plain_completion(_azure_client, req)


async def request_azure_chat(req: CompletionRequest, rest: RestClient) -> list[str | None]:
    return await _chat_completion(_azure_client, req)


async def request_anthropic(req: CompletionRequest, rest: RestClient) -> list[str | None]:
    """One Messages API call per completion; the API has no ``n``."""
    messages = [m for m in chat_messages(req) if m["role"] != "system"]
    if messages[0]["role"] != "user":
        # Conversations must open with a user turn.
        messages = [{"role": "user", "content": req.prompt}]
    params: dict[str, Any] = {
        "model": req.model,
        "messages": messages,
        "max_tokens": req.max_tokens,
        "temperature": req.temperature,
    }
    if req.system_prompt:
        params["system"] = req.system_prompt

    async def one(client: anthropic.AsyncAnthropic) -> str:
        response = await client.messages.create(**params)
        return "".join(block.text for block in response.content if block.type == "text")

    try:
        client = anthropic.AsyncAnthropic(api_key=req.api_key, base_url=req.url or None)
        return list(await asyncio.gather(*(one(client) for _ in range(req.n))))
    except anthropic.APIStatusError as e:
        raise ProviderError(e.status_code, e.message) from e
    except anthropic.AnthropicError as e:
        raise ProviderError(None, str(e)) from e


PROVIDER_REGISTRY: dict[str, Provider] = {
    p.name: p
    for p in (
        Provider("cohere", chat=False, request=request_cohere),
        Provider("textsynth", chat=False, request=request_textsynth),
        Provider("ocp", chat=False, request=request_ocp),
        Provider("openai", chat=False, request=request_openai),
        Provider("openai-chat", chat=True, request=request_openai_chat),
        Provider("azure", chat=False, request=request_azure),
        Provider("azure-chat", chat=True, request=request_azure_chat),
        Provider("anthropic", chat=True, request=request_anthropic),
    )
}


def describe_failure(provider: str, status: int | None, message: str) -> str:
    """The notice shown to the user for a failed generation."""
    if status == 401:
        return f"{provider} API key is invalid. Please provide a valid key in the settings."
    if status == 429:
        return f"{provider} API rate limit exceeded."
    return f"Unknown API error: {message}"
