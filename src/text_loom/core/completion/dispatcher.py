"""Run a generation: prompt, truncate, request, normalize, attach.

A document is either idle or generating under one root node. While a
request is in flight the rest of the tree stays editable, so everything the
request depends on is checked again once it returns: the root must still
exist, and focus only follows the new children when the user is still
looking at the root or something below it.
"""

from dataclasses import dataclass
from typing import Literal

from loguru import logger

from text_loom.api import ApiCallLog, RestClient
from text_loom.core.completion.prompt import PreparedPrompt, postprocess, prepare_prompt
from text_loom.core.completion.providers import (
    PROVIDER_REGISTRY,
    CompletionRequest,
    Provider,
    describe_failure,
)
from text_loom.core.completion.tokenizer import encoding_name, truncate_prompt
from text_loom.core.tree.mutations import add_node
from text_loom.core.tree.navigation import full_text, get_node, is_descendant
from text_loom.exceptions import ProviderError, UnknownProvider
from text_loom.models.node import DocumentState
from text_loom.models.settings import LoomSettings, ModelPreset, get_preset


@dataclass(frozen=True)
class CompletionSuccess:
    completions: list[str]


@dataclass(frozen=True)
class CompletionFailure:
    status: int | None
    message: str


CompletionResult = CompletionSuccess | CompletionFailure


@dataclass(frozen=True)
class GenerationOutcome:
    """What a generate request did.

    ``status`` is ``attached`` when children were created, ``failed`` when
    the provider could not be used, ``discarded`` when the root vanished
    while waiting and ``rejected`` when another generation was in flight.
    """

    status: Literal["attached", "failed", "discarded", "rejected"]
    root_id: str
    child_ids: tuple[str, ...] = ()
    focus: str | None = None
    notice: str | None = None


def build_request(settings: LoomSettings, preset: ModelPreset, prompt: str) -> CompletionRequest:
    return CompletionRequest(
        prompt=prompt,
        model=preset.model,
        max_tokens=settings.max_tokens,
        n=settings.n,
        temperature=settings.temperature,
        top_p=settings.top_p,
        frequency_penalty=settings.frequency_penalty,
        presence_penalty=settings.presence_penalty,
        best_of=settings.best_of,
        api_key=preset.api_key,
        organization=preset.organization,
        url=preset.url,
        system_prompt=settings.system_prompt,
        user_message=settings.user_message,
    )


def _resolve_provider(
    settings: LoomSettings, providers: dict[str, Provider]
) -> tuple[ModelPreset, Provider]:
    preset = get_preset(settings)
    provider = providers.get(preset.provider)
    if provider is None:
        raise UnknownProvider(preset.provider)
    return preset, provider


async def request_completions(
    prepared: PreparedPrompt,
    settings: LoomSettings,
    *,
    providers: dict[str, Provider] | None = None,
    rest: RestClient | None = None,
    call_log: ApiCallLog | None = None,
) -> CompletionResult:
    """Send a prepared prompt to the selected provider.

    Never raises: every failure comes back as a CompletionFailure.
    """
    try:
        preset, provider = _resolve_provider(settings, providers or PROVIDER_REGISTRY)
    except UnknownProvider as e:
        return CompletionFailure(None, str(e))

    encoding = encoding_name(preset.model, chat=provider.chat)
    budget = preset.context_length - settings.max_tokens
    try:
        prompt = truncate_prompt(prepared.text, budget, encoding=encoding)
    except Exception as e:
        logger.exception(f"Could not load the {encoding} tokenizer")
        return CompletionFailure(None, f"Could not load the {encoding} tokenizer: {e}")
    req = build_request(settings, preset, prompt)

    logger.debug(f"Requesting {settings.n} completions from {preset.provider} ({preset.model})")
    result: CompletionResult
    client = rest or RestClient()
    try:
        raw = await provider.request(req, client)
    except ProviderError as e:
        result = CompletionFailure(e.status, describe_failure(preset.provider, e.status, e.message))
    except Exception as e:
        logger.exception(f"Unexpected error from {preset.provider}")
        result = CompletionFailure(None, describe_failure(preset.provider, None, str(e)))
    else:
        result = CompletionSuccess(
            [
                postprocess(c, chat=provider.chat, trailing_whitespace=prepared.trailing_whitespace)
                for c in raw
            ]
        )
    finally:
        if rest is None:
            client.close()

    if settings.log_api_calls and call_log is not None:
        try:
            call_log.record({"provider": preset.provider, **req.for_log()}, _result_for_log(result))
        except OSError:
            logger.exception("Could not write the API call log")
    return result


def _result_for_log(result: CompletionResult) -> dict:
    if isinstance(result, CompletionSuccess):
        return {"completions": result.completions}
    return {"status": result.status, "message": result.message}


def attach_completions(
    state: DocumentState, root_id: str, completions: list[str]
) -> GenerationOutcome:
    """Create one unread child of ``root_id`` per completion."""
    if root_id not in state.nodes:
        logger.debug(f"Node {root_id!r} was deleted during generation, dropping results")
        return GenerationOutcome(status="discarded", root_id=root_id)

    child_ids = tuple(add_node(state, text, root_id, unread=True) for text in completions)

    focus = None
    if child_ids and state.current in state.nodes and is_descendant(state, state.current, root_id):
        focus = child_ids[0]
    return GenerationOutcome(status="attached", root_id=root_id, child_ids=child_ids, focus=focus)


async def generate(
    state: DocumentState,
    root_id: str,
    settings: LoomSettings,
    *,
    providers: dict[str, Provider] | None = None,
    rest: RestClient | None = None,
    call_log: ApiCallLog | None = None,
) -> GenerationOutcome:
    """Generate continuations of ``root_id`` and attach them as its children.

    Raises:
        NodeNotFound: If ``root_id`` does not exist when the request starts.
    """
    get_node(state, root_id)
    if state.generating is not None:
        logger.warning("A generation is already running for this document")
        return GenerationOutcome(status="rejected", root_id=root_id)

    state.generating = root_id
    try:
        prepared = prepare_prompt(settings.prepend, full_text(state, root_id))
        result = await request_completions(
            prepared, settings, providers=providers, rest=rest, call_log=call_log
        )
    finally:
        state.generating = None

    if isinstance(result, CompletionFailure):
        logger.warning(result.message)
        return GenerationOutcome(status="failed", root_id=root_id, notice=result.message)

    return attach_completions(state, root_id, result.completions)
