"""Per-request control flow for Chat Completions and the Responses API."""

import time
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from llm_openai_bridge.errors import BridgeError, UpstreamRequestFailed
from llm_openai_bridge.formatter import (
    EnvelopeOptions,
    chat_completion,
    generate_response_id,
    responses_response,
)
from llm_openai_bridge.metrics import MetricsExporter
from llm_openai_bridge.models import ChatCompletionRequest, ResponsesRequest
from llm_openai_bridge.normalizer import extract_text, normalize
from llm_openai_bridge.presets import find_preset
from llm_openai_bridge.resolver import ModelResolver
from llm_openai_bridge.streaming import ChatStreamEmitter, ResponsesStreamEmitter
from llm_openai_bridge.upstream.base import (
    CancellationToken,
    LanguageModel,
    Message,
    ResponseHandle,
)
from llm_openai_bridge.utils import get_logger

logger = get_logger(__name__)

DEFAULT_INSTRUCTIONS = (
    "You are a coding assistant reached through an OpenAI-compatible API. "
    "Follow the user's instructions precisely, keep answers focused on the task, "
    "and format code in fenced blocks."
)


@dataclass
class PreparedCompletion:
    """Everything known once the upstream accepted the request."""

    model: LanguageModel
    model_id: str
    handle: ResponseHandle
    messages: list[Message]
    prompt_tokens: int
    cancellation: CancellationToken = field(default_factory=CancellationToken)
    started_at: float = field(default_factory=time.monotonic)


class CompletionOrchestrator:
    """Shared path: resolve model, send upstream, count prompt tokens."""

    endpoint = "completion"

    def __init__(self, resolver: ModelResolver) -> None:
        self.resolver = resolver

    async def invoke(self, messages: list[Message], requested_model: str | None) -> PreparedCompletion:
        """Send ``messages`` to the model resolved for ``requested_model``.

        Raises:
            ModelUnavailable: no upstream model could be selected
            UpstreamRequestFailed: the upstream refused or returned nothing
        """
        started_at = time.monotonic()
        preset = find_preset(requested_model)
        model = await self.resolver.resolve(requested_model)
        model_id = preset.id if preset else (model.id or requested_model or self.resolver.default_model_id)

        options: dict[str, Any] = {}
        if preset and preset.reasoning:
            options["model_options"] = {"reasoning": preset.reasoning.to_dict()}
            logger.info(
                "orchestrator.reasoning_options",
                preset=preset.id,
                reasoning=options["model_options"]["reasoning"],
            )

        cancellation = CancellationToken()
        logger.info(
            "orchestrator.send",
            endpoint=self.endpoint,
            model=model.id,
            response_model=model_id,
            messages=len(messages),
        )
        try:
            handle = await model.send(messages, options, cancellation)
        except BridgeError:
            raise
        except Exception as e:
            raise UpstreamRequestFailed(f"Upstream request failed: {e}") from e

        if not handle:
            logger.warning("orchestrator.empty_response", model=model.id)
            raise UpstreamRequestFailed("No response from language model")

        prompt_tokens = 0
        for message in messages:
            prompt_tokens += await model.count_tokens(message.content)

        return PreparedCompletion(
            model=model,
            model_id=model_id,
            handle=handle,
            messages=messages,
            prompt_tokens=prompt_tokens,
            cancellation=cancellation,
            started_at=started_at,
        )

    def _record(self, prepared: PreparedCompletion, stream: bool) -> None:
        MetricsExporter.record_request(
            endpoint=self.endpoint,
            model=prepared.model_id,
            stream=stream,
            elapsed=time.monotonic() - prepared.started_at,
        )
        MetricsExporter.record_tokens(self.endpoint, prompt_tokens=prepared.prompt_tokens)

    def _record_completion(self, completion_tokens: int) -> None:
        MetricsExporter.record_tokens(self.endpoint, completion_tokens=completion_tokens)


class ChatCompletionOrchestrator(CompletionOrchestrator):
    """``/v1/chat/completions``.

    An empty ``messages`` array is passed through: zero prompt tokens and an
    empty conversation sent upstream.
    """

    endpoint = "chat.completions"

    async def prepare(self, request: ChatCompletionRequest) -> PreparedCompletion:
        messages = [Message(role=m.role, content=m.content) for m in request.messages]
        return await self.invoke(messages, request.model)

    async def complete(self, request: ChatCompletionRequest) -> dict[str, Any]:
        """Buffer the whole upstream answer into one ``chat.completion``."""
        prepared = await self.prepare(request)
        logger.info("chat.buffering", model=prepared.model_id)

        text = await prepared.handle.text.drain()
        completion_tokens = await prepared.model.count_tokens(text)

        self._record(prepared, stream=False)
        self._record_completion(completion_tokens)
        return chat_completion(prepared.model_id, text, prepared.prompt_tokens, completion_tokens)

    async def open_stream(self, request: ChatCompletionRequest) -> AsyncIterator[str]:
        """Prepare the request, then hand back the SSE frame iterator.

        Failures before the first frame propagate to the caller so they can
        still become a proper HTTP error.
        """
        prepared = await self.prepare(request)
        self._record(prepared, stream=True)
        emitter = ChatStreamEmitter(
            prepared.model_id,
            prepared.model,
            prepared.prompt_tokens,
            on_complete=self._record_completion,
        )
        return emitter.stream(prepared.handle)


class ResponsesOrchestrator(CompletionOrchestrator):
    """``/v1/responses`` (and ``/v1/messages``)."""

    endpoint = "responses"

    def __init__(self, resolver: ModelResolver, default_instructions: str = DEFAULT_INSTRUCTIONS) -> None:
        super().__init__(resolver)
        self.default_instructions = default_instructions

    async def prepare(self, request: ResponsesRequest) -> tuple[PreparedCompletion, str]:
        """Normalize input and send upstream.

        Returns:
            The prepared completion and the instructions to report, which fall
            back to the built-in text when the request carries none
        """
        instruction_text = extract_text(request.instructions)
        messages = normalize(request.input, instruction_text, request.messages)
        prepared = await self.invoke(messages, request.model)
        return prepared, instruction_text or self.default_instructions

    @staticmethod
    def _envelope_options(request: ResponsesRequest) -> EnvelopeOptions:
        return EnvelopeOptions(
            parallel_tool_calls=request.parallel_tool_calls is not False,
            tools=list(request.tools or []),
            tool_choice=request.tool_choice,
        )

    async def complete(self, request: ResponsesRequest) -> dict[str, Any]:
        prepared, instructions = await self.prepare(request)

        text = await prepared.handle.text.drain()
        completion_tokens = await prepared.model.count_tokens(text)

        self._record(prepared, stream=False)
        self._record_completion(completion_tokens)
        return responses_response(
            generate_response_id(),
            prepared.model_id,
            text,
            prepared.prompt_tokens,
            completion_tokens,
            "completed",
            instructions,
            request.metadata,
            self._envelope_options(request),
        )

    async def open_stream(self, request: ResponsesRequest) -> AsyncIterator[str]:
        prepared, instructions = await self.prepare(request)
        self._record(prepared, stream=True)
        emitter = ResponsesStreamEmitter(
            generate_response_id(),
            prepared.model_id,
            prepared.model,
            prepared.prompt_tokens,
            instructions,
            request.metadata,
            self._envelope_options(request),
            on_complete=self._record_completion,
        )
        return emitter.stream(prepared.handle)
