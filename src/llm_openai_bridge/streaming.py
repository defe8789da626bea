"""Server-Sent Events writers for Chat Completions and the Responses API."""

import base64
import json
import time
from collections.abc import AsyncIterator, Callable
from typing import Any

from llm_openai_bridge.errors import BridgeError, StreamingInterrupted
from llm_openai_bridge.formatter import (
    EnvelopeOptions,
    error_response,
    generate_message_id,
    generate_reasoning_id,
    message_item,
    output_text_part,
    reasoning_item,
    response_envelope,
    stream_chunk,
)
from llm_openai_bridge.upstream.base import LanguageModel, ResponseHandle
from llm_openai_bridge.utils import get_logger

logger = get_logger(__name__)

SSE_MEDIA_TYPE = "text/event-stream"
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}
DONE_FRAME = "data: [DONE]\n\n"

CompletionCallback = Callable[[int], None]


def _dumps(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def sse_data(payload: Any) -> str:
    """Anonymous ``data:`` frame."""
    return f"data: {_dumps(payload)}\n\n"


def sse_event(event: str, payload: Any) -> str:
    """Named ``event:``/``data:`` frame."""
    return f"event: {event}\ndata: {_dumps(payload)}\n\n"


def obfuscation_token(fragment: str, sequence_number: int) -> str:
    """base64 of ``"<fragment>:<sequence_number>"``."""
    return base64.b64encode(f"{fragment}:{sequence_number}".encode("utf-8")).decode("ascii")


def encrypted_reasoning(instructions: str, response_id: str) -> str:
    """Opaque reasoning payload: base64 of instructions followed by the response id."""
    return base64.b64encode(f"{instructions}{response_id}".encode("utf-8")).decode("ascii")


def _interrupted(error: Exception) -> BridgeError:
    """Error reported in-band once SSE headers are committed."""
    if isinstance(error, BridgeError):
        return error
    return StreamingInterrupted(str(error) or type(error).__name__)


class ChatStreamEmitter:
    """Writes ``chat.completion.chunk`` frames for one request.

    Frame order: role-only chunk, one chunk per fragment, an empty-delta
    chunk with usage, then ``[DONE]``. A failure while reading fragments is
    reported as a single ``data:`` error frame and the stream ends there.
    """

    def __init__(
        self,
        model_id: str,
        model: LanguageModel,
        prompt_tokens: int,
        on_complete: CompletionCallback | None = None,
    ) -> None:
        self.model_id = model_id
        self.model = model
        self.prompt_tokens = prompt_tokens
        self.on_complete = on_complete

    async def stream(self, handle: ResponseHandle) -> AsyncIterator[str]:
        logger.info("chat.stream_start", model=self.model_id)
        yield sse_data(stream_chunk(self.model_id, is_initial=True))

        parts: list[str] = []
        try:
            async for fragment in handle.text:
                parts.append(fragment)
                yield sse_data(stream_chunk(self.model_id, fragment))

            completion_tokens = await self.model.count_tokens("".join(parts))
            yield sse_data(
                stream_chunk(
                    self.model_id,
                    is_final=True,
                    usage=(self.prompt_tokens, completion_tokens),
                )
            )
            yield DONE_FRAME
            if self.on_complete:
                self.on_complete(completion_tokens)
            logger.info("chat.stream_complete", model=self.model_id, fragments=len(parts))
        except Exception as e:
            logger.exception("chat.stream_error", model=self.model_id, error=str(e))
            yield sse_data(error_response(_interrupted(e)))


class ResponsesStreamEmitter:
    """Writes the Responses API event sequence for one request.

    Every frame carries a ``sequence_number`` shared across the stream,
    starting at zero. Events, in order::

        response.created
        response.in_progress
        response.output_item.added     (reasoning, output_index 0)
        response.output_item.done      (reasoning)
        response.output_item.added     (message, output_index 1)
        response.content_part.added
        response.output_text.delta     (one per non-empty fragment)
        response.output_text.done
        response.content_part.done
        response.output_item.done      (message)
        response.completed

    Any exception ends the stream with one ``error`` event; frames already
    sent are not retracted.
    """

    REASONING_INDEX = 0
    MESSAGE_INDEX = 1
    CONTENT_INDEX = 0

    def __init__(
        self,
        response_id: str,
        model_id: str,
        model: LanguageModel,
        prompt_tokens: int,
        instructions: str,
        metadata: dict[str, Any] | None = None,
        options: EnvelopeOptions | None = None,
        on_complete: CompletionCallback | None = None,
    ) -> None:
        self.response_id = response_id
        self.model_id = model_id
        self.model = model
        self.prompt_tokens = prompt_tokens
        self.instructions = instructions
        self.metadata = metadata
        self.options = options or EnvelopeOptions()
        self.on_complete = on_complete
        self.sequence_number = 0
        created_at = self.options.created_at
        self.created_at = created_at if created_at is not None else int(time.time())

    def _event(self, event: str, payload: dict[str, Any]) -> str:
        frame = sse_event(event, {"type": event, "sequence_number": self.sequence_number, **payload})
        self.sequence_number += 1
        return frame

    def _envelope(
        self,
        status: str,
        completion_tokens: int = 0,
        output_items: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        options = EnvelopeOptions(
            created_at=self.created_at,
            output_items=output_items,
            include_output=output_items is not None,
            parallel_tool_calls=self.options.parallel_tool_calls,
            tools=self.options.tools,
            tool_choice=self.options.tool_choice,
        )
        return response_envelope(
            self.response_id,
            self.model_id,
            status,
            self.prompt_tokens,
            completion_tokens,
            self.instructions,
            self.metadata,
            options,
        )

    def _item_ref(self, item_id: str) -> dict[str, Any]:
        return {
            "item_id": item_id,
            "output_index": self.MESSAGE_INDEX,
            "content_index": self.CONTENT_INDEX,
        }

    async def stream(self, handle: ResponseHandle) -> AsyncIterator[str]:
        logger.info("responses.stream_start", response_id=self.response_id, model=self.model_id)
        try:
            in_progress = self._envelope("in_progress")
            yield self._event("response.created", {"response": in_progress})
            yield self._event("response.in_progress", {"response": in_progress})

            reasoning_id = generate_reasoning_id()
            encrypted = encrypted_reasoning(self.instructions, self.response_id)
            yield self._event(
                "response.output_item.added",
                {
                    "output_index": self.REASONING_INDEX,
                    "item": reasoning_item(reasoning_id, "in_progress", encrypted),
                },
            )
            reasoning_done = reasoning_item(reasoning_id, "completed", encrypted)
            yield self._event(
                "response.output_item.done",
                {"output_index": self.REASONING_INDEX, "item": reasoning_done},
            )

            message_id = generate_message_id()
            yield self._event(
                "response.output_item.added",
                {
                    "output_index": self.MESSAGE_INDEX,
                    "item": message_item(message_id, "in_progress", None),
                },
            )
            yield self._event(
                "response.content_part.added",
                {**self._item_ref(message_id), "part": output_text_part("")},
            )

            parts: list[str] = []
            async for fragment in handle.text:
                if not fragment:
                    continue
                parts.append(fragment)
                yield self._event(
                    "response.output_text.delta",
                    {
                        **self._item_ref(message_id),
                        "delta": fragment,
                        "logprobs": [],
                        "obfuscation": obfuscation_token(fragment, self.sequence_number),
                    },
                )

            text = "".join(parts)
            completion_tokens = await self.model.count_tokens(text)

            yield self._event(
                "response.output_text.done",
                {**self._item_ref(message_id), "text": text, "logprobs": []},
            )
            yield self._event(
                "response.content_part.done",
                {**self._item_ref(message_id), "part": output_text_part(text)},
            )
            message_done = message_item(message_id, "completed", text)
            yield self._event(
                "response.output_item.done",
                {"output_index": self.MESSAGE_INDEX, "item": message_done},
            )
            completed = self._envelope(
                "completed",
                completion_tokens,
                output_items=[reasoning_done, message_done],
            )
            yield self._event("response.completed", {"response": completed})

            if self.on_complete:
                self.on_complete(completion_tokens)
            logger.info(
                "responses.stream_complete",
                response_id=self.response_id,
                fragments=len(parts),
                events=self.sequence_number,
            )
        except Exception as e:
            logger.exception("responses.stream_error", response_id=self.response_id, error=str(e))
            yield sse_event("error", error_response(_interrupted(e)))
