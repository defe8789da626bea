"""Builders for Chat Completions and Responses API payloads.

Everything here is pure: the only inputs that vary between calls are the
wall clock and the random suffix of generated ids.
"""

import secrets
import time
from dataclasses import dataclass, field, replace
from typing import Any

from llm_openai_bridge.models import (
    AssistantMessage,
    ChatCompletionResponse,
    Choice,
    ResponseEnvelope,
    ResponseText,
    ResponseUsage,
    StreamChoice,
    StreamChunk,
    Usage,
)

TOOL_CHOICE_LITERALS = ("auto", "none", "required")
BASE36_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(BASE36_ALPHABET[rem])
    return "".join(reversed(digits))


def _now_ms() -> int:
    return int(time.time() * 1000)


def _suffix() -> str:
    return _base36(_now_ms()) + _base36(secrets.randbits(40))


def chat_completion_id() -> str:
    return f"chatcmpl-{_now_ms()}"


def generate_response_id() -> str:
    return f"resp_{_suffix()}"


def generate_message_id() -> str:
    return f"msg_{_suffix()}"


def generate_reasoning_id() -> str:
    return f"rs_{_suffix()}"


def _usage(prompt_tokens: int, completion_tokens: int) -> Usage:
    return Usage(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=prompt_tokens + completion_tokens,
    )


def chat_completion(
    model_id: str,
    text: str,
    prompt_tokens: int,
    completion_tokens: int,
) -> dict[str, Any]:
    """Non-streaming ``chat.completion`` object with a single choice."""
    response = ChatCompletionResponse(
        id=chat_completion_id(),
        created=int(time.time()),
        model=model_id,
        choices=[Choice(message=AssistantMessage(content=text), finish_reason="stop")],
        usage=_usage(prompt_tokens, completion_tokens),
    )
    return response.model_dump()


def stream_chunk(
    model_id: str,
    fragment: str | None = None,
    is_initial: bool = False,
    is_final: bool = False,
    usage: tuple[int, int] | None = None,
) -> dict[str, Any]:
    """One ``chat.completion.chunk``.

    Args:
        model_id: Model reported to the client
        fragment: Text for a mid-stream chunk; an empty string is still sent
        is_initial: Role-only opening chunk
        is_final: Closing chunk with ``finish_reason`` set
        usage: ``(prompt_tokens, completion_tokens)`` for the closing chunk
    """
    if is_initial:
        delta: dict[str, Any] = {"role": "assistant"}
    elif fragment is not None:
        delta = {"content": fragment}
    else:
        delta = {}

    chunk = StreamChunk(
        id=chat_completion_id(),
        created=int(time.time()),
        model=model_id,
        choices=[StreamChoice(delta=delta, finish_reason="stop" if is_final else None)],
    )
    if is_final and usage is not None:
        chunk.usage = _usage(*usage)

    payload = chunk.model_dump()
    if payload["usage"] is None:
        del payload["usage"]
    if not is_final:
        del payload["choices"][0]["finish_reason"]
    return payload


def output_text_part(text: str) -> dict[str, Any]:
    return {"type": "output_text", "text": text, "annotations": [], "logprobs": []}


def message_item(item_id: str, status: str, text: str | None) -> dict[str, Any]:
    """Assistant ``message`` output item; ``text=None`` gives empty content."""
    return {
        "id": item_id,
        "type": "message",
        "status": status,
        "role": "assistant",
        "content": [] if text is None else [output_text_part(text)],
    }


def reasoning_item(item_id: str, status: str, encrypted_content: str) -> dict[str, Any]:
    return {
        "id": item_id,
        "type": "reasoning",
        "status": status,
        "encrypted_content": encrypted_content,
        "summary": [],
    }


def resolve_tool_choice(tool_choice: Any, tools: list[dict[str, Any]]) -> str | dict[str, Any]:
    """Explicit literal or ``{type: tool}`` object wins, else depends on tools."""
    if isinstance(tool_choice, str) and tool_choice in TOOL_CHOICE_LITERALS:
        return tool_choice
    if (
        isinstance(tool_choice, dict)
        and tool_choice.get("type") == "tool"
        and isinstance(tool_choice.get("name"), str)
    ):
        return tool_choice
    return "auto" if tools else "none"


@dataclass
class EnvelopeOptions:
    """Optional knobs for ``response_envelope``."""

    created_at: int | None = None
    output_text: str = ""
    output_items: list[dict[str, Any]] | None = None
    include_output: bool = True
    parallel_tool_calls: bool = True
    tools: list[dict[str, Any]] = field(default_factory=list)
    tool_choice: Any = None


def _text_of_first_message(items: list[dict[str, Any]]) -> str:
    for item in items:
        if item.get("type") != "message":
            continue
        parts = item.get("content") or []
        return "".join(
            part.get("text", "")
            for part in parts
            if isinstance(part, dict) and isinstance(part.get("text"), str)
        )
    return ""


def response_envelope(
    response_id: str,
    model_id: str,
    status: str,
    prompt_tokens: int,
    completion_tokens: int,
    instructions: str | None = None,
    metadata: dict[str, Any] | None = None,
    options: EnvelopeOptions | None = None,
) -> dict[str, Any]:
    """Responses API ``response`` object.

    With ``include_output`` off the envelope models a response that has
    produced nothing yet: empty output, empty text and ``usage`` set to None.
    """
    options = options or EnvelopeOptions()
    tools = list(options.tools or [])

    if options.include_output:
        if options.output_items is not None:
            output = list(options.output_items)
            output_text = _text_of_first_message(output)
        else:
            output_text = options.output_text
            output = [message_item(generate_message_id(), status, output_text)]
        usage = ResponseUsage(
            input_tokens=prompt_tokens,
            output_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        )
    else:
        output = []
        output_text = ""
        usage = None

    envelope = ResponseEnvelope(
        id=response_id,
        created_at=options.created_at if options.created_at is not None else int(time.time()),
        model=model_id,
        status=status,
        output=output,
        output_text=output_text,
        text=ResponseText(value=output_text),
        usage=usage,
        instructions=instructions or "",
        metadata=dict(metadata or {}),
        parallel_tool_calls=options.parallel_tool_calls,
        tool_choice=resolve_tool_choice(options.tool_choice, tools),
        tools=tools,
    )
    return envelope.model_dump()


def responses_response(
    response_id: str,
    model_id: str,
    text: str,
    prompt_tokens: int,
    completion_tokens: int,
    status: str = "completed",
    instructions: str | None = None,
    metadata: dict[str, Any] | None = None,
    options: EnvelopeOptions | None = None,
) -> dict[str, Any]:
    """Envelope carrying ``text`` as its output (non-streaming result)."""
    options = replace(options or EnvelopeOptions(), output_text=text, include_output=True)
    return response_envelope(
        response_id,
        model_id,
        status,
        prompt_tokens,
        completion_tokens,
        instructions,
        metadata,
        options,
    )


def error_response(error: Any, error_type: str = "server_error") -> dict[str, Any]:
    """Uniform ``{"error": {"message", "type"}}`` envelope."""
    if isinstance(error, BaseException):
        message = str(getattr(error, "message", None) or error) or type(error).__name__
    else:
        message = "Unknown error"
    return {"error": {"message": message, "type": error_type}}
