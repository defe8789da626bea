"""Pydantic models for API requests and responses.

Each endpoint validates its body exactly once through ``parse_chat_request``
or ``parse_responses_request``; everything downstream works with the typed
result.
"""

from collections.abc import Mapping
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from llm_openai_bridge.errors import InvalidRequestShape, UnsupportedFeature

CHAT_ROLES = ("system", "user", "assistant")
TRUTHY_STRINGS = {"1", "true", "yes", "on"}


class ChatMessage(BaseModel):
    """Chat message model."""

    role: Literal["system", "user", "assistant"]
    content: str = Field(min_length=1)
    name: str | None = None


class ChatCompletionRequest(BaseModel):
    """OpenAI-compatible chat completion request."""

    model_config = ConfigDict(extra="ignore")

    messages: list[ChatMessage]
    stream: bool = False
    model: str | None = None


class ResponsesRequest(BaseModel):
    """OpenAI Responses API request; ``input`` is normalized later."""

    model_config = ConfigDict(extra="ignore")

    input: Any = None
    model: str | None = None
    stream: bool | str | None = None
    instructions: Any = None
    previous_response_id: Any = None
    metadata: dict[str, Any] | None = None
    parallel_tool_calls: bool | None = None
    tools: list[dict[str, Any]] | None = None
    tool_choice: Any = None
    messages: Any = None

    def wants_stream(self, headers: Mapping[str, str] | None = None) -> bool:
        """Decide whether to stream.

        A truthy ``stream`` field wins. Otherwise any of the SDK streaming
        hints in ``headers`` turns streaming on.
        """
        if isinstance(self.stream, bool) and self.stream:
            return True
        if isinstance(self.stream, str) and self.stream.strip().lower() in TRUTHY_STRINGS:
            return True
        if not headers:
            return False
        if headers.get("x-stainless-helper-method", "").strip().lower() == "stream":
            return True
        if headers.get("x-openai-stream", "").strip().lower() == "true":
            return True
        return "text/event-stream" in headers.get("accept", "").lower()


class Usage(BaseModel):
    """Chat completion token usage."""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class AssistantMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: str


class Choice(BaseModel):
    """Chat completion choice."""

    index: int = 0
    message: AssistantMessage
    finish_reason: str | None = "stop"


class ChatCompletionResponse(BaseModel):
    """OpenAI-compatible chat completion response."""

    id: str
    object: Literal["chat.completion"] = "chat.completion"
    created: int
    model: str
    choices: list[Choice]
    usage: Usage


class StreamChoice(BaseModel):
    """Streaming chat completion choice."""

    index: int = 0
    delta: dict[str, Any]
    finish_reason: str | None = None


class StreamChunk(BaseModel):
    """OpenAI-compatible streaming response chunk."""

    id: str
    object: Literal["chat.completion.chunk"] = "chat.completion.chunk"
    created: int
    model: str
    choices: list[StreamChoice]
    usage: Usage | None = None


class ResponseUsage(BaseModel):
    input_tokens: int
    output_tokens: int
    total_tokens: int


class ResponseText(BaseModel):
    value: str
    annotations: list[Any] = Field(default_factory=list)
    format: dict[str, str] = Field(default_factory=lambda: {"type": "text"})


class ResponseEnvelope(BaseModel):
    """Responses API ``response`` object at any point of its lifecycle."""

    id: str
    object: Literal["response"] = "response"
    created_at: int
    model: str
    status: Literal["in_progress", "completed", "failed", "incomplete"]
    background: bool = False
    error: dict[str, Any] | None = None
    incomplete_details: dict[str, Any] | None = None
    output: list[dict[str, Any]]
    output_text: str
    text: ResponseText
    usage: ResponseUsage | None
    instructions: str
    metadata: dict[str, Any]
    parallel_tool_calls: bool = True
    tool_choice: str | dict[str, Any]
    tools: list[dict[str, Any]]


class ModelCard(BaseModel):
    """Entry of the ``/v1/models`` listing."""

    id: str
    object: Literal["model"] = "model"
    created: int
    owned_by: str
    metadata: dict[str, Any]


class ModelList(BaseModel):
    object: Literal["list"] = "list"
    data: list[ModelCard]


def _describe(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"Invalid request field '{location}': {first.get('msg')}" if location else str(first.get("msg"))


def parse_chat_request(body: Any) -> ChatCompletionRequest:
    """Validate a ``/v1/chat/completions`` body.

    Raises:
        InvalidRequestShape: the body, ``messages`` or one of its entries is malformed
    """
    if not isinstance(body, dict):
        raise InvalidRequestShape("Request body must be a JSON object")

    messages = body.get("messages")
    if not isinstance(messages, list):
        raise InvalidRequestShape("Messages must be an array")

    for index, message in enumerate(messages):
        prefix = f"Invalid message at index {index}"
        if not isinstance(message, dict):
            raise InvalidRequestShape(f"{prefix}: message must be an object")
        role = message.get("role")
        if not role or not isinstance(role, str):
            raise InvalidRequestShape(f"{prefix}: missing or invalid 'role' property")
        content = message.get("content")
        if not content or not isinstance(content, str):
            raise InvalidRequestShape(f"{prefix}: missing or invalid 'content' property")
        if role not in CHAT_ROLES:
            raise InvalidRequestShape(f"{prefix}: role must be 'system', 'user', or 'assistant'")

    try:
        return ChatCompletionRequest.model_validate(body)
    except ValidationError as e:
        raise InvalidRequestShape(_describe(e)) from e


def parse_responses_request(body: Any) -> ResponsesRequest:
    """Validate a ``/v1/responses`` body.

    Raises:
        UnsupportedFeature: ``previous_response_id`` was supplied
        InvalidRequestShape: a typed field has the wrong shape
    """
    if not isinstance(body, dict):
        raise InvalidRequestShape("Request body must be a JSON object")

    if body.get("previous_response_id"):
        raise UnsupportedFeature("previous_response_id is not supported yet.")

    try:
        return ResponsesRequest.model_validate(body)
    except ValidationError as e:
        raise InvalidRequestShape(_describe(e)) from e
