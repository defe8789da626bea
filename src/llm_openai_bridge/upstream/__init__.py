"""Upstream chat model capability."""

from llm_openai_bridge.upstream.base import (
    CancellationToken,
    FragmentStream,
    LanguageModel,
    Message,
    ModelProvider,
    ModelSelector,
    ResponseHandle,
)
from llm_openai_bridge.upstream.http_provider import HttpLanguageModel, HttpModelProvider

__all__ = [
    "CancellationToken",
    "FragmentStream",
    "LanguageModel",
    "Message",
    "ModelProvider",
    "ModelSelector",
    "ResponseHandle",
    "HttpLanguageModel",
    "HttpModelProvider",
]
