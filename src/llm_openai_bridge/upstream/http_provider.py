"""Upstream capability backed by an OpenAI-compatible HTTP endpoint."""

import json
from collections.abc import AsyncIterator
from typing import Any

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from llm_openai_bridge.config import Settings
from llm_openai_bridge.errors import UpstreamRequestFailed
from llm_openai_bridge.upstream.base import (
    CancellationToken,
    FragmentStream,
    LanguageModel,
    Message,
    ModelSelector,
    ResponseHandle,
)
from llm_openai_bridge.utils import get_counter, get_logger
from llm_openai_bridge.utils.token_counter import TokenCounter

logger = get_logger(__name__)


class HttpLanguageModel:
    """One model advertised by the upstream ``/models`` listing."""

    def __init__(self, provider: "HttpModelProvider", info: dict[str, Any]) -> None:
        self._provider = provider
        self.id = str(info["id"])
        self.family = str(info.get("family") or self.id.split("/")[-1])
        self.name = str(info.get("name") or self.id)
        self.vendor = str(info.get("owned_by") or info.get("vendor") or "unknown")
        self.version = str(info.get("version") or "")
        self.max_input_tokens = int(info.get("max_input_tokens") or info.get("context_length") or 0)

    def __repr__(self) -> str:
        return f"HttpLanguageModel(id={self.id!r}, family={self.family!r})"

    async def send(
        self,
        messages: list[Message],
        options: dict[str, Any] | None = None,
        cancellation: CancellationToken | None = None,
    ) -> ResponseHandle:
        body: dict[str, Any] = {
            "model": self.id,
            "messages": [m.to_dict() for m in messages],
            "stream": True,
        }
        reasoning = ((options or {}).get("model_options") or {}).get("reasoning") or {}
        effort = reasoning.get("effort")
        if effort and effort != "default":
            body["reasoning_effort"] = effort

        response = await self._provider.open_stream(body)
        fragments = self._provider.iter_fragments(response, cancellation or CancellationToken())
        return ResponseHandle(
            text=FragmentStream(fragments, on_close=response.aclose),
            metadata={"model": self.id},
        )

    async def count_tokens(self, text: str) -> int:
        return self._provider.counter.count(text)


class HttpModelProvider:
    """Client for an OpenAI-compatible upstream (``/models`` and ``/chat/completions``)."""

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
        counter: TokenCounter | None = None,
    ) -> None:
        """Initialize provider.

        Args:
            settings: Application settings
            transport: Optional httpx transport (tests use ``httpx.MockTransport``)
            counter: Token counter used by every model of this provider
        """
        self.settings = settings
        self.base_url = settings.upstream_base_url.rstrip("/")
        self.max_retries = max(1, settings.max_retries)
        self.counter = counter or get_counter(settings.token_counter)
        headers = {"Content-Type": "application/json"}
        if settings.upstream_api_key:
            headers["Authorization"] = f"Bearer {settings.upstream_api_key}"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=settings.request_timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _fetch_models(self) -> list[dict[str, Any]]:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        ):
            with attempt:
                response = await self._client.get("/models")
                response.raise_for_status()
                payload = response.json()
        data = payload.get("data") if isinstance(payload, dict) else payload
        return [item for item in data or [] if isinstance(item, dict) and item.get("id")]

    async def select_models(self, selector: ModelSelector) -> list[LanguageModel]:
        """List upstream models matching ``selector``."""
        models = [HttpLanguageModel(self, info) for info in await self._fetch_models()]
        selected = [m for m in models if selector.matches(m)]
        logger.debug("upstream.select_models", selector=selector.describe(), count=len(selected))
        return selected

    async def open_stream(self, body: dict[str, Any]) -> httpx.Response:
        """Start a streamed chat completion.

        The HTTP status is checked before returning so that upstream rejections
        surface as a failed ``send`` rather than a broken fragment stream.
        """
        request = self._client.build_request("POST", "/chat/completions", json=body)
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise UpstreamRequestFailed(f"Upstream request failed: {e}") from e

        if response.status_code >= 400:
            detail = (await response.aread()).decode("utf-8", "ignore")
            await response.aclose()
            raise UpstreamRequestFailed(
                f"Upstream returned HTTP {response.status_code}: {_error_message(detail)}"
            )

        return response

    async def iter_fragments(
        self, response: httpx.Response, cancellation: CancellationToken
    ) -> AsyncIterator[str]:
        try:
            async for line in response.aiter_lines():
                if cancellation.cancelled:
                    logger.info("upstream.cancelled")
                    break
                if not line.startswith("data:"):
                    continue
                data = line[len("data:"):].strip()
                if data == "[DONE]":
                    break
                try:
                    chunk = json.loads(data)
                except json.JSONDecodeError:
                    logger.warning("upstream.bad_chunk", data=data[:200])
                    continue
                if not isinstance(chunk, dict):
                    continue
                if chunk.get("error"):
                    raise UpstreamRequestFailed(_error_message(json.dumps(chunk)))
                for choice in chunk.get("choices") or []:
                    content = (choice.get("delta") or {}).get("content")
                    if content is not None:
                        yield content
        finally:
            await response.aclose()


def _error_message(detail: str) -> str:
    try:
        payload = json.loads(detail)
    except json.JSONDecodeError:
        return detail.strip()[:500] or "no details"
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict):
        return str(error.get("message") or error)
    if error:
        return str(error)
    return detail.strip()[:500]
