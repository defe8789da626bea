"""Boundary types for the upstream chat model capability.

The bridge never talks to a vendor API directly. It consumes a
``ModelProvider`` that can select ``LanguageModel`` handles, and each handle
can ``send`` a conversation and return a ``ResponseHandle`` whose text arrives
as a single-pass ``FragmentStream``.
"""

from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, runtime_checkable

Role = Literal["system", "user", "assistant"]


@dataclass(frozen=True)
class Message:
    """Flattened conversation message sent upstream."""

    role: Role
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class ModelSelector:
    """Criteria for ``ModelProvider.select_models``. Empty means any model."""

    id: str | None = None
    family: str | None = None
    vendor: str | None = None

    def matches(self, model: "LanguageModel") -> bool:
        if self.id and model.id != self.id:
            return False
        if self.family and model.family != self.family:
            return False
        if self.vendor and model.vendor != self.vendor:
            return False
        return True

    def describe(self) -> dict[str, str]:
        return {k: v for k, v in (("id", self.id), ("family", self.family), ("vendor", self.vendor)) if v}


@dataclass
class CancellationToken:
    """Per-request cancellation flag handed to ``send``."""

    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class FragmentStream:
    """Lazy, forward-only sequence of text fragments.

    Can be iterated exactly once; a second iteration raises ``RuntimeError``.
    Both the buffering consumer (``drain``) and the streaming consumers go
    through ``__aiter__`` so they see identical fragments.
    """

    def __init__(
        self,
        source: AsyncIterable[str],
        on_close: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self._source = source
        self._on_close = on_close
        self._consumed = False

    def __aiter__(self) -> AsyncIterator[str]:
        if self._consumed:
            raise RuntimeError("Fragment stream has already been consumed")
        self._consumed = True
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        async for fragment in self._source:
            yield "" if fragment is None else str(fragment)

    async def drain(self) -> str:
        """Concatenate every remaining fragment."""
        parts = []
        async for fragment in self:
            parts.append(fragment)
        return "".join(parts)

    async def aclose(self) -> None:
        """Release the underlying source without reading it."""
        self._consumed = True
        close = getattr(self._source, "aclose", None)
        if close is not None:
            await close()
        if self._on_close is not None:
            await self._on_close()


@dataclass
class ResponseHandle:
    """Result of a successful ``send``."""

    text: FragmentStream
    metadata: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class LanguageModel(Protocol):
    """A concrete upstream model."""

    id: str
    family: str
    name: str
    vendor: str
    version: str
    max_input_tokens: int

    async def send(
        self,
        messages: list[Message],
        options: dict[str, Any] | None = None,
        cancellation: CancellationToken | None = None,
    ) -> ResponseHandle | None:
        ...

    async def count_tokens(self, text: str) -> int:
        ...


@runtime_checkable
class ModelProvider(Protocol):
    """Source of ``LanguageModel`` handles."""

    async def select_models(self, selector: ModelSelector) -> list[LanguageModel]:
        ...
