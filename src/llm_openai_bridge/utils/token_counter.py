"""Token counting for upstream adapters that cannot count tokens themselves."""

import re
from typing import Protocol


class TokenCounter(Protocol):
    """Anything that can turn text into a token count."""

    def count(self, text: str) -> int:
        ...


class ApproximateTokenCounter:
    """Character-based estimate.

    Roughly four characters per token for Latin text and 1.5 per token for
    CJK scripts. Empty text counts as zero.
    """

    CJK_RANGE = re.compile(r"[一-鿿぀-ゟ゠-ヿ가-힯]")

    def count(self, text: str) -> int:
        if not text:
            return 0

        cjk_chars = len(self.CJK_RANGE.findall(text))
        other_chars = len(text) - cjk_chars
        return int(cjk_chars / 1.5 + other_chars / 4) + 1


class TiktokenCounter:
    """Exact counts through tiktoken.

    Requires the ``tiktoken`` extra. Unknown model names fall back to the
    ``cl100k_base`` encoding.
    """

    def __init__(self, model: str = "gpt-4") -> None:
        try:
            import tiktoken
        except ImportError:
            raise ImportError("tiktoken not installed. Use: pip install 'llm-openai-bridge[tiktoken]'")

        try:
            self.encoding = tiktoken.encoding_for_model(model)
        except KeyError:
            self.encoding = tiktoken.get_encoding("cl100k_base")

    def count(self, text: str) -> int:
        if not text:
            return 0
        return len(self.encoding.encode(text))


def get_counter(method: str = "approximate", **kwargs) -> TokenCounter:
    """Get token counter instance.

    Args:
        method: "approximate" or "tiktoken"
        **kwargs: Passed to the tiktoken counter (``model``)

    Returns:
        TokenCounter instance
    """
    if method == "tiktoken":
        return TiktokenCounter(**kwargs)
    return ApproximateTokenCounter()
