"""Tests for token counting."""

import pytest

from llm_openai_bridge.utils.token_counter import ApproximateTokenCounter, get_counter


class TestApproximateTokenCounter:
    """Character-based estimation."""

    def test_empty_text_is_zero(self) -> None:
        assert ApproximateTokenCounter().count("") == 0

    def test_latin_text(self) -> None:
        # 8 chars / 4 + 1
        assert ApproximateTokenCounter().count("abcdefgh") == 3

    def test_cjk_text_counts_denser(self) -> None:
        counter = ApproximateTokenCounter()

        assert counter.count("你好世界") == int(4 / 1.5) + 1
        assert counter.count("你好世界") > counter.count("abcd")


class TestGetCounter:
    """Counter factory."""

    def test_default_is_approximate(self) -> None:
        assert isinstance(get_counter(), ApproximateTokenCounter)

    def test_unknown_method_falls_back(self) -> None:
        assert isinstance(get_counter("whatever"), ApproximateTokenCounter)

    def test_tiktoken(self) -> None:
        pytest.importorskip("tiktoken")

        counter = get_counter("tiktoken", model="gpt-4")

        assert counter.count("") == 0
        assert counter.count("hello world") >= 2
