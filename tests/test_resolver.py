"""Tests for model resolution."""

import pytest

from llm_openai_bridge.config import Settings
from llm_openai_bridge.errors import ModelUnavailable, UpstreamRequestFailed
from llm_openai_bridge.presets import find_preset, list_presets
from llm_openai_bridge.resolver import PROBE_MESSAGE, ModelResolver
from llm_openai_bridge.upstream import ModelSelector
from tests.conftest import FakeModel, FakeProvider


def _resolver(settings: Settings, *models: FakeModel) -> tuple[ModelResolver, FakeProvider]:
    provider = FakeProvider(models)
    return ModelResolver(provider, settings), provider


class TestPresets:
    """Preset registry."""

    def test_lookup_is_case_insensitive(self) -> None:
        preset = find_preset("  GPT-5-Codex-High ")

        assert preset is not None
        assert preset.id == "gpt-5-codex-high"
        assert preset.base_model_ids == ("gpt-5-codex", "openai/gpt-5-codex")
        assert preset.reasoning.to_dict() == {"effort": "high"}
        assert preset.display_name == "GPT-5 Codex (High Reasoning)"

    def test_unknown(self) -> None:
        assert find_preset("gpt-4") is None
        assert find_preset(None) is None

    def test_registry_ids(self) -> None:
        assert [p.id for p in list_presets()] == [
            "gpt-5-high",
            "gpt-5-medium",
            "gpt-5-low",
            "gpt-5-codex-high",
            "gpt-5-codex-medium",
            "gpt-5-codex-low",
        ]


class TestModelResolver:
    """Selector cascade, probing and caching."""

    async def test_exact_id(self, settings: Settings) -> None:
        target = FakeModel("claude-sonnet")
        resolver, provider = _resolver(settings, FakeModel("gpt-4"), target)

        model = await resolver.resolve("claude-sonnet")

        assert model is target
        assert provider.selectors[0] == ModelSelector(id="claude-sonnet")

    async def test_family_selector(self, settings: Settings) -> None:
        target = FakeModel("vendor/claude-sonnet-4", family="claude-sonnet")
        resolver, provider = _resolver(settings, target)

        model = await resolver.resolve("claude-sonnet")

        assert model is target
        assert provider.selectors[:2] == [ModelSelector(id="claude-sonnet"), ModelSelector(family="claude-sonnet")]

    async def test_cascade_order_and_wildcard_fallback(self, settings: Settings) -> None:
        other = FakeModel("mistral-large")
        resolver, provider = _resolver(settings, other)

        model = await resolver.resolve("gpt-4o")

        assert model is other
        assert provider.selectors == [
            ModelSelector(id="gpt-4o"),
            ModelSelector(family="gpt-4o"),
            ModelSelector(id="gpt-4"),
            ModelSelector(family="gpt-4"),
            ModelSelector(),
        ]

    async def test_default_model_when_none_requested(self, settings: Settings) -> None:
        default = FakeModel("gpt-4")
        resolver, provider = _resolver(settings, FakeModel("other"), default)

        assert await resolver.resolve(None) is default
        assert provider.selectors[0] == ModelSelector(id="gpt-4")

    async def test_preset_binds_first_resolvable_base_id(self, settings: Settings) -> None:
        routed = FakeModel("openai/gpt-5-codex", family="gpt-5-codex-routed")
        resolver, _ = _resolver(settings, routed)

        model = await resolver.resolve("gpt-5-codex-high")

        assert model is routed
        for alias in ("gpt-5-codex-high", "gpt-5-codex", "openai/gpt-5-codex"):
            assert resolver.cached(alias) is routed

    async def test_preset_prefers_earlier_base_id(self, settings: Settings) -> None:
        primary = FakeModel("gpt-5")
        resolver, _ = _resolver(settings, FakeModel("openai/gpt-5"), primary)

        assert await resolver.resolve("gpt-5-low") is primary

    async def test_cache_hit_skips_selection_and_probe(self, settings: Settings) -> None:
        target = FakeModel("claude-sonnet")
        resolver, provider = _resolver(settings, target)

        await resolver.resolve("claude-sonnet")
        selections = len(provider.selectors)
        probes = len(target.sent)

        assert await resolver.resolve("CLAUDE-SONNET") is target
        assert len(provider.selectors) == selections
        assert len(target.sent) == probes

    async def test_cache_records_every_alias(self, settings: Settings) -> None:
        target = FakeModel("vendor/claude", family="claude")
        resolver, _ = _resolver(settings, target)

        await resolver.resolve("claude")

        assert resolver.cached("vendor/claude") is target
        assert resolver.cached("claude") is target
        assert resolver.cache_size == 2

    async def test_probe_is_sent(self, settings: Settings) -> None:
        target = FakeModel("gpt-4")
        resolver, _ = _resolver(settings, target)

        await resolver.resolve("gpt-4")

        assert target.sent[0][0] == [PROBE_MESSAGE]

    async def test_failed_probe(self, settings: Settings) -> None:
        target = FakeModel("gpt-4")
        target.return_none = True
        resolver, _ = _resolver(settings, target)

        with pytest.raises(UpstreamRequestFailed, match="test request failed"):
            await resolver.resolve("gpt-4")
        assert resolver.cache_size == 0

    async def test_selector_errors_are_skipped(self, settings: Settings) -> None:
        class FlakyProvider(FakeProvider):
            async def select_models(self, selector):
                if selector.id:
                    self.selectors.append(selector)
                    raise RuntimeError("selector rejected")
                return await super().select_models(selector)

        target = FakeModel("gpt-4")
        resolver = ModelResolver(FlakyProvider([target]), settings)

        assert await resolver.resolve("gpt-4") is target

    async def test_no_models(self, settings: Settings) -> None:
        resolver, _ = _resolver(settings)

        with pytest.raises(ModelUnavailable, match="No language models available"):
            await resolver.resolve("gpt-4")

    async def test_provider_failure_everywhere(self, settings: Settings) -> None:
        resolver, provider = _resolver(settings, FakeModel("gpt-4"))
        provider.error = RuntimeError("upstream API missing")

        with pytest.raises(ModelUnavailable):
            await resolver.resolve("gpt-4")
