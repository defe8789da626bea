"""Resolve requested model ids (or presets) to upstream model handles."""

from dataclasses import dataclass

from llm_openai_bridge.config import Settings
from llm_openai_bridge.errors import ModelUnavailable, UpstreamRequestFailed
from llm_openai_bridge.presets import ModelPreset, find_preset
from llm_openai_bridge.upstream.base import LanguageModel, Message, ModelProvider, ModelSelector
from llm_openai_bridge.utils import get_logger

logger = get_logger(__name__)

PROBE_MESSAGE = Message(role="user", content="Test connection")


@dataclass(frozen=True)
class SelectorAttempt:
    """A selector plus the candidate id it was built for (None for the wildcard)."""

    selector: ModelSelector
    origin: str | None


def _key(model_id: str) -> str:
    return model_id.strip().lower()


def _dedupe(ids: list[str | None]) -> list[str]:
    seen: set[str] = set()
    result = []
    for model_id in ids:
        if not model_id or not model_id.strip():
            continue
        key = _key(model_id)
        if key in seen:
            continue
        seen.add(key)
        result.append(model_id.strip())
    return result


class ModelResolver:
    """Selector cascade with connectivity probing and an alias cache.

    The cache maps every alias that once led to a model (requested id, preset
    id, preset base ids, canonical id, family) to the shared model handle. It
    lives as long as the resolver and is never invalidated.
    """

    def __init__(self, provider: ModelProvider, settings: Settings) -> None:
        self.provider = provider
        self.settings = settings
        self._cache: dict[str, LanguageModel] = {}
        self._verified: set[str] = set()

    @property
    def default_model_id(self) -> str:
        return self.settings.default_model

    def cached(self, model_id: str) -> LanguageModel | None:
        return self._cache.get(_key(model_id))

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    async def resolve(self, requested_id: str | None = None) -> LanguageModel:
        """Return the upstream model for ``requested_id``.

        Raises:
            ModelUnavailable: every selector came back empty or failed
            UpstreamRequestFailed: the connectivity probe failed
        """
        preset = find_preset(requested_id)
        if preset:
            candidates = list(preset.base_model_ids)
            logger.info(
                "resolver.preset",
                preset=preset.id,
                base_model_ids=candidates,
            )
        else:
            candidates = [requested_id.strip()] if requested_id and requested_id.strip() else []

        default_id = self.default_model_id
        lookup_ids = _dedupe([requested_id, preset.id if preset else None, *candidates, default_id])
        for model_id in lookup_ids:
            hit = self._cache.get(_key(model_id))
            if hit is not None:
                logger.debug("resolver.cache_hit", alias=model_id, model=hit.id)
                return hit

        for attempt in self._build_attempts(candidates, default_id):
            try:
                models = await self.provider.select_models(attempt.selector)
            except Exception as e:
                logger.warning(
                    "resolver.selector_failed",
                    selector=attempt.selector.describe(),
                    error=str(e),
                )
                continue
            if not models:
                continue

            model = self._pick(models, attempt.origin, default_id)
            logger.info(
                "resolver.selected",
                selector=attempt.selector.describe(),
                available=len(models),
                model=model.id,
            )
            await self._verify(model)
            self._remember(model, requested_id, preset)
            return model

        raise ModelUnavailable(
            "No language models available. Please check the upstream model provider connection."
        )

    def _build_attempts(self, candidates: list[str], default_id: str | None) -> list[SelectorAttempt]:
        attempts = []
        for candidate in candidates:
            attempts.append(SelectorAttempt(ModelSelector(id=candidate), candidate))
            attempts.append(SelectorAttempt(ModelSelector(family=candidate), candidate))
        if default_id and _key(default_id) not in {_key(c) for c in candidates}:
            attempts.append(SelectorAttempt(ModelSelector(id=default_id), default_id))
            attempts.append(SelectorAttempt(ModelSelector(family=default_id), default_id))
        attempts.append(SelectorAttempt(ModelSelector(), None))
        return attempts

    @staticmethod
    def _matches(model: LanguageModel, model_id: str | None) -> bool:
        if not model_id:
            return False
        key = _key(model_id)
        return _key(model.id or "") == key or _key(model.family or "") == key

    def _pick(self, models: list[LanguageModel], origin: str | None, default_id: str | None) -> LanguageModel:
        for model in models:
            if self._matches(model, origin):
                return model
        for model in models:
            if self._matches(model, default_id):
                return model
        return models[0]

    async def _verify(self, model: LanguageModel) -> None:
        if model.id in self._verified:
            return
        handle = await model.send([PROBE_MESSAGE], {})
        if not handle:
            raise UpstreamRequestFailed("Language model test request failed")
        await handle.text.aclose()
        self._verified.add(model.id)
        logger.info("resolver.verified", model=model.id)

    def _remember(self, model: LanguageModel, requested_id: str | None, preset: ModelPreset | None) -> None:
        aliases = [requested_id, model.id, model.family]
        if preset:
            aliases.extend([preset.id, *preset.base_model_ids])
        for alias in _dedupe(aliases):
            self._cache[_key(alias)] = model
        logger.debug("resolver.cached", model=model.id, cache_size=len(self._cache))
