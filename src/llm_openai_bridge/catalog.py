"""Model discovery for ``GET /v1/models``."""

import time
from typing import Any

from llm_openai_bridge.models import ModelCard
from llm_openai_bridge.presets import list_presets
from llm_openai_bridge.upstream.base import ModelProvider, ModelSelector
from llm_openai_bridge.utils import get_logger

logger = get_logger(__name__)


class NoModelsDiscovered(Exception):
    """Every discovery selector came back empty or failed."""


def discovery_selectors(vendors: list[str]) -> list[ModelSelector]:
    return [ModelSelector(), *(ModelSelector(vendor=vendor) for vendor in vendors if vendor)]


async def discover_models(provider: ModelProvider, vendors: list[str]) -> list[dict[str, Any]]:
    """List upstream models plus one alias entry per resolvable preset.

    Entries are keyed by ``id`` (falling back to family, then name); the
    first selector to report an id wins. The result is sorted by id.

    Raises:
        NoModelsDiscovered: nothing was found
    """
    created = int(time.time())
    cards: dict[str, ModelCard] = {}

    for selector in discovery_selectors(vendors):
        try:
            models = await provider.select_models(selector)
        except Exception as e:
            logger.warning("models.selector_failed", selector=selector.describe(), error=str(e))
            continue

        for model in models or []:
            model_id = model.id or model.family or model.name
            if not model_id or model_id in cards:
                continue
            cards[model_id] = ModelCard(
                id=model_id,
                created=created,
                owned_by=model.vendor or "unknown",
                metadata={
                    "name": model.name,
                    "family": model.family,
                    "version": model.version,
                    "max_input_tokens": model.max_input_tokens,
                },
            )

    if not cards:
        raise NoModelsDiscovered("No models available")

    for preset in list_presets():
        if preset.id in cards:
            continue
        base = next((cards[c] for c in preset.base_model_ids if c in cards), None)
        if base is None:
            continue
        cards[preset.id] = base.model_copy(
            update={
                "id": preset.id,
                "metadata": {
                    **base.metadata,
                    "name": preset.display_name,
                    "alias_for": base.id,
                    "preset_reasoning": preset.reasoning.to_dict() if preset.reasoning else None,
                    "preset_description": preset.description,
                },
            }
        )

    return [cards[model_id].model_dump() for model_id in sorted(cards)]
