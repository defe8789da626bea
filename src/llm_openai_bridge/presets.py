"""Named model presets: aliases over base models with reasoning defaults."""

from dataclasses import asdict, dataclass
from typing import Any, Literal

ReasoningEffort = Literal["low", "medium", "high", "default"]
ReasoningSummary = Literal["off", "detailed", "default"]


@dataclass(frozen=True)
class ReasoningOptions:
    """Reasoning knobs forwarded upstream when a preset is used."""

    effort: ReasoningEffort | None = None
    summary: ReasoningSummary | None = None
    budget_tokens: int | None = None

    def __post_init__(self) -> None:
        if self.budget_tokens is not None and self.budget_tokens < 0:
            raise ValueError("budget_tokens must be non-negative")

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True)
class ModelPreset:
    """A view over the first available model of ``base_model_ids``."""

    id: str
    base_model_ids: tuple[str, ...]
    display_name: str
    description: str
    reasoning: ReasoningOptions | None = None


GPT5_BASE_IDS = ("gpt-5", "openai/gpt-5")
GPT5_CODEX_BASE_IDS = ("gpt-5-codex", "openai/gpt-5-codex")


def _preset(preset_id: str, base_ids: tuple[str, ...], label: str, effort: ReasoningEffort) -> ModelPreset:
    return ModelPreset(
        id=preset_id,
        base_model_ids=base_ids,
        reasoning=ReasoningOptions(effort=effort),
        description=f"{label} with reasoning effort preset to {effort}.",
        display_name=f"{label} ({effort.capitalize()} Reasoning)",
    )


MODEL_PRESETS: tuple[ModelPreset, ...] = (
    _preset("gpt-5-high", GPT5_BASE_IDS, "GPT-5", "high"),
    _preset("gpt-5-medium", GPT5_BASE_IDS, "GPT-5", "medium"),
    _preset("gpt-5-low", GPT5_BASE_IDS, "GPT-5", "low"),
    _preset("gpt-5-codex-high", GPT5_CODEX_BASE_IDS, "GPT-5 Codex", "high"),
    _preset("gpt-5-codex-medium", GPT5_CODEX_BASE_IDS, "GPT-5 Codex", "medium"),
    _preset("gpt-5-codex-low", GPT5_CODEX_BASE_IDS, "GPT-5 Codex", "low"),
)


def find_preset(model_id: str | None) -> ModelPreset | None:
    """Look up a preset by id (case-insensitive, surrounding whitespace ignored)."""
    if not model_id:
        return None
    normalized = model_id.strip().lower()
    for preset in MODEL_PRESETS:
        if preset.id.lower() == normalized:
            return preset
    return None


def list_presets() -> tuple[ModelPreset, ...]:
    return MODEL_PRESETS
