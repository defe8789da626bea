"""OpenAI-compatible bridge over a single upstream chat model."""

__version__ = "0.3.0"
