"""Utility functions package."""

from llm_openai_bridge.utils.logger import configure_logging, get_logger
from llm_openai_bridge.utils.token_counter import get_counter

__all__ = ["configure_logging", "get_logger", "get_counter"]
