"""Test suite for the OpenAI-compatible bridge."""
