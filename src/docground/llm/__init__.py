"""Generative model client contracts."""

from .adapter import MOCK_PREFIX, LLMAdapter, MockLLMAdapter

__all__ = ["LLMAdapter", "MOCK_PREFIX", "MockLLMAdapter"]
