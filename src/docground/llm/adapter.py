"""Adapter abstractions for generative model clients."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Awaitable, Union

from docground.errors import ModelCallFailure

MOCK_PREFIX = "MOCK_ANSWER: "


class LLMAdapter(ABC):
    """Common contract for the external generative model client.

    ``generate`` may return the text directly or an awaitable; failures must
    surface as :class:`ModelCallFailure`. Retries are the client's concern.
    """

    model_name: str = "unknown"

    @abstractmethod
    def generate(
        self, prompt: str, max_tokens: int | None = None
    ) -> Union[str, Awaitable[str]]:
        """Generate a completion for the provided prompt."""


class MockLLMAdapter(LLMAdapter):
    """Return a deterministic response for any prompt."""

    model_name = "mock"

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.prompts: list[str] = []

    def generate(self, prompt: str, max_tokens: int | None = None) -> str:
        self.prompts.append(prompt)
        if self.fail:
            raise ModelCallFailure("Mock model configured to fail")
        answer = f"{MOCK_PREFIX}{prompt[:100]}"
        if max_tokens is not None and max_tokens > 0:
            answer = " ".join(answer.split()[:max_tokens])
        return answer


__all__ = ["LLMAdapter", "MOCK_PREFIX", "MockLLMAdapter"]
