"""Utilities for constructing prompts for the study assistant."""
from __future__ import annotations

from pathlib import Path

_PROMPTS_DIR = Path(__file__).resolve().parent / "prompts"
_SYSTEM_PROMPT_PATH = _PROMPTS_DIR / "system.txt"

NO_CONTEXT_TEXT = "No document context is available."


def _load_template(path: Path) -> str:
    """Read and trim the contents of a template file."""
    return path.read_text(encoding="utf-8").strip()


SYSTEM_PROMPT = _load_template(_SYSTEM_PROMPT_PATH)


def build_prompt(message: str, grounding: str) -> str:
    """Compose the full prompt: system text, grounding text, then the user turn.

    The grounding text is inserted unmodified.
    """

    if message is None:
        raise ValueError("message must not be None")

    context_block = grounding if grounding and grounding.strip() else NO_CONTEXT_TEXT
    return f"{SYSTEM_PROMPT}\n\n{context_block}\n\nUser: {message.strip()}\nAssistant:"


__all__ = ["NO_CONTEXT_TEXT", "SYSTEM_PROMPT", "build_prompt"]
