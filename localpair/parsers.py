"""
Text parsing utilities for localpair.
"""

from pathlib import Path
from typing import Optional

from localpair.config import DEFAULT_SYSTEM_PROMPT, ProviderKind


# Names the UI and .env use for OpenAI-compatible servers
_OPENAI_PROVIDER_NAMES = {"lmstudio", "lm-studio", "openai", "openai-compatible", "vllm", "llamacpp"}


def parse_provider(provider_text: str) -> ProviderKind:
    """
    Map a provider name to a ProviderKind.

    Anything that isn't a known OpenAI-compatible name falls back to the
    native Ollama protocol.
    """
    name = (provider_text or "").strip().lower()
    if name in _OPENAI_PROVIDER_NAMES:
        return ProviderKind.OPENAI
    return ProviderKind.OLLAMA


def load_system_prompt(file_path: Optional[str]) -> str:
    """Load system prompt from file or return default."""
    if file_path:
        path = Path(file_path)
        if path.exists():
            content = path.read_text(encoding="utf-8").strip()
            if content:  # Only use file if it has content
                return content
    return DEFAULT_SYSTEM_PROMPT
