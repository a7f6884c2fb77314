"""
Adapters for local model server wire formats.

Provider-agnostic architecture: Protocol defines WHAT, implementations define HOW.
"""

from localpair.config import ProviderKind

from .base import LineEvent, ProviderAdapter, join_url
from .ollama import OllamaAdapter
from .openai_compat import OpenAICompatAdapter


def get_provider_adapter(kind: ProviderKind) -> ProviderAdapter:
    """Select the adapter for a provider kind."""
    if kind is ProviderKind.OPENAI:
        return OpenAICompatAdapter()
    return OllamaAdapter()


__all__ = [
    "LineEvent",
    "ProviderAdapter",
    "OllamaAdapter",
    "OpenAICompatAdapter",
    "get_provider_adapter",
    "join_url",
]
