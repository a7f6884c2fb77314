"""
ProviderAdapter Protocol - defines the wire-format contract for a model server.

This is the WHAT (interface), not the HOW (implementation).
See ollama.py and openai_compat.py for the two concrete wire formats.
"""

from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True)
class LineEvent:
    """What a single response line meant."""
    delta: Optional[str] = None
    done: bool = False


class ProviderAdapter(Protocol):
    """
    Contract for a local model server's HTTP dialect.

    Implementations must provide:
    - A liveness path for connection testing
    - The chat endpoint path and request body
    - A parser turning one streamed response line into a LineEvent

    Chosen once at connect time; the client never re-branches on the
    provider while streaming.
    """

    name: str
    liveness_path: str
    chat_path: str

    def build_payload(self, model: str, messages: list[dict]) -> dict:
        """
        Build the JSON body for a streaming chat request.

        Args:
            model: Model identifier as the server knows it
            messages: [{"role": "...", "content": "..."}] in conversation order
        """
        ...

    def parse_line(self, line: str) -> Optional[LineEvent]:
        """
        Interpret one line of the streamed response.

        Returns:
            LineEvent, or None for lines that carry nothing (blank lines,
            keepalives, unparsable JSON)
        """
        ...


def join_url(base_url: str, path: str) -> str:
    """
    Join a server base URL and an endpoint path.

    Base URLs entered as ``http://host:1234/v1`` must not produce
    ``/v1/v1/...`` for OpenAI-style paths.
    """
    base = base_url.rstrip("/")
    if base.endswith("/v1") and (path == "/v1" or path.startswith("/v1/")):
        path = path[3:]
    if not path.startswith("/"):
        path = "/" + path
    return base + path
