"""
OllamaAdapter - native Ollama chat dialect.

Each response line is a standalone JSON object:
    {"message": {"role": "assistant", "content": "..."}, "done": false}
and the final line carries "done": true.
"""

import json
import logging
from typing import Optional

from localpair.adapters.base import LineEvent

logger = logging.getLogger(__name__)


class OllamaAdapter:
    """Ollama implementation of ProviderAdapter (/api/chat)."""

    name = "ollama"
    liveness_path = "/"
    chat_path = "/api/chat"

    def build_payload(self, model: str, messages: list[dict]) -> dict:
        return {
            "model": model,
            "messages": messages,
            "stream": True,
        }

    def parse_line(self, line: str) -> Optional[LineEvent]:
        line = line.strip()
        if not line:
            return None
        try:
            chunk = json.loads(line)
        except json.JSONDecodeError:
            logger.debug(f"Skipping unparsable line: {line[:80]!r}")
            return None
        if not isinstance(chunk, dict):
            return None

        message = chunk.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        delta = content if isinstance(content, str) and content else None
        return LineEvent(delta=delta, done=chunk.get("done") is True)
