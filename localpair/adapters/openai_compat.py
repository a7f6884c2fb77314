"""
OpenAICompatAdapter - SSE chat dialect used by LM Studio and friends.

Only ``data: `` lines matter:
    data: {"choices":[{"delta":{"content":"..."}}]}
    data: [DONE]
"""

import json
import logging
from typing import Optional

from localpair.adapters.base import LineEvent

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_MARKER = "[DONE]"


class OpenAICompatAdapter:
    """OpenAI-compatible implementation of ProviderAdapter (/v1/chat/completions)."""

    name = "openai"
    liveness_path = "/v1/models"
    chat_path = "/v1/chat/completions"

    def build_payload(self, model: str, messages: list[dict]) -> dict:
        return {
            "model": model,
            "messages": messages,
            "stream": True,
        }

    def parse_line(self, line: str) -> Optional[LineEvent]:
        if not line.startswith(DATA_PREFIX):
            return None
        data = line[len(DATA_PREFIX):].strip()
        if data == DONE_MARKER:
            return LineEvent(done=True)
        try:
            chunk = json.loads(data)
        except json.JSONDecodeError:
            logger.debug(f"Skipping unparsable SSE payload: {data[:80]!r}")
            return None
        if not isinstance(chunk, dict):
            return None

        choices = chunk.get("choices") or []
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            return None
        delta = choices[0].get("delta") or {}
        content = delta.get("content") if isinstance(delta, dict) else None
        if isinstance(content, str) and content:
            return LineEvent(delta=content)
        return None
