"""
Transcript generation in Markdown and JSON formats.
"""

import json
from datetime import datetime
from typing import Optional, Sequence

from localpair.config import ChatMessage, Role

TURN_DIVIDER: str = "---"


def generate_markdown_transcript(
    messages: Sequence[ChatMessage],
    source: Optional[str] = None,
) -> str:
    """
    Generate a Markdown transcript of the conversation.
    """
    lines = []

    # Header
    lines.append("# Conversation Transcript")
    lines.append("")
    lines.append(f"**Generated:** {datetime.now().isoformat()}")
    if source:
        lines.append(f"**Source:** {source}")
    lines.append(f"**Turns:** {len(messages)}")
    lines.append("")

    if not messages:
        lines.append("_No messages._")
        lines.append("")
        return "\n".join(lines)

    for msg in messages:
        lines.append(TURN_DIVIDER)
        lines.append("")
        if msg.role is Role.USER:
            lines.append("### User")
        elif msg.role is Role.ASSISTANT:
            lines.append("### Assistant")
        else:
            lines.append("### System")
        lines.append("")
        lines.append(msg.content)
        lines.append("")

    return "\n".join(lines)


def generate_json_transcript(
    messages: Sequence[ChatMessage],
    source: Optional[str] = None,
) -> str:
    """
    Generate a JSON transcript with the persisted {Role, Content} layout.
    """
    report = {
        "generated_at": datetime.now().isoformat(),
        "source": source,
        "turns": len(messages),
        "messages": [m.to_stored() for m in messages],
    }
    return json.dumps(report, indent=2, ensure_ascii=False)
