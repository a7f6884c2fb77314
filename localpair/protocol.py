"""
Command protocol between the chat surface and the orchestrator.

Inbound messages are plain strings:

    CANCEL:                              cancel the running generation
    CLEAR:                               clear conversation history
    CONNECT:provider|||url|||model       test + switch server
    INSERT:code                          insert code at the cursor
    REPLACE:code                         open a comparison view
    APPLY:code                           insert reviewed code
    NEWFILE:name|||code                  create a file
    model|||prompt  (or a bare prompt)   chat

Outbound events are function-call shaped directives such as
``streamChunk("text")`` whose arguments are JSON literals.
"""

import json
import logging
from dataclasses import astuple, dataclass
from enum import Enum
from typing import Any, Optional, Sequence, Union

logger = logging.getLogger(__name__)

SEPARATOR = "|||"


class CommandKind(str, Enum):
    """Inbound command word. CHAT has no prefix on the wire."""
    CANCEL = "CANCEL"
    CLEAR = "CLEAR"
    CONNECT = "CONNECT"
    INSERT = "INSERT"
    REPLACE = "REPLACE"
    APPLY = "APPLY"
    NEWFILE = "NEWFILE"
    CHAT = "CHAT"

    @property
    def prefix(self) -> str:
        return "" if self is CommandKind.CHAT else f"{self.value}:"


# Required payload fields per prefixed command
FIELD_COUNTS: dict[CommandKind, int] = {
    CommandKind.CANCEL: 0,
    CommandKind.CLEAR: 0,
    CommandKind.CONNECT: 3,
    CommandKind.INSERT: 1,
    CommandKind.REPLACE: 1,
    CommandKind.APPLY: 1,
    CommandKind.NEWFILE: 2,
}


# ─────────────────────────────────────────────────────────────────────
# COMMANDS
# ─────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Cancel:
    kind = CommandKind.CANCEL


@dataclass(frozen=True)
class Clear:
    kind = CommandKind.CLEAR


@dataclass(frozen=True)
class Connect:
    provider: str
    url: str
    model: str
    kind = CommandKind.CONNECT


@dataclass(frozen=True)
class Insert:
    code: str
    kind = CommandKind.INSERT


@dataclass(frozen=True)
class Replace:
    code: str
    kind = CommandKind.REPLACE


@dataclass(frozen=True)
class Apply:
    code: str
    kind = CommandKind.APPLY


@dataclass(frozen=True)
class NewFile:
    name: str
    code: str
    kind = CommandKind.NEWFILE


@dataclass(frozen=True)
class Chat:
    """
    A chat turn.

    model is None when the message carried no model segment and "" when
    the segment was empty; either way the connected model is used.
    malformed is set when the text looked like a prefixed command but
    lacked required fields; the whole text is then kept as the prompt and
    the orchestrator drops it.
    """
    prompt: str
    model: Optional[str] = None
    malformed: bool = False
    kind = CommandKind.CHAT


Command = Union[Cancel, Clear, Connect, Insert, Replace, Apply, NewFile, Chat]

_BUILDERS = {
    CommandKind.CANCEL: lambda fields: Cancel(),
    CommandKind.CLEAR: lambda fields: Clear(),
    CommandKind.CONNECT: lambda fields: Connect(*fields),
    CommandKind.INSERT: lambda fields: Insert(*fields),
    CommandKind.REPLACE: lambda fields: Replace(*fields),
    CommandKind.APPLY: lambda fields: Apply(*fields),
    CommandKind.NEWFILE: lambda fields: NewFile(*fields),
}


# ─────────────────────────────────────────────────────────────────────
# DECODE / ENCODE
# ─────────────────────────────────────────────────────────────────────

def decode(raw: Optional[str]) -> Command:
    """
    Decode a raw inbound message. Never raises.

    Fields are split on the first N-1 separators only, so the last field
    (usually code) keeps any embedded separators.
    """
    raw = raw if isinstance(raw, str) else ""

    for kind, count in FIELD_COUNTS.items():
        if not raw.startswith(kind.prefix):
            continue
        if count == 0:
            return _BUILDERS[kind]([])
        payload = raw[len(kind.prefix):]
        fields = payload.split(SEPARATOR, count - 1)
        if len(fields) < count:
            logger.warning(
                f"{kind.value} needs {count} field(s), got {len(fields)}; treating as malformed"
            )
            return Chat(prompt=raw, malformed=True)
        return _BUILDERS[kind](fields)

    return _decode_chat(raw)


def _decode_chat(raw: str) -> Chat:
    if SEPARATOR not in raw:
        return Chat(prompt=raw)
    model, prompt = raw.split(SEPARATOR, 1)
    return Chat(prompt=prompt, model=model)


def encode(kind: Union[CommandKind, str], fields: Sequence[str] = ()) -> str:
    """
    Encode a command for the wire.

    For CHAT, fields are (model, prompt) or just (prompt,).
    """
    kind = CommandKind(kind.upper()) if isinstance(kind, str) else kind
    fields = [f for f in fields]
    if kind is CommandKind.CHAT:
        if len(fields) == 2 and fields[0]:
            return f"{fields[0]}{SEPARATOR}{fields[1]}"
        return fields[-1] if fields else ""
    return kind.prefix + SEPARATOR.join(fields)


def encode_command(command: Command) -> str:
    """Encode a decoded Command back to its wire form."""
    if isinstance(command, Chat):
        if command.malformed or command.model is None:
            return command.prompt
        # model == "" encodes as "|||prompt"
        return f"{command.model}{SEPARATOR}{command.prompt}"
    return encode(command.kind, astuple(command))


# ─────────────────────────────────────────────────────────────────────
# OUTBOUND DIRECTIVES
# ─────────────────────────────────────────────────────────────────────

class Directive(str, Enum):
    """Functions the chat surface exposes to the orchestrator."""
    START_STREAM = "startStream"
    STREAM_CHUNK = "streamChunk"
    END_STREAM = "endStream"
    CANCEL_STREAM = "cancelStreamUI"
    SHOW_ERROR = "showError"
    SET_UI_STATE = "setUiState"
    CONNECTION_RESULT = "onConnectionResult"
    RESTORE_HISTORY = "restoreHistory"
    UPDATE_FILE_LIST = "updateFileList"


def to_script_literal(value: Any) -> str:
    """
    Render a value as a JSON literal that is safe to embed in a script.

    JSON is a subset of JS except for U+2028/U+2029, and "</" could close
    a surrounding <script> tag.
    """
    text = json.dumps(value, ensure_ascii=False)
    return (
        text.replace("</", "<\\/")
        .replace("\u2028", "\\u2028")
        .replace("\u2029", "\\u2029")
    )


def render_directive(directive: Union[Directive, str], *args: Any) -> str:
    """Render ``name(arg, ...)`` for the chat surface."""
    name = directive.value if isinstance(directive, Directive) else directive
    rendered = ", ".join(to_script_literal(a) for a in args)
    return f"{name}({rendered})"
