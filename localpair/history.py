"""
Conversation history persisted as a single JSON file.

Layout: an ordered array of {"Role": ..., "Content": ...} objects,
rewritten wholesale on every mutation.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

from pydantic import TypeAdapter, ValidationError

from localpair.config import ChatMessage, get_history_path

logger = logging.getLogger(__name__)

_MESSAGE_LIST = TypeAdapter(list[ChatMessage])


class HistoryStore:
    """
    Ordered, durable conversation log.

    Only the orchestrator writes to it, so there is no cross-process
    locking. Load and save failures are logged and never raised.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path else get_history_path()
        self._messages: list[ChatMessage] = []

    @property
    def messages(self) -> list[ChatMessage]:
        """Snapshot of the conversation in order."""
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def exists(self) -> bool:
        """True when a persisted history file is present."""
        return self.path.is_file()

    def append(self, message: ChatMessage) -> None:
        """Append a turn in memory. Call persist() to make it durable."""
        self._messages.append(message)

    def load(self) -> list[ChatMessage]:
        """
        Replace the in-memory log with the persisted one.

        A missing or unparsable file yields an empty history.
        """
        if not self.path.exists():
            self._messages = []
            return []
        try:
            raw = self.path.read_text(encoding="utf-8")
            messages = _MESSAGE_LIST.validate_json(raw) if raw.strip() else []
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Failed to load history from {self.path}: {e}")
            messages = []
        self._messages = list(messages)
        return self.messages

    def serialize(self) -> str:
        return json.dumps([m.to_stored() for m in self._messages], ensure_ascii=False)

    def persist(self) -> bool:
        """
        Write the whole log, replacing the file atomically.

        A failed write leaves the previous file intact. Returns False on
        failure (already logged).
        """
        content = self.serialize()
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as f:
                tmp_name = f.name
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
            return True
        except OSError as e:
            logger.error(f"Failed to save history to {self.path}: {e}")
            return False
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass

    def clear(self) -> bool:
        """Empty the log and persist the empty state."""
        self._messages = []
        return self.persist()
