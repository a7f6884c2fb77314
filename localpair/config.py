"""
Configuration constants and Pydantic models for localpair.
"""

import os
import tempfile
from enum import Enum
from pathlib import Path
from typing import Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator


# ─────────────────────────────────────────────────────────────────────
# DEFAULTS - Overridable via environment / .env
# ─────────────────────────────────────────────────────────────────────

DEFAULT_BASE_URL: str = "http://localhost:11434"
DEFAULT_MODEL: str = "gemma3:1b"
DEFAULT_PROVIDER: str = "ollama"
DEFAULT_HISTORY_FILENAME: str = "localpair_history.json"

DEFAULT_SYSTEM_PROMPT: str = (
    "You are an expert coding assistant integrated into the user's editor. "
    "Provide concise, correct code snippets. "
    "When asked to refactor, output only the improved code block if possible."
)


# ─────────────────────────────────────────────────────────────────────
# INTERNAL CONSTANTS - Not user-configurable
# ─────────────────────────────────────────────────────────────────────

CONNECTION_TEST_TIMEOUT_SECONDS: float = 5.0
ERROR_MESSAGE_MAX_CHARS: int = 500

# Directories never listed or searched by the workspace host
IGNORED_DIRECTORIES: frozenset[str] = frozenset({
    ".git", ".hg", ".svn", ".venv", "venv", "__pycache__",
    "node_modules", ".mypy_cache", ".pytest_cache", ".tox", "bin", "obj",
})


# ─────────────────────────────────────────────────────────────────────
# ENVIRONMENT LOADING
# ─────────────────────────────────────────────────────────────────────

def get_default_provider() -> str:
    """Provider name from LOCALPAIR_PROVIDER (default: ollama)."""
    return os.environ.get("LOCALPAIR_PROVIDER", "").strip() or DEFAULT_PROVIDER


def get_default_base_url() -> str:
    """Server URL from LOCALPAIR_BASE_URL (default: local Ollama port)."""
    return os.environ.get("LOCALPAIR_BASE_URL", "").strip() or DEFAULT_BASE_URL


def get_default_model() -> str:
    """Chat model from LOCALPAIR_MODEL."""
    return os.environ.get("LOCALPAIR_MODEL", "").strip() or DEFAULT_MODEL


def get_history_path() -> Path:
    """
    Get the conversation history file location.

    Set LOCALPAIR_HISTORY_FILE to override; otherwise the history lives
    in the system temp directory.
    """
    path = os.environ.get("LOCALPAIR_HISTORY_FILE", "").strip()
    if path:
        return Path(path).expanduser()
    return Path(tempfile.gettempdir()) / DEFAULT_HISTORY_FILENAME


def get_system_prompt_file() -> Optional[str]:
    """Optional system prompt override file from LOCALPAIR_SYSTEM_PROMPT_FILE."""
    return os.environ.get("LOCALPAIR_SYSTEM_PROMPT_FILE") or None


def get_connection_test_timeout() -> float:
    """
    Get the liveness probe timeout in seconds.

    Set LOCALPAIR_CONNECT_TIMEOUT in .env (default: 5).
    """
    try:
        return float(os.environ.get("LOCALPAIR_CONNECT_TIMEOUT", CONNECTION_TEST_TIMEOUT_SECONDS))
    except ValueError:
        return CONNECTION_TEST_TIMEOUT_SECONDS


# ─────────────────────────────────────────────────────────────────────
# DATA MODELS
# ─────────────────────────────────────────────────────────────────────

class Role(str, Enum):
    """Author of a chat message."""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ProviderKind(str, Enum):
    """Wire format spoken by the local model server."""
    OLLAMA = "ollama"  # line-delimited JSON on /api/chat
    OPENAI = "openai"  # SSE on /v1/chat/completions (LM Studio et al.)


class ChatMessage(BaseModel):
    """A single conversation turn.

    Serialized with capitalised keys ({"Role": ..., "Content": ...}) so
    the persisted history file keeps its established layout.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, use_enum_values=False)

    role: Role = Field(alias="Role")
    content: str = Field(alias="Content")

    def to_openai(self) -> dict:
        """Convert to the {"role", "content"} shape both providers accept."""
        return {"role": self.role.value, "content": self.content}

    def to_stored(self) -> dict:
        return {"Role": self.role.value, "Content": self.content}


class ConnectionConfig(BaseModel):
    """Where and how to reach the model server. Replaced wholesale on reconnect."""
    model_config = ConfigDict(frozen=True)

    provider: ProviderKind
    base_url: str
    model: str

    @field_validator("base_url")
    @classmethod
    def _require_absolute_url(cls, value: str) -> str:
        return normalize_base_url(value)


def normalize_base_url(value: str) -> str:
    """
    Validate that value is an absolute http(s) URL and strip trailing slashes.

    Raises ValueError("Invalid URL format.") otherwise.
    """
    value = (value or "").strip()
    try:
        url = httpx.URL(value)
    except httpx.InvalidURL as e:
        raise ValueError("Invalid URL format.") from e
    if url.scheme not in ("http", "https") or not url.host:
        raise ValueError("Invalid URL format.")
    return value.rstrip("/")
