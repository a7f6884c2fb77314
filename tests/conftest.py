"""Shared test fixtures for localpair tests."""

import pytest
from pathlib import Path
from typing import Optional


# ─────────────────────────────────────────────────────────────────────
# MOCK DATA
# ─────────────────────────────────────────────────────────────────────

MOCK_OLLAMA_URL = "http://localhost:11434"
MOCK_LMSTUDIO_URL = "http://localhost:1234"

MOCK_MODEL_1 = "gemma3:1b"
MOCK_MODEL_2 = "qwen2.5-coder-7b-instruct"

MOCK_OLLAMA_STREAM = (
    '{"model":"gemma3:1b","message":{"role":"assistant","content":"A"},"done":false}\n'
    '{"model":"gemma3:1b","message":{"role":"assistant","content":"B"},"done":false}\n'
    '{"model":"gemma3:1b","message":{"role":"assistant","content":""},"done":true}\n'
)

MOCK_SSE_STREAM = (
    'data: {"choices":[{"delta":{"role":"assistant","content":""}}]}\n\n'
    'data: {"choices":[{"delta":{"content":"Hel"}}]}\n\n'
    'data: {"choices":[{"delta":{"content":"lo"}}]}\n\n'
    'data: {"choices":[{"delta":{},"finish_reason":"stop"}]}\n\n'
    'data: [DONE]\n\n'
)


def ollama_stream(*deltas: str) -> str:
    """Build a native Ollama line-JSON response for the given deltas."""
    import json
    lines = [json.dumps({"message": {"role": "assistant", "content": d}, "done": False}) for d in deltas]
    lines.append(json.dumps({"message": {"role": "assistant", "content": ""}, "done": True}))
    return "\n".join(lines) + "\n"


# ─────────────────────────────────────────────────────────────────────
# FAKE COLLABORATORS
# ─────────────────────────────────────────────────────────────────────

class RecordingSurface:
    """ChatSurface that keeps every directive it receives."""

    def __init__(self):
        self.directives: list[str] = []

    def post(self, directive: str) -> None:
        self.directives.append(directive)

    def names(self) -> list[str]:
        """Directive function names in order."""
        return [d.split("(", 1)[0] for d in self.directives]

    def count(self, name: str) -> int:
        return self.names().count(name)


class FakeHost:
    """In-memory EditorHost."""

    def __init__(self, files: Optional[dict[str, str]] = None, selection: Optional[str] = None):
        self.files = dict(files or {})
        self.selection = selection
        self.inserted: list[str] = []
        self.diffs: list[str] = []
        self.fail_insert = False

    def get_selection(self) -> Optional[str]:
        return self.selection

    def insert_code(self, code: str) -> None:
        if self.fail_insert:
            raise RuntimeError("No active document.")
        self.inserted.append(code)

    def show_diff(self, code: str) -> None:
        self.diffs.append(code)

    def create_file(self, name: str, code: str) -> Path:
        if name in self.files:
            raise FileExistsError(f"{name} already exists.")
        self.files[name] = code
        return Path(name)

    def list_files(self) -> list[str]:
        return sorted(self.files)

    def find_file(self, name: str) -> Optional[str]:
        return self.files.get(name)


# ─────────────────────────────────────────────────────────────────────
# FIXTURES
# ─────────────────────────────────────────────────────────────────────

@pytest.fixture
def surface():
    """Return a RecordingSurface."""
    return RecordingSurface()


@pytest.fixture
def fake_host():
    """Return a FakeHost with two project files."""
    return FakeHost(files={
        "util.py": "def helper():\n    return 42\n",
        "README.md": "# Demo\n",
    })


@pytest.fixture
def history_path(tmp_path):
    """Path for a history file that doesn't exist yet."""
    return tmp_path / "history.json"


@pytest.fixture
def sample_messages():
    """Return a short persisted conversation."""
    from localpair.config import ChatMessage, Role
    return [
        ChatMessage(role=Role.USER, content="What does util.py do?"),
        ChatMessage(role=Role.ASSISTANT, content="It returns 42."),
    ]


@pytest.fixture
def ollama_config():
    """ConnectionConfig for a native Ollama server."""
    from localpair.config import ConnectionConfig, ProviderKind
    return ConnectionConfig(provider=ProviderKind.OLLAMA, base_url=MOCK_OLLAMA_URL, model=MOCK_MODEL_1)


@pytest.fixture
def lmstudio_config():
    """ConnectionConfig for an OpenAI-compatible server."""
    from localpair.config import ConnectionConfig, ProviderKind
    return ConnectionConfig(provider=ProviderKind.OPENAI, base_url=MOCK_LMSTUDIO_URL, model=MOCK_MODEL_2)


@pytest.fixture
def tmp_system_prompt(tmp_path):
    """Create a temporary system prompt file."""
    prompt_file = tmp_path / "system_prompt.txt"
    prompt_file.write_text("You are a test assistant.")
    return prompt_file
