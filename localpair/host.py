"""
Collaborator contracts for the surfaces the orchestrator talks to.

The chat surface renders directives; the editor host owns buffers,
diff views and the project tree. Both live outside this package
(see workspace.py for a filesystem-backed host).
"""

from pathlib import Path
from typing import Optional, Protocol


class ChatSurface(Protocol):
    """Receives rendered directives such as ``streamChunk("...")``."""

    def post(self, directive: str) -> None:
        """Deliver one directive. Must not block on rendering."""
        ...


class EditorHost(Protocol):
    """
    Native editing capabilities of the embedding editor.

    Methods may raise; the orchestrator reports failures through the
    chat surface.
    """

    def get_selection(self) -> Optional[str]:
        """Text currently selected in the active editor, if any."""
        ...

    def insert_code(self, code: str) -> None:
        """Insert at the caret, or replace the current selection."""
        ...

    def show_diff(self, code: str) -> None:
        """Open a comparison between the active document and code."""
        ...

    def create_file(self, name: str, code: str) -> Path:
        """Create a project file with content and open it."""
        ...

    def list_files(self) -> list[str]:
        """File names in the open project, for @-completion."""
        ...

    def find_file(self, name: str) -> Optional[Path]:
        """Locate a project file by base name."""
        ...
