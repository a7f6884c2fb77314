"""
WorkspaceHost - filesystem-backed EditorHost.

Lets the orchestrator run outside an IDE: the "project" is a directory
tree, the "active document" is a file chosen on the command line, and the
comparison view is a unified diff written to the log.
"""

import difflib
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterator, Optional, Union

from localpair.config import IGNORED_DIRECTORIES

logger = logging.getLogger(__name__)


class WorkspaceHost:
    """
    EditorHost over a project directory.

    Base-name lookup returns the first match in sorted walk order, so two
    files sharing a name in different folders are ambiguous.
    """

    def __init__(
        self,
        root: Union[str, Path],
        active_file: Optional[Union[str, Path]] = None,
    ):
        self.root = Path(root).resolve()
        self.active_file: Optional[Path] = self._resolve(active_file) if active_file else None
        self.selection: Optional[str] = None
        self.last_diff: Optional[str] = None
        self.suggestion_path: Optional[Path] = None

    def _resolve(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        return (path if path.is_absolute() else self.root / path).resolve()

    def _walk(self) -> Iterator[Path]:
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(
                d for d in dirnames
                if d not in IGNORED_DIRECTORIES and not d.startswith(".")
            )
            for filename in sorted(filenames):
                yield Path(dirpath) / filename

    # ─────────────────────────────────────────────────────────────────
    # PROJECT TREE
    # ─────────────────────────────────────────────────────────────────

    def list_files(self) -> list[str]:
        """Unique file names under the root, sorted."""
        return sorted({p.name for p in self._walk()})

    def find_file(self, name: str) -> Optional[Path]:
        for path in self._walk():
            if path.name == name:
                return path
        return None

    def create_file(self, name: str, code: str) -> Path:
        """
        Create a new file under the root and make it the active document.

        Raises:
            ValueError: name is empty or points outside the root
            FileExistsError: the file already exists
        """
        if not name or not name.strip():
            raise ValueError("File name is empty.")
        path = self._resolve(name.strip())
        if not path.is_relative_to(self.root):
            raise ValueError(f"{name} is outside the workspace.")
        if path.exists():
            raise FileExistsError(f"{path.relative_to(self.root)} already exists.")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(code, encoding="utf-8")
        self.active_file = path
        return path

    # ─────────────────────────────────────────────────────────────────
    # ACTIVE DOCUMENT
    # ─────────────────────────────────────────────────────────────────

    def get_selection(self) -> Optional[str]:
        return self.selection

    def _require_active_file(self) -> Path:
        if self.active_file is None:
            raise RuntimeError("No active document.")
        return self.active_file

    def insert_code(self, code: str) -> None:
        """
        Replace the selection in the active file, or append at the end.

        The selection is consumed by the edit.
        """
        path = self._require_active_file()
        text = path.read_text(encoding="utf-8") if path.exists() else ""
        if self.selection and self.selection in text:
            text = text.replace(self.selection, code, 1)
        else:
            if text and not text.endswith("\n"):
                text += "\n"
            text += code
        path.write_text(text, encoding="utf-8")
        self.selection = None
        logger.info(f"Inserted {len(code)} chars into {path}")

    def show_diff(self, code: str) -> str:
        """
        Write the suggestion to a temp file and log a unified diff.

        The suggestion keeps the active file's extension so external diff
        tools pick the right syntax.
        """
        path = self._require_active_file()
        current = path.read_text(encoding="utf-8") if path.exists() else ""

        # Only the latest suggestion is kept on disk
        if self.suggestion_path is not None:
            self.suggestion_path.unlink(missing_ok=True)
            self.suggestion_path = None

        fd, tmp_name = tempfile.mkstemp(prefix="localpair_suggestion_", suffix=path.suffix)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(code)
        self.suggestion_path = Path(tmp_name)

        self.last_diff = "".join(difflib.unified_diff(
            current.splitlines(keepends=True),
            code.splitlines(keepends=True),
            fromfile=f"Current Code ({path.name})",
            tofile="AI Suggestion",
        ))
        logger.info(f"Review changes for {path.name}:\n{self.last_diff}")
        return self.last_diff
