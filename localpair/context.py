"""
Prompt enrichment: inline @file references and editor selections.

The enriched text is only ever sent to the model; the raw prompt is what
goes into the conversation history.
"""

import logging
import os
import re
from pathlib import PurePosixPath, PureWindowsPath
from typing import Callable, Optional, Union

logger = logging.getLogger(__name__)

# @src/app/util.py, @Folder\File.cs, @notes.v2.md
FILE_REFERENCE_PATTERN = re.compile(r"@([\w.\-\\/]+\.[a-zA-Z0-9]+)")

CONTEXT_HEADER = "Below are the referenced files for context:"
BLOCK_CLOSE = "------------------------"
QUESTION_MARKER = "User Question:"

# name -> file content (str), a path to read, or None when not found
FileLookup = Callable[[str], Optional[Union[str, os.PathLike]]]


def find_file_references(prompt: str) -> list[str]:
    """Return @-referenced tokens in order of appearance (without the @)."""
    return FILE_REFERENCE_PATTERN.findall(prompt or "")


def reference_base_name(token: str) -> str:
    """Directory parts of a reference are informational; lookups use the base name."""
    return PureWindowsPath(PurePosixPath(token).name).name


def _read_reference(token: str, lookup: FileLookup) -> Optional[str]:
    name = reference_base_name(token)
    try:
        found = lookup(name)
        if found is None:
            logger.debug(f"No file found for @{token}")
            return None
        if isinstance(found, os.PathLike):
            with open(found, "r", encoding="utf-8", errors="replace") as f:
                return f.read()
        return str(found)
    except Exception as e:
        logger.warning(f"Skipping @{token}: {e}")
        return None


def resolve_file_context(prompt: str, lookup: FileLookup) -> str:
    """
    Expand @file references into a context preamble.

    Returns the prompt unchanged when it has no references. Otherwise the
    result is the header, one block per resolved file, then the
    "User Question:" marker followed by the original prompt. References
    that can't be resolved or read are dropped without a placeholder.
    """
    tokens = find_file_references(prompt)
    if not tokens:
        return prompt

    lines = [CONTEXT_HEADER, ""]
    for token in tokens:
        content = _read_reference(token, lookup)
        if content is None:
            continue
        lines.append(f"--- File: {token} ---")
        lines.append(content)
        lines.append(BLOCK_CLOSE)
        lines.append("")

    lines.append(QUESTION_MARKER)
    lines.append(prompt)
    return "\n".join(lines)


def with_selection(prompt: str, selection: Optional[str]) -> str:
    """Prefix the active editor selection as a fenced "Context Code" block."""
    if not selection or not selection.strip():
        return prompt
    return f"Context Code:\n```\n{selection}\n```\n\nQuestion: {prompt}"
