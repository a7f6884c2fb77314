"""Tests for prompt enrichment (@file references and selections)."""

import pytest

from localpair.context import (
    BLOCK_CLOSE, CONTEXT_HEADER, QUESTION_MARKER, find_file_references,
    reference_base_name, resolve_file_context, with_selection,
)


class TestFindFileReferences:
    """Tests for @token extraction."""

    def test_single(self):
        assert find_file_references("What does @util.py do?") == ["util.py"]

    def test_paths_and_order(self):
        prompt = "Compare @src/app/main.py with @Lib\\Helpers.cs"
        assert find_file_references(prompt) == ["src/app/main.py", "Lib\\Helpers.cs"]

    def test_requires_extension(self):
        assert find_file_references("ping @someone about this") == []

    def test_no_references(self):
        assert find_file_references("plain question") == []


class TestReferenceBaseName:
    """Directory parts are dropped for lookup."""

    @pytest.mark.parametrize("token,expected", [
        ("util.py", "util.py"),
        ("src/app/util.py", "util.py"),
        ("Folder\\File.cs", "File.cs"),
    ])
    def test_base_name(self, token, expected):
        assert reference_base_name(token) == expected


class TestResolveFileContext:
    """Tests for resolve_file_context."""

    def test_no_references_unchanged(self, fake_host):
        assert resolve_file_context("just a question", fake_host.find_file) == "just a question"

    def test_layout(self, fake_host):
        """Header, one block per file, then the question marker and the prompt."""
        prompt = "What does @util.py return?"
        result = resolve_file_context(prompt, fake_host.find_file)

        expected = "\n".join([
            CONTEXT_HEADER,
            "",
            "--- File: util.py ---",
            "def helper():\n    return 42\n",
            BLOCK_CLOSE,
            "",
            QUESTION_MARKER,
            prompt,
        ])
        assert result == expected

    def test_directory_token_uses_base_name(self, fake_host):
        result = resolve_file_context("see @lib/util.py", fake_host.find_file)
        assert "--- File: lib/util.py ---" in result
        assert "return 42" in result

    def test_unresolved_reference_dropped(self, fake_host):
        """Missing files leave no placeholder but keep the framing."""
        result = resolve_file_context("see @missing.py", fake_host.find_file)
        assert result == "\n".join([CONTEXT_HEADER, "", QUESTION_MARKER, "see @missing.py"])

    def test_multiple_files_in_order(self, fake_host):
        result = resolve_file_context("@README.md then @util.py", fake_host.find_file)
        assert result.index("--- File: README.md ---") < result.index("--- File: util.py ---")

    def test_lookup_returning_path(self, tmp_path):
        target = tmp_path / "notes.txt"
        target.write_text("remember the milk", encoding="utf-8")

        result = resolve_file_context("@notes.txt?", lambda name: target if name == "notes.txt" else None)
        assert "remember the milk" in result

    def test_lookup_failure_skipped(self):
        def broken(name):
            raise PermissionError("denied")

        result = resolve_file_context("@secret.key", broken)
        assert "--- File:" not in result
        assert result.endswith("@secret.key")


class TestWithSelection:
    """Tests for with_selection."""

    def test_wraps_selection(self):
        result = with_selection("Explain", "x = 1")
        assert result == "Context Code:\n```\nx = 1\n```\n\nQuestion: Explain"

    @pytest.mark.parametrize("selection", [None, "", "   \n"])
    def test_empty_selection_unchanged(self, selection):
        assert with_selection("Explain", selection) == "Explain"
