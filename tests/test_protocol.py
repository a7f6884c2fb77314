"""Tests for localpair.protocol module."""

import json
import pytest

from localpair.protocol import (
    Apply, Cancel, Chat, Clear, CommandKind, Connect, Directive, Insert, NewFile,
    Replace, SEPARATOR, decode, encode, encode_command, render_directive,
    to_script_literal,
)


# ─────────────────────────────────────────────────────────────────────
# DECODE
# ─────────────────────────────────────────────────────────────────────

class TestDecodePrefixed:
    """Tests for decoding prefixed commands."""

    def test_cancel(self):
        assert decode("CANCEL:") == Cancel()

    def test_cancel_ignores_trailing_text(self):
        assert decode("CANCEL:now please") == Cancel()

    def test_clear(self):
        assert decode("CLEAR:") == Clear()

    def test_connect(self):
        """CONNECT: carries provider, url and model."""
        cmd = decode("CONNECT:ollama|||http://localhost:11434|||gemma3:1b")
        assert cmd == Connect(provider="ollama", url="http://localhost:11434", model="gemma3:1b")

    def test_connect_last_field_keeps_separators(self):
        cmd = decode("CONNECT:ollama|||http://h:1|||weird|||model")
        assert isinstance(cmd, Connect)
        assert cmd.model == "weird|||model"

    def test_insert_keeps_code_verbatim(self):
        code = "def f():\n    return 'a|||b'\n"
        assert decode("INSERT:" + code) == Insert(code=code)

    def test_replace(self):
        assert decode("REPLACE:x = 1") == Replace(code="x = 1")

    def test_apply_empty_code(self):
        """APPLY: with no code is still an Apply (pending code is used)."""
        assert decode("APPLY:") == Apply(code="")

    def test_newfile(self):
        cmd = decode("NEWFILE:app/main.py|||print('hi')")
        assert cmd == NewFile(name="app/main.py", code="print('hi')")

    def test_newfile_code_with_separator(self):
        cmd = decode("NEWFILE:a.txt|||x|||y")
        assert cmd == NewFile(name="a.txt", code="x|||y")


class TestDecodeMalformed:
    """Commands missing required fields become malformed chats."""

    def test_connect_missing_model(self):
        raw = "CONNECT:ollama|||http://localhost:11434"
        cmd = decode(raw)
        assert isinstance(cmd, Chat)
        assert cmd.malformed is True
        assert cmd.prompt == raw

    def test_newfile_without_code(self):
        cmd = decode("NEWFILE:only_name.py")
        assert isinstance(cmd, Chat)
        assert cmd.malformed is True


class TestDecodeChat:
    """Tests for chat decoding."""

    def test_model_and_prompt(self):
        assert decode("gemma3:1b|||Explain this") == Chat(prompt="Explain this", model="gemma3:1b")

    def test_bare_prompt(self):
        assert decode("Explain this") == Chat(prompt="Explain this")

    def test_prompt_keeps_later_separators(self):
        cmd = decode("m|||a|||b")
        assert cmd == Chat(prompt="a|||b", model="m")

    def test_empty_model_segment(self):
        assert decode("|||hello") == Chat(prompt="hello", model="")

    def test_empty_model_segment_reencodes(self):
        """An empty model field survives decode then encode_command."""
        assert encode_command(decode("|||hi")) == "|||hi"

    def test_empty_string(self):
        assert decode("") == Chat(prompt="")

    def test_none_never_raises(self):
        assert decode(None) == Chat(prompt="")

    def test_lowercase_prefix_is_chat(self):
        """Prefixes are case-sensitive."""
        cmd = decode("cancel:")
        assert isinstance(cmd, Chat)
        assert cmd.malformed is False


# ─────────────────────────────────────────────────────────────────────
# ENCODE
# ─────────────────────────────────────────────────────────────────────

class TestEncode:
    """Tests for encode and encode_command."""

    def test_encode_connect(self):
        raw = encode(CommandKind.CONNECT, ["lmstudio", "http://h:1234", "m"])
        assert raw == "CONNECT:lmstudio|||http://h:1234|||m"

    def test_encode_accepts_string_kind(self):
        assert encode("cancel") == "CANCEL:"

    def test_encode_chat_with_model(self):
        assert encode(CommandKind.CHAT, ["m", "hi"]) == "m" + SEPARATOR + "hi"

    def test_encode_chat_without_model(self):
        assert encode(CommandKind.CHAT, ["", "hi"]) == "hi"

    @pytest.mark.parametrize("command", [
        Cancel(),
        Clear(),
        Connect(provider="ollama", url="http://localhost:11434", model="gemma3:1b"),
        Insert(code="x|||y"),
        NewFile(name="a.py", code="print(1)"),
        Chat(prompt="hello", model="m"),
    ])
    def test_encode_command_decodes_back(self, command):
        assert decode(encode_command(command)) == command


# ─────────────────────────────────────────────────────────────────────
# DIRECTIVES
# ─────────────────────────────────────────────────────────────────────

class TestDirectives:
    """Tests for outbound directive rendering."""

    def test_no_args(self):
        assert render_directive(Directive.START_STREAM) == "startStream()"

    def test_string_arg_is_json_literal(self):
        rendered = render_directive(Directive.STREAM_CHUNK, 'say "hi"\n')
        assert rendered == 'streamChunk("say \\"hi\\"\\n")'

    def test_bool_arg(self):
        assert render_directive(Directive.SET_UI_STATE, False) == "setUiState(false)"

    def test_multiple_args(self):
        rendered = render_directive(Directive.CONNECTION_RESULT, False, "m", "Error: x")
        assert rendered == 'onConnectionResult(false, "m", "Error: x")'

    def test_list_arg(self):
        rendered = render_directive(Directive.UPDATE_FILE_LIST, ["a.py", "b.py"])
        assert rendered == 'updateFileList(["a.py", "b.py"])'

    def test_script_close_tag_escaped(self):
        literal = to_script_literal("</script><script>alert(1)")
        assert "</" not in literal
        assert json.loads(literal) == "</script><script>alert(1)"

    def test_line_separators_escaped(self):
        literal = to_script_literal("a\u2028b\u2029c")
        assert "\u2028" not in literal
        assert "\u2029" not in literal
        assert json.loads(literal) == "a\u2028b\u2029c"

    def test_non_ascii_kept(self):
        assert to_script_literal("héllo") == '"héllo"'
