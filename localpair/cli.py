"""CLI entry point for localpair.

Runs the chat orchestrator as a stdio bridge so any editor (or a terminal)
can act as the chat surface, plus small maintenance commands.

Entry point:
    localpair serve [--root DIR] [--active-file FILE] [--no-connect]
    localpair check [--provider P] [--url URL] [--model M]
    localpair history [--format markdown|json] [--clear]

serve protocol: one raw command message per stdin line, JSON-encoded when
it spans lines (e.g. "INSERT:def f():\\n    pass"); one directive per
stdout line. Logs go to stderr.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional, TextIO

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────
# ARGUMENT PARSING
# ─────────────────────────────────────────────────────────────────────


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="localpair",
        description="Chat with a local LLM server from your editor.",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--history-file", default=None,
        help="Conversation history file (default: LOCALPAIR_HISTORY_FILE or temp dir)",
    )
    sub = parser.add_subparsers(dest="command")

    # serve
    serve_p = sub.add_parser("serve", help="Run the stdio chat bridge")
    serve_p.add_argument("--root", default=".", help="Project directory for @file lookups")
    serve_p.add_argument("--active-file", default=None, help="File that INSERT:/APPLY: edit")
    serve_p.add_argument(
        "--no-connect", action="store_true",
        help="Don't connect to the configured server at start-up",
    )

    # check
    check_p = sub.add_parser("check", help="Test a server connection")
    check_p.add_argument("--provider", default=None, help="ollama or lmstudio")
    check_p.add_argument("--url", default=None, help="Server base URL")
    check_p.add_argument("--model", default=None, help="Model name to report")

    # history
    history_p = sub.add_parser("history", help="Show or clear the saved conversation")
    history_p.add_argument(
        "--format", choices=["markdown", "json"], default="markdown", dest="output_format",
    )
    history_p.add_argument("--clear", action="store_true", help="Delete all saved turns")

    return parser


# ─────────────────────────────────────────────────────────────────────
# STDIO SURFACE
# ─────────────────────────────────────────────────────────────────────


class StdioSurface:
    """ChatSurface that writes one directive per line."""

    def __init__(self, stream: Optional[TextIO] = None):
        self._stream = stream or sys.stdout

    def post(self, directive: str) -> None:
        self._stream.write(directive + "\n")
        self._stream.flush()


def decode_input_line(line: str) -> Optional[str]:
    """
    Turn one stdin line into a raw command message.

    JSON string literals are unwrapped so messages can carry newlines;
    anything else is taken verbatim. Blank lines yield None.
    """
    line = line.rstrip("\r\n")
    if not line.strip():
        return None
    if line.startswith('"'):
        try:
            value = json.loads(line)
        except json.JSONDecodeError:
            return line
        if isinstance(value, str):
            return value
    return line


# ─────────────────────────────────────────────────────────────────────
# COMMANDS
# ─────────────────────────────────────────────────────────────────────


async def _cmd_serve(
    root: str,
    active_file: Optional[str],
    history_file: Optional[str],
    connect: bool = True,
    stdin: Optional[TextIO] = None,
    stdout: Optional[TextIO] = None,
) -> int:
    """Run the stdio bridge until EOF. Returns exit code."""
    from localpair.config import (
        get_default_base_url, get_default_model, get_default_provider, get_system_prompt_file,
    )
    from localpair.history import HistoryStore
    from localpair.parsers import load_system_prompt
    from localpair.session import ChatOrchestrator
    from localpair.workspace import WorkspaceHost

    reader = stdin or sys.stdin
    orchestrator = ChatOrchestrator(
        surface=StdioSurface(stdout),
        host=WorkspaceHost(root, active_file=active_file),
        history=HistoryStore(history_file),
        system_prompt=load_system_prompt(get_system_prompt_file()),
    )

    logger.info(f"Serving {orchestrator.host.root} (history: {orchestrator.history.path})")
    await orchestrator.start()
    if connect:
        await orchestrator.connect(get_default_provider(), get_default_base_url(), get_default_model())

    try:
        while True:
            line = await asyncio.to_thread(reader.readline)
            if not line:
                break
            raw = decode_input_line(line)
            if raw is None:
                continue
            await orchestrator.handle_message(raw)
        # EOF: let an in-flight answer finish before exiting
        await orchestrator.wait_idle()
    finally:
        await orchestrator.shutdown()

    return 0


async def _cmd_check(
    provider: Optional[str],
    url: Optional[str],
    model: Optional[str],
) -> int:
    """Test a connection. Returns exit code."""
    from localpair.config import (
        ConnectionConfig, get_default_base_url, get_default_model, get_default_provider,
    )
    from localpair.core import LLMClient
    from localpair.parsers import parse_provider

    try:
        config = ConnectionConfig(
            provider=parse_provider(provider or get_default_provider()),
            base_url=url or get_default_base_url(),
            model=model or get_default_model(),
        )
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if await LLMClient(config).test_connection():
        print(f"✅ {config.base_url} ({config.provider.value}) is reachable")
        return 0
    print(f"❌ {config.base_url} ({config.provider.value}): Connection timed out or refused.")
    return 1


def _cmd_history(history_file: Optional[str], output_format: str, clear: bool) -> int:
    """Print or clear the saved conversation. Returns exit code."""
    from localpair.export import generate_json_transcript, generate_markdown_transcript
    from localpair.history import HistoryStore

    store = HistoryStore(history_file)
    if clear:
        store.load()
        if not store.clear():
            print(f"Error: could not write {store.path}", file=sys.stderr)
            return 1
        print(f"History cleared ({store.path})", file=sys.stderr)
        return 0

    messages = store.load()
    if output_format == "json":
        sys.stdout.write(generate_json_transcript(messages, source=str(store.path)))
        sys.stdout.write("\n")
    else:
        sys.stdout.write(generate_markdown_transcript(messages, source=str(store.path)))
    return 0


# ─────────────────────────────────────────────────────────────────────
# ENTRY POINT
# ─────────────────────────────────────────────────────────────────────


def main():
    parser = _build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Logging (stdout is reserved for directives)
    level = logging.DEBUG if args.verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(name)s %(message)s", stream=sys.stderr)

    from dotenv import load_dotenv
    load_dotenv()

    if args.command == "serve":
        code = asyncio.run(_cmd_serve(
            root=args.root,
            active_file=args.active_file,
            history_file=args.history_file,
            connect=not args.no_connect,
        ))
    elif args.command == "check":
        code = asyncio.run(_cmd_check(
            provider=args.provider,
            url=args.url,
            model=args.model,
        ))
    elif args.command == "history":
        code = _cmd_history(
            history_file=args.history_file,
            output_format=args.output_format,
            clear=args.clear,
        )
    else:
        parser.print_help()
        code = 1

    sys.exit(code)


if __name__ == "__main__":
    main()
