"""
Generation session state machine and command orchestrator.

State per generation:

    IDLE -> STREAMING -> COMPLETED | CANCELLED | ERRORED -> (flushed) IDLE

Design:
- One ChatOrchestrator owns the history, the active client and the single
  live GenerationSession; nothing else holds writable references to them
- Commands are dispatched one at a time; a chat's streaming runs in its own
  task so CANCEL: stays responsive
- A chat arriving mid-stream cancels and supersedes the running generation
- setUiState(false) fires exactly once per generation, whatever the outcome
"""

import asyncio
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from localpair.config import (
    ChatMessage, ConnectionConfig, DEFAULT_SYSTEM_PROMPT, ERROR_MESSAGE_MAX_CHARS,
    Role, normalize_base_url,
)
from localpair.context import resolve_file_context, with_selection
from localpair.core import CancelToken, GenerationCancelled, LLMClient
from localpair.history import HistoryStore
from localpair.host import ChatSurface, EditorHost
from localpair.parsers import parse_provider
from localpair.protocol import (
    Apply, Cancel, Chat, Clear, Command, Connect, Directive, Insert, NewFile,
    Replace, decode, render_directive,
)

logger = logging.getLogger(__name__)

NOT_CONNECTED_MESSAGE = "Not connected!"
CONNECTION_REFUSED_MESSAGE = "Connection timed out or refused."
NO_PENDING_CHANGES_MESSAGE = "No pending changes to apply."


class GenerationState(str, Enum):
    """Lifecycle of one generation."""
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERRORED = "errored"


@dataclass
class GenerationSession:
    """
    The one in-flight generation.

    Discarded by the orchestrator once its outcome has been flushed to the
    history and the chat surface.
    """
    prompt: str
    model: Optional[str] = None
    state: GenerationState = GenerationState.IDLE
    token: CancelToken = field(default_factory=CancelToken)
    chunks: list[str] = field(default_factory=list)
    error: Optional[str] = None
    task: Optional[asyncio.Task] = None
    ended: bool = False

    @property
    def accumulated_text(self) -> str:
        return "".join(self.chunks)

    @property
    def is_terminal(self) -> bool:
        return self.state in (
            GenerationState.COMPLETED,
            GenerationState.CANCELLED,
            GenerationState.ERRORED,
        )


def sanitize_error(error: BaseException) -> str:
    """One-line, bounded message suitable for showError()."""
    text = " ".join(str(error).split()) or error.__class__.__name__
    return text[:ERROR_MESSAGE_MAX_CHARS]


class ChatOrchestrator:
    """
    Routes decoded commands to the history, client, and editor host.

    Explicit state: the active client (None until a CONNECT: succeeds),
    the live GenerationSession (None when idle), and code awaiting APPLY:.
    """

    def __init__(
        self,
        surface: ChatSurface,
        host: EditorHost,
        history: HistoryStore,
        client: Optional[LLMClient] = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        client_factory: Callable[..., LLMClient] = LLMClient,
    ):
        self.surface = surface
        self.host = host
        self.history = history
        self.client = client
        self.system_prompt = system_prompt
        self._client_factory = client_factory
        self.session: Optional[GenerationSession] = None
        self.pending_code: Optional[str] = None
        self._history_lock = asyncio.Lock()

    # ─────────────────────────────────────────────────────────────────
    # STATE
    # ─────────────────────────────────────────────────────────────────

    @property
    def state(self) -> GenerationState:
        if self.session is None:
            return GenerationState.IDLE
        return self.session.state

    @property
    def is_streaming(self) -> bool:
        return self.state is GenerationState.STREAMING

    def _send(self, directive: Directive, *args) -> None:
        self.surface.post(render_directive(directive, *args))

    # ─────────────────────────────────────────────────────────────────
    # LIFECYCLE
    # ─────────────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Restore persisted history and publish the project file list."""
        async with self._history_lock:
            existed = await asyncio.to_thread(self.history.exists)
            messages = await asyncio.to_thread(self.history.load)
        if existed:
            self._send(Directive.RESTORE_HISTORY, [m.to_stored() for m in messages])
        await self.send_file_list()

    async def wait_idle(self) -> None:
        """Wait for the in-flight generation, if any, to finish flushing."""
        session = self.session
        if session is not None and session.task is not None:
            await asyncio.gather(session.task, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel any running generation and wait for it to unwind."""
        self.cancel()
        await self.wait_idle()

    # ─────────────────────────────────────────────────────────────────
    # DISPATCH
    # ─────────────────────────────────────────────────────────────────

    async def handle_message(self, raw: str) -> None:
        """Decode and dispatch one raw message from the chat surface."""
        await self.dispatch(decode(raw))

    async def dispatch(self, command: Command) -> None:
        try:
            if isinstance(command, Cancel):
                self.cancel()
            elif isinstance(command, Clear):
                await self.clear_history()
            elif isinstance(command, Connect):
                await self.connect(command.provider, command.url, command.model)
            elif isinstance(command, Insert):
                self.insert_code(command.code)
            elif isinstance(command, Replace):
                self.show_diff(command.code)
            elif isinstance(command, Apply):
                self.apply_code(command.code)
            elif isinstance(command, NewFile):
                await self.create_file(command.name, command.code)
            elif isinstance(command, Chat):
                await self.chat(command)
            else:
                logger.warning(f"Unhandled command: {command!r}")
        except Exception:
            logger.exception(f"Message handler error for {type(command).__name__}")

    # ─────────────────────────────────────────────────────────────────
    # COMMAND HANDLERS
    # ─────────────────────────────────────────────────────────────────

    def cancel(self) -> None:
        """Cancel the running generation. No-op when idle."""
        session = self.session
        if session is None or session.is_terminal:
            logger.debug("Cancel requested with no generation in flight")
            return
        logger.info("Cancelling generation")
        session.token.cancel()

    async def clear_history(self) -> None:
        async with self._history_lock:
            await asyncio.to_thread(self.history.clear)
        logger.info("History cleared")

    async def connect(self, provider: str, url: str, model: str) -> bool:
        """
        Test a server and make it the active client on success.

        The previous client stays active when the test fails.
        """
        await self.send_file_list()

        try:
            base_url = normalize_base_url(url)
            config = ConnectionConfig(
                provider=parse_provider(provider), base_url=base_url, model=model
            )
            client = self._client_factory(config, system_prompt=self.system_prompt)
            connected = await client.test_connection()
        except Exception as e:
            logger.warning(f"Connect to {url!r} failed: {e}")
            self._send(Directive.CONNECTION_RESULT, False, model, f"Error: {sanitize_error(e)}")
            return False

        if not connected:
            self._send(Directive.CONNECTION_RESULT, False, model, CONNECTION_REFUSED_MESSAGE)
            return False

        self.client = client
        logger.info(f"Connected to {config.base_url} ({config.provider.value}) model={model}")
        self._send(Directive.CONNECTION_RESULT, True, model)
        return True

    async def chat(self, command: Chat) -> Optional[GenerationSession]:
        """
        Start a generation for a chat command.

        Returns the new session (already running in its own task), or None
        when the command was dropped or no server is connected.
        """
        if command.malformed:
            logger.warning(f"Dropping malformed command: {command.prompt[:40]!r}")
            return None

        previous = self.session
        if previous is not None and previous.task is not None and not previous.task.done():
            logger.info("New chat while streaming; superseding the running generation")
            previous.token.cancel()
            await asyncio.gather(previous.task, return_exceptions=True)

        if self.client is None:
            self._send(Directive.SHOW_ERROR, NOT_CONNECTED_MESSAGE)
            self._send(Directive.SET_UI_STATE, False)
            return None

        session = GenerationSession(
            prompt=command.prompt,
            model=(command.model or "").strip() or None,
            state=GenerationState.STREAMING,
        )
        self.session = session
        session.task = asyncio.create_task(self._run_generation(session, self.client))
        return session

    def insert_code(self, code: str) -> None:
        try:
            self.host.insert_code(code)
        except Exception as e:
            logger.warning(f"Insert failed: {e}")
            self._send(Directive.SHOW_ERROR, f"Insert failed: {sanitize_error(e)}")

    def show_diff(self, code: str) -> None:
        """Keep code pending for APPLY: and open the comparison view."""
        self.pending_code = code
        try:
            self.host.show_diff(code)
        except Exception as e:
            logger.warning(f"Diff view failed: {e}")
            self._send(Directive.SHOW_ERROR, f"Diff failed: {sanitize_error(e)}")

    def apply_code(self, code: str) -> None:
        """Insert reviewed code; falls back to the code pending from REPLACE:."""
        code = code or self.pending_code
        if not code:
            self._send(Directive.SHOW_ERROR, NO_PENDING_CHANGES_MESSAGE)
            return
        self.insert_code(code)
        self.pending_code = None

    async def create_file(self, name: str, code: str) -> None:
        try:
            path = await asyncio.to_thread(self.host.create_file, name, code)
        except Exception as e:
            logger.warning(f"Creating {name!r} failed: {e}")
            self._send(Directive.SHOW_ERROR, f"Error creating file: {sanitize_error(e)}")
            return
        logger.info(f"Created {path}")
        await self.send_file_list()

    async def send_file_list(self) -> None:
        try:
            names = await asyncio.to_thread(self.host.list_files)
        except Exception as e:
            logger.warning(f"Listing project files failed: {e}")
            return
        self._send(Directive.UPDATE_FILE_LIST, list(names))

    # ─────────────────────────────────────────────────────────────────
    # GENERATION
    # ─────────────────────────────────────────────────────────────────

    def _selection(self) -> Optional[str]:
        try:
            return self.host.get_selection()
        except Exception as e:
            logger.debug(f"No selection available: {e}")
            return None

    async def _run_generation(self, session: GenerationSession, client: LLMClient) -> None:
        self._send(Directive.START_STREAM)
        try:
            async with self._history_lock:
                self.history.append(ChatMessage(role=Role.USER, content=session.prompt))
                await asyncio.to_thread(self.history.persist)
                history = self.history.messages

            enriched = await asyncio.to_thread(
                resolve_file_context, session.prompt, self.host.find_file
            )
            enriched = with_selection(enriched, self._selection())

            stream = client.stream_chat(enriched, history, session.token, model=session.model)
            async with aclosing(stream):
                async for delta in stream:
                    if session.token.is_cancelled:
                        break
                    session.chunks.append(delta)
                    self._send(Directive.STREAM_CHUNK, delta)
            session.token.raise_if_cancelled()

            session.state = GenerationState.COMPLETED
            async with self._history_lock:
                self.history.append(
                    ChatMessage(role=Role.ASSISTANT, content=session.accumulated_text)
                )
                await asyncio.to_thread(self.history.persist)
            logger.info(f"Generation completed ({len(session.accumulated_text)} chars)")
            self._send(Directive.END_STREAM)

        except GenerationCancelled:
            self._mark_cancelled(session)
        except asyncio.CancelledError:
            if not session.token.is_cancelled:
                raise
            asyncio.current_task().uncancel()
            self._mark_cancelled(session)
        except Exception as e:
            if session.token.is_cancelled:
                self._mark_cancelled(session)
            else:
                session.state = GenerationState.ERRORED
                session.error = sanitize_error(e)
                logger.warning(f"Generation failed: {e}")
                self._send(Directive.SHOW_ERROR, session.error)
        finally:
            self._end(session)

    def _mark_cancelled(self, session: GenerationSession) -> None:
        session.state = GenerationState.CANCELLED
        logger.info(f"Generation cancelled after {len(session.chunks)} chunk(s)")
        self._send(Directive.CANCEL_STREAM)

    def _end(self, session: GenerationSession) -> None:
        if session.ended:
            return
        session.ended = True
        if not session.is_terminal:
            session.state = GenerationState.CANCELLED
        self._send(Directive.SET_UI_STATE, False)
        if self.session is session:
            self.session = None
