"""
Core logic: streaming chat client for local model servers, cancellation.
"""

import asyncio
import logging
from contextlib import contextmanager
from typing import AsyncGenerator, Iterator, Optional, Sequence

import httpx

from localpair.adapters import ProviderAdapter, get_provider_adapter, join_url
from localpair.config import (
    ChatMessage, ConnectionConfig, DEFAULT_SYSTEM_PROMPT,
    get_connection_test_timeout,
)

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────
# ERRORS
# ─────────────────────────────────────────────────────────────────────

class LocalPairError(Exception):
    """Base class for errors surfaced to the user."""
    pass


class NetworkError(LocalPairError):
    """Transport failure talking to the model server."""
    pass


class ProtocolError(LocalPairError):
    """Server answered with a non-success status."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"API Error: {status_code} - {body}")


class GenerationCancelled(LocalPairError):
    """The user cancelled the generation. Not an error to display."""

    def __init__(self, message: str = "Generation cancelled"):
        super().__init__(message)


# ─────────────────────────────────────────────────────────────────────
# CANCELLATION
# ─────────────────────────────────────────────────────────────────────

class CancelToken:
    """
    One-shot cancellation handle for a single generation.

    While a stream is being read, the consuming task is bound to the
    token; cancel() then cancels that task so a pending network read
    unwinds immediately instead of at the next line.
    """

    def __init__(self):
        self._cancelled = False
        self._tasks: set[asyncio.Task] = set()

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Request cancellation. Idempotent."""
        if self._cancelled:
            return
        self._cancelled = True
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        for task in list(self._tasks):
            # A task cancelling its own token just sees the flag
            if task is not current and not task.done():
                task.cancel()

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise GenerationCancelled()

    @contextmanager
    def bound_to_current_task(self) -> Iterator[None]:
        """Bind the running task so cancel() can interrupt its awaits."""
        task = asyncio.current_task()
        if task is not None:
            self._tasks.add(task)
        try:
            yield
        finally:
            if task is not None:
                self._tasks.discard(task)


# ─────────────────────────────────────────────────────────────────────
# LLM CLIENT
# ─────────────────────────────────────────────────────────────────────

def build_messages(
    system_prompt: str,
    enriched_prompt: str,
    history: Sequence[ChatMessage],
) -> list[dict]:
    """
    Build the request message list.

    history already ends with the raw user turn for this request; that
    slot is replaced by the enriched prompt so inlined file contents never
    reach the persisted conversation.
    """
    messages = [{"role": "system", "content": system_prompt}]
    messages.extend(m.to_openai() for m in list(history)[:-1])
    messages.append({"role": "user", "content": enriched_prompt})
    return messages


class LLMClient:
    """
    Streaming chat client bound to one ConnectionConfig.

    The provider adapter is chosen once here; reconnecting means building
    a new client.
    """

    def __init__(
        self,
        config: ConnectionConfig,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        adapter: Optional[ProviderAdapter] = None,
        connect_timeout: Optional[float] = None,
    ):
        self.config = config
        self.system_prompt = system_prompt
        self.adapter = adapter or get_provider_adapter(config.provider)
        self.connect_timeout = connect_timeout or get_connection_test_timeout()

    async def test_connection(self) -> bool:
        """
        Probe the provider's liveness path.

        Bounded by a short fixed timeout. Never raises: any failure,
        non-2xx status or timeout is False.
        """
        url = join_url(self.config.base_url, self.adapter.liveness_path)
        try:
            # trust_env=False: local traffic never goes through an env proxy
            async with httpx.AsyncClient(timeout=self.connect_timeout, trust_env=False) as client:
                response = await asyncio.wait_for(client.get(url), timeout=self.connect_timeout)
                ok = response.is_success
                if not ok:
                    logger.info(f"Liveness probe {url} returned HTTP {response.status_code}")
                return ok
        except Exception as e:
            logger.info(f"Liveness probe {url} failed: {e!r}")
            return False

    async def stream_chat(
        self,
        prompt: str,
        history: Sequence[ChatMessage],
        cancel_token: Optional[CancelToken] = None,
        model: Optional[str] = None,
    ) -> AsyncGenerator[str, None]:
        """
        Stream a chat completion.
        Yields non-empty text deltas in the order the server sends them.

        Raises:
            ProtocolError: non-success HTTP status (carries status and body)
            NetworkError: transport failure
            GenerationCancelled: cancel_token fired, whatever the underlying error
        """
        token = cancel_token or CancelToken()
        model_id = model or self.config.model
        messages = build_messages(self.system_prompt, prompt, history)
        payload = self.adapter.build_payload(model_id, messages)
        url = join_url(self.config.base_url, self.adapter.chat_path)

        token.raise_if_cancelled()
        logger.debug(f"POST {url} model={model_id} messages={len(messages)}")

        with token.bound_to_current_task():
            try:
                # No client-side timeout; only the server or cancel_token ends a stream
                async with httpx.AsyncClient(timeout=None, trust_env=False) as client:
                    async with client.stream("POST", url, json=payload) as response:
                        if response.status_code >= 400:
                            error_body = await response.aread()
                            raise ProtocolError(
                                response.status_code,
                                error_body.decode("utf-8", errors="replace"),
                            )

                        async for line in response.aiter_lines():
                            token.raise_if_cancelled()
                            event = self.adapter.parse_line(line)
                            if event is None:
                                continue
                            if event.delta:
                                yield event.delta
                            if event.done:
                                break

                token.raise_if_cancelled()

            except asyncio.CancelledError:
                if not token.is_cancelled:
                    raise
                asyncio.current_task().uncancel()
                raise GenerationCancelled() from None
            except GenerationCancelled:
                raise
            except Exception as e:
                if token.is_cancelled:
                    raise GenerationCancelled() from e
                if isinstance(e, LocalPairError):
                    raise
                if isinstance(e, (httpx.HTTPError, OSError)):
                    raise NetworkError(f"Connection to {self.config.base_url} failed: {e}") from e
                raise


async def check_connection(config: ConnectionConfig) -> bool:
    """Probe a server without keeping a client around."""
    return await LLMClient(config).test_connection()


async def stream_chat(
    config: ConnectionConfig,
    prompt: str,
    history: Sequence[ChatMessage],
    cancel_token: Optional[CancelToken] = None,
    system_prompt: str = DEFAULT_SYSTEM_PROMPT,
) -> AsyncGenerator[str, None]:
    """Module-level convenience over LLMClient.stream_chat."""
    client = LLMClient(config, system_prompt=system_prompt)
    async for delta in client.stream_chat(prompt, history, cancel_token):
        yield delta
