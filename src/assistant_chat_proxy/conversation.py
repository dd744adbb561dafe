from __future__ import annotations

import asyncio
from typing import Any
from uuid import uuid4

from loguru import logger

from assistant_chat_proxy.errors import Busy, ChatError, EmptyMessage, InitError, SessionClosed
from assistant_chat_proxy.models import (
    ASSISTANT,
    USER,
    AssistantConfig,
    Message,
    RunHandle,
    TurnResult,
)
from assistant_chat_proxy.run_poller import RunPoller

GREETING = "Hello! How can I assist you today?"
CONNECT_FAILURE_MESSAGE = "Sorry, I couldn't connect to the assistant."
TURN_FAILURE_MESSAGE = "Sorry, something went wrong. Please try again."
UNSUPPORTED_CONTENT = "Unsupported content type"


def extract_content(entry: dict[str, Any]) -> str:
    """Text of an upstream message's first content item, or the placeholder for anything else."""
    content = entry.get("content") or []
    first = content[0] if isinstance(content, list) and content else None
    if isinstance(first, dict) and first.get("type") == "text":
        text = first.get("text")
        if isinstance(text, dict) and isinstance(text.get("value"), str):
            return text["value"]
    return UNSUPPORTED_CONTENT


class ConversationSession:
    """One chat widget's conversation: thread identity plus an append-only transcript.

    Submits are serialized by rejection: a second ``submit`` while a turn is in
    flight returns :class:`Busy` instead of queueing. Errors never escape
    ``start``/``submit``; they come back on the :class:`TurnResult` together
    with whatever transcript entries the turn appended.
    """

    def __init__(
        self,
        client: Any,
        poller: RunPoller,
        config: AssistantConfig,
        *,
        thread_id: str | None = None,
        session_id: str | None = None,
        cancel_on_close: bool = True,
    ) -> None:
        self._client = client
        self._poller = poller
        self._api_key = config.api_key
        self._assistant_id = config.assistant_id
        self._session_id = session_id or str(uuid4())
        self._thread_id = thread_id
        self._transcript: list[Message] = []
        self._pending_run: RunHandle | None = None
        self._in_flight = False
        self._closed = asyncio.Event()
        self._cancel_on_close = cancel_on_close

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def thread_id(self) -> str | None:
        return self._thread_id

    @property
    def transcript(self) -> tuple[Message, ...]:
        return tuple(self._transcript)

    @property
    def pending_run(self) -> RunHandle | None:
        return self._pending_run

    @property
    def is_busy(self) -> bool:
        return self._in_flight

    @property
    def is_closed(self) -> bool:
        return self._closed.is_set()

    async def start(self) -> TurnResult:
        """Create the thread eagerly and seed the greeting."""
        if self._closed.is_set():
            return TurnResult(error=SessionClosed(self._session_id))
        if self._in_flight:
            return TurnResult(error=Busy(self._session_id))
        if self._thread_id is not None:
            return TurnResult()

        self._in_flight = True
        try:
            failure = await self._ensure_thread()
            if failure is not None:
                return failure
            return TurnResult(messages=(self._append(f"init_{uuid4().hex}", ASSISTANT, GREETING),))
        finally:
            self._in_flight = False

    async def submit(self, text: str) -> TurnResult:
        if self._closed.is_set():
            return TurnResult(error=SessionClosed(self._session_id))
        if not text or not text.strip():
            return TurnResult(error=EmptyMessage())
        if self._in_flight:
            logger.info(f"Session {self._session_id}: rejected submit while a run is pending")
            return TurnResult(error=Busy(self._session_id))

        self._in_flight = True
        try:
            failure = await self._ensure_thread()
            if failure is not None:
                return failure
            return await self._run_turn(text)
        finally:
            self._pending_run = None
            self._in_flight = False

    async def close(self) -> None:
        """Stop polling; best-effort cancel of a still-running run upstream."""
        if self._closed.is_set():
            return
        self._closed.set()
        run = self._pending_run
        if run is None or run.is_terminal or not self._cancel_on_close:
            return
        try:
            status = await self._client.cancel_run(self._api_key, run.thread_id, run.run_id)
            logger.info(f"Session {self._session_id}: requested cancel of run {run.run_id} ({status})")
        except ChatError as ex:
            logger.warning(f"Session {self._session_id}: could not cancel run {run.run_id}: {ex}")

    async def _ensure_thread(self) -> TurnResult | None:
        if self._thread_id is not None:
            return None
        try:
            self._thread_id = await self._client.create_thread(self._api_key)
        except ChatError as ex:
            logger.error(f"Session {self._session_id}: failed to initialize chat thread: {ex}")
            error = InitError()
            error.__cause__ = ex
            notice = self._append(f"error_init_{uuid4().hex}", ASSISTANT, CONNECT_FAILURE_MESSAGE)
            return TurnResult(messages=(notice,), error=error)
        logger.info(f"Session {self._session_id}: created thread {self._thread_id}")
        return None

    async def _run_turn(self, text: str) -> TurnResult:
        thread_id = self._thread_id
        appended = [self._append(f"msg_{uuid4().hex}", USER, text)]
        run: RunHandle | None = None

        try:
            await self._client.add_message(self._api_key, thread_id, text)
            run = await self._client.create_run(self._api_key, thread_id, self._assistant_id)
            self._pending_run = run
            await self._poller.wait(self._api_key, run, session_id=self._session_id, closed=self._closed)
            entries = await self._client.list_messages(self._api_key, thread_id)
        except SessionClosed as ex:
            logger.info(f"Session {self._session_id}: closed while waiting for run")
            return TurnResult(messages=tuple(appended), error=ex)
        except ChatError as ex:
            logger.error(f"Session {self._session_id}: chat turn failed: {ex}")
            run_id = run.run_id if run is not None else None
            appended.append(self._append(f"err_{uuid4().hex}", ASSISTANT, TURN_FAILURE_MESSAGE, run_id))
            return TurnResult(messages=tuple(appended), error=ex)

        for entry in entries:
            if entry.get("role") != ASSISTANT or entry.get("run_id") != run.run_id:
                continue
            message_id = str(entry.get("id") or f"msg_{uuid4().hex}")
            appended.append(self._append(message_id, ASSISTANT, extract_content(entry), run.run_id))

        logger.debug(
            f"Session {self._session_id}: run {run.run_id} produced {len(appended) - 1} assistant message(s)"
        )
        return TurnResult(messages=tuple(appended))

    def _append(self, message_id: str, role: str, content: str, run_id: str | None = None) -> Message:
        message = Message(id=message_id, role=role, content=content, originating_run_id=run_id)
        self._transcript.append(message)
        return message
