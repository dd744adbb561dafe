from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from loguru import logger

from assistant_chat_proxy.conversation import ConversationSession
from assistant_chat_proxy.errors import UpstreamError
from assistant_chat_proxy.models import ASSISTANT, AssistantConfig
from assistant_chat_proxy.run_poller import RunPoller


@dataclass(frozen=True)
class RelayReply:
    response: str
    thread_id: str


async def relay_message(
    client: Any,
    poller: RunPoller,
    config: AssistantConfig,
    message: str,
    thread_id: str | None = None,
) -> RelayReply:
    """Server-side turn: the browser never sees the provider key.

    Runs the same thread/run/poll sequence as the widget session, continuing
    ``thread_id`` when given. The newest assistant reply of the run is
    returned; failures, including a run that produced no reply, are raised
    rather than folded into a transcript.
    """
    session = ConversationSession(client, poller, config, thread_id=thread_id, cancel_on_close=False)
    try:
        result = await session.submit(message)
    finally:
        await session.close()
    if result.error is not None:
        raise result.error

    replies = [m for m in result.messages if m.role == ASSISTANT]
    if not replies:
        logger.warning(f"Thread {session.thread_id}: run completed without an assistant reply")
        raise UpstreamError(200, "Run completed without an assistant reply")
    return RelayReply(response=replies[-1].content, thread_id=session.thread_id or "")
