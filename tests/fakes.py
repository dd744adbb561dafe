import asyncio
from typing import Any

from assistant_chat_proxy.errors import UpstreamError
from assistant_chat_proxy.models import AssistantConfig, RunHandle

CONFIG = AssistantConfig(config_id="cfg-1", api_key="sk-test-key-123456", assistant_id="asst_1")


def assistant_entry(message_id: str, run_id: str, text: str) -> dict:
    return {
        "id": message_id,
        "role": "assistant",
        "run_id": run_id,
        "content": [{"type": "text", "text": {"value": text, "annotations": []}}],
    }


def user_entry(message_id: str, text: str) -> dict:
    return {
        "id": message_id,
        "role": "user",
        "run_id": None,
        "content": [{"type": "text", "text": {"value": text, "annotations": []}}],
    }


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FakeAssistantClient:
    """In-memory stand-in for AssistantClient.

    ``statuses`` feeds successive get_run_status calls; ``replies`` maps a run
    id to the assistant texts that run produces. ``list_messages`` returns the
    thread oldest-first, like the real client.
    """

    def __init__(
        self,
        *,
        thread_ids: list[str] | None = None,
        run_ids: list[str] | None = None,
        initial_status: str = "queued",
        statuses: list[str] | None = None,
        replies: dict[str, list[str]] | None = None,
    ) -> None:
        self._thread_ids = list(thread_ids or ["t1"])
        self._run_ids = list(run_ids or ["r1"])
        self.initial_status = initial_status
        self.statuses = list(statuses or [])
        self.replies = dict(replies or {})
        self.calls: list[tuple] = []
        self.thread_messages: list[dict] = []
        self.fail_on: dict[str, Exception] = {}
        self.status_gate: asyncio.Event | None = None

    def _maybe_fail(self, name: str) -> None:
        error = self.fail_on.get(name)
        if error is not None:
            raise error

    async def create_thread(self, api_key: str) -> str:
        self.calls.append(("create_thread",))
        self._maybe_fail("create_thread")
        return self._thread_ids.pop(0) if len(self._thread_ids) > 1 else self._thread_ids[0]

    async def add_message(self, api_key: str, thread_id: str, text: str) -> dict[str, Any]:
        self.calls.append(("add_message", thread_id, text))
        self._maybe_fail("add_message")
        message_id = f"msg_u{len(self.thread_messages)}"
        self.thread_messages.append(user_entry(message_id, text))
        return {"id": message_id}

    async def create_run(self, api_key: str, thread_id: str, assistant_id: str) -> RunHandle:
        self.calls.append(("create_run", thread_id, assistant_id))
        self._maybe_fail("create_run")
        run_id = self._run_ids.pop(0)
        if not self.statuses and self.initial_status == "completed":
            self._complete(run_id)
        return RunHandle(run_id=run_id, thread_id=thread_id, assistant_id=assistant_id, status=self.initial_status)

    async def get_run_status(self, api_key: str, thread_id: str, run_id: str) -> str:
        self.calls.append(("get_run_status", run_id))
        if self.status_gate is not None:
            await self.status_gate.wait()
        self._maybe_fail("get_run_status")
        if not self.statuses:
            raise UpstreamError(500, "no scripted status left")
        status = self.statuses.pop(0)
        if status == "completed":
            self._complete(run_id)
        return status

    async def cancel_run(self, api_key: str, thread_id: str, run_id: str) -> str:
        self.calls.append(("cancel_run", run_id))
        self._maybe_fail("cancel_run")
        return "cancelling"

    async def list_messages(self, api_key: str, thread_id: str) -> list[dict]:
        self.calls.append(("list_messages", thread_id))
        self._maybe_fail("list_messages")
        return list(self.thread_messages)

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    def _complete(self, run_id: str) -> None:
        for i, text in enumerate(self.replies.get(run_id, [])):
            self.thread_messages.append(assistant_entry(f"msg_{run_id}_{i}", run_id, text))
