from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

from assistant_chat_proxy.errors import ChatError

QUEUED = "queued"
IN_PROGRESS = "in_progress"
REQUIRES_ACTION = "requires_action"
CANCELLING = "cancelling"
COMPLETED = "completed"
FAILED = "failed"
CANCELLED = "cancelled"
EXPIRED = "expired"
INCOMPLETE = "incomplete"

FAILURE_STATUSES = frozenset({FAILED, CANCELLED, EXPIRED, INCOMPLETE})
TERMINAL_STATUSES = FAILURE_STATUSES | {COMPLETED}

USER = "user"
ASSISTANT = "assistant"


def utc_now() -> str:
    return datetime.now(UTC).isoformat(timespec="seconds")


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


@dataclass(frozen=True)
class Message:
    id: str
    role: str
    content: str
    originating_run_id: str | None = None


@dataclass
class RunHandle:
    """One run of an assistant against a thread. Only poll results change ``status``."""

    run_id: str
    thread_id: str
    assistant_id: str
    status: str
    created_at: str = field(default_factory=utc_now)

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)


@dataclass(frozen=True)
class AssistantConfig:
    config_id: str
    api_key: str = field(repr=False)
    assistant_id: str
    name: str = ""
    owner_id: str | None = None
    created_at: str = field(default_factory=utc_now)


@dataclass(frozen=True)
class TurnResult:
    """Outcome of one submit: the transcript entries it appended and the error, if any."""

    messages: tuple[Message, ...] = ()
    error: ChatError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None
