from __future__ import annotations


class ChatError(Exception):
    """Base class for every failure surfaced by the chat proxy."""


class UpstreamError(ChatError):
    """Non-success HTTP status, transport failure or malformed body from the provider.

    ``http_status`` is ``None`` when no response was received (timeout, connection
    failure), which keeps transport problems distinct from provider-reported errors.
    """

    def __init__(self, http_status: int | None, message: str):
        super().__init__(message)
        self.http_status = http_status
        self.message = message

    @property
    def is_transient(self) -> bool:
        if self.http_status is None:
            return True
        return self.http_status == 429 or self.http_status >= 500

    def __str__(self) -> str:
        if self.http_status is None:
            return f"Upstream request failed: {self.message}"
        return f"Upstream HTTP {self.http_status}: {self.message}"


class RunFailed(ChatError):
    def __init__(self, status: str, run_id: str | None = None):
        super().__init__(f"Run ended with status: {status}")
        self.status = status
        self.run_id = run_id


class RunTimeout(ChatError):
    def __init__(self, run_id: str, last_status: str, attempts: int):
        super().__init__(
            f"Run {run_id} still {last_status!r} after {attempts} status read(s); gave up waiting"
        )
        self.run_id = run_id
        self.last_status = last_status
        self.attempts = attempts


class SessionClosed(ChatError):
    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} is closed")
        self.session_id = session_id


class Busy(ChatError):
    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} already has a run in progress")
        self.session_id = session_id


class EmptyMessage(ChatError):
    def __init__(self) -> None:
        super().__init__("Message content is required.")


class InitError(ChatError):
    """Thread creation failed; the underlying error is chained as ``__cause__``."""

    def __init__(self, message: str = "Could not create a conversation thread"):
        super().__init__(message)


class ConfigNotFound(ChatError):
    def __init__(self, config_id: str):
        super().__init__(f"No assistant configuration with id {config_id!r}")
        self.config_id = config_id


class ConfigurationError(ChatError):
    """Invalid input while registering an assistant configuration."""
