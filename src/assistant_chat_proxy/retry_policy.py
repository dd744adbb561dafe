from __future__ import annotations

from loguru import logger
from tenacity import retry_if_exception, stop_after_attempt, wait_exponential

from assistant_chat_proxy.errors import UpstreamError

_MAX_ATTEMPTS = 3


def _on_retry(retry_state) -> None:
    attempt = retry_state.attempt_number
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    reason = str(exc) if exc else "Unknown"
    logger.warning(f"{reason}. Retrying in {wait:.0f}s (attempt {attempt}/{_MAX_ATTEMPTS})...")


def is_transient_upstream_error(exc: BaseException) -> bool:
    return isinstance(exc, UpstreamError) and exc.is_transient


def upstream_retry_kwargs() -> dict:
    """Retry settings for callers that opt in; the assistant client itself never retries."""
    return {
        "retry": retry_if_exception(is_transient_upstream_error),
        "wait": wait_exponential(multiplier=1, min=1, max=8),
        "stop": stop_after_attempt(_MAX_ATTEMPTS),
        "before_sleep": _on_retry,
        "reraise": True,
    }
