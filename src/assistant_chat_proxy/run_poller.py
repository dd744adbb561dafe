from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger
from tenacity import AsyncRetrying, RetryError, retry_if_result, stop_after_attempt, stop_after_delay, wait_fixed

from assistant_chat_proxy.errors import RunFailed, RunTimeout, SessionClosed
from assistant_chat_proxy.models import COMPLETED, RunHandle, is_terminal

DEFAULT_POLL_INTERVAL_SECONDS = 1.5
DEFAULT_MAX_ATTEMPTS = 120
DEFAULT_TIMEOUT_SECONDS = 120.0


class RunPoller:
    """Drive a submitted run to a terminal status by polling its status.

    The first status read happens straight away; every following read waits
    ``interval_seconds``. A run that is still non-terminal after
    ``max_attempts`` reads or ``timeout_seconds`` raises :class:`RunTimeout`.
    """

    def __init__(
        self,
        client: Any,
        *,
        interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._interval_seconds = interval_seconds
        self._max_attempts = max(1, max_attempts)
        self._timeout_seconds = timeout_seconds
        self._sleep = sleep

    async def wait(
        self,
        api_key: str,
        run: RunHandle,
        *,
        session_id: str = "",
        closed: asyncio.Event | None = None,
    ) -> RunHandle:
        """Return ``run`` once it is completed, or raise :class:`RunFailed`.

        ``closed`` is checked before every status read and cuts a pending wait
        short; once set, polling stops with :class:`SessionClosed` and no
        further reads are issued.
        """
        if run.is_terminal:
            return self._finish(run)

        async def read_status() -> str:
            if closed is not None and closed.is_set():
                raise SessionClosed(session_id)
            run.status = await self._client.get_run_status(api_key, run.thread_id, run.run_id)
            return run.status

        async def sleep_unless_closed(seconds: float) -> None:
            if closed is None:
                await self._sleep(seconds)
                return
            waits = {asyncio.ensure_future(self._sleep(seconds)), asyncio.ensure_future(closed.wait())}
            _, pending = await asyncio.wait(waits, return_when=asyncio.FIRST_COMPLETED)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        def log_wait(retry_state) -> None:
            logger.debug(
                f"Run {run.run_id} is {run.status}; polling again in "
                f"{self._interval_seconds:.1f}s (read {retry_state.attempt_number})"
            )

        retrying = AsyncRetrying(
            retry=retry_if_result(lambda status: not is_terminal(status)),
            wait=wait_fixed(self._interval_seconds),
            stop=stop_after_attempt(self._max_attempts) | stop_after_delay(self._timeout_seconds),
            sleep=sleep_unless_closed,
            before_sleep=log_wait,
        )
        try:
            await retrying(read_status)
        except RetryError as ex:
            attempts = ex.last_attempt.attempt_number
            logger.warning(f"Run {run.run_id} did not finish after {attempts} status read(s)")
            raise RunTimeout(run.run_id, run.status, attempts) from None

        return self._finish(run)

    @staticmethod
    def _finish(run: RunHandle) -> RunHandle:
        if run.status == COMPLETED:
            logger.info(f"Run {run.run_id} completed")
            return run
        logger.warning(f"Run {run.run_id} ended with status {run.status}")
        raise RunFailed(run.status, run.run_id)
