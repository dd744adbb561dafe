from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from assistant_chat_proxy.app_config import AppConfig
from assistant_chat_proxy.assistant_client import AssistantClient
from assistant_chat_proxy.config_store import ConfigStore
from assistant_chat_proxy.logging_config import setup_logging
from assistant_chat_proxy.run_poller import RunPoller


@dataclass
class AppRuntime:
    app: AppConfig
    client: AssistantClient
    poller: RunPoller
    config_store: ConfigStore
    log_descriptions: list[str]

    async def close(self) -> None:
        await self.client.aclose()
        self.config_store.close()


def bootstrap_runtime(app: AppConfig, *, configure_logging: bool = True) -> AppRuntime:
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers) if configure_logging else []

    client = AssistantClient(api_base=app.api_base, timeout_seconds=app.request_timeout_seconds)
    poller = RunPoller(
        client,
        interval_seconds=app.poll_interval_seconds,
        max_attempts=app.max_poll_attempts,
        timeout_seconds=app.run_timeout_seconds,
    )

    db_path = app.config_db_path
    if db_path != ":memory:" and not Path(db_path).is_absolute():
        db_path = str(Path.cwd() / db_path)
    config_store = ConfigStore(db_path)

    logger.debug(
        f"Runtime ready: api_base={app.api_base}, poll_interval={app.poll_interval_seconds}s, "
        f"max_poll_attempts={app.max_poll_attempts}, run_timeout={app.run_timeout_seconds}s"
    )
    return AppRuntime(
        app=app,
        client=client,
        poller=poller,
        config_store=config_store,
        log_descriptions=log_descriptions,
    )
