from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from assistant_chat_proxy.assistant_client import DEFAULT_API_BASE


@dataclass
class RuntimeEnv:
    openai_api_key: str
    assistant_id: str | None


@dataclass
class AppConfig:
    api_base: str
    request_timeout_seconds: float
    poll_interval_seconds: float
    max_poll_attempts: int
    run_timeout_seconds: float
    config_db_path: str
    public_base_url: str
    host: str
    port: int
    cors_origins: list[str]
    chat_config_id: str | None
    log_level: str
    log_consumers: list | None


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _to_list(value: object) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return [str(part) for part in value]


def parse_app_config(config: dict) -> AppConfig:
    host = str(config.get("Host", "127.0.0.1"))
    port = int(config.get("Port", 3000))
    return AppConfig(
        api_base=str(config.get("ApiBase", DEFAULT_API_BASE)),
        request_timeout_seconds=float(config.get("RequestTimeoutSeconds", 30)),
        poll_interval_seconds=float(config.get("PollIntervalSeconds", 1.5)),
        max_poll_attempts=int(config.get("MaxPollAttempts", 120)),
        run_timeout_seconds=float(config.get("RunTimeoutSeconds", 120)),
        config_db_path=str(config.get("ConfigDbPath", ".chat_proxy/configs.db")),
        public_base_url=str(config.get("PublicBaseUrl", f"http://localhost:{port}")).rstrip("/"),
        host=host,
        port=port,
        cors_origins=_to_list(config.get("CorsOrigins", "*")),
        chat_config_id=str(config.get("ChatConfigId", "")).strip() or None,
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )


def resolve_runtime_env() -> RuntimeEnv:
    return RuntimeEnv(
        openai_api_key=os.environ.get("OPENAI_API_KEY", ""),
        assistant_id=os.environ.get("ASSISTANT_ID") or None,
    )
