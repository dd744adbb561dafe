from __future__ import annotations

import sqlite3
from pathlib import Path
from uuid import uuid4

from loguru import logger

from assistant_chat_proxy.errors import ConfigNotFound
from assistant_chat_proxy.models import AssistantConfig, utc_now


class ConfigStore:
    """Assistant configurations keyed directly by config id.

    Lookups are single indexed reads and never touch the polling path, so one
    store can serve every session concurrently.
    """

    def __init__(self, db_path: str):
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._initialize_schema()

    def close(self) -> None:
        self._conn.close()

    def register(
        self,
        api_key: str,
        assistant_id: str,
        *,
        name: str = "",
        owner_id: str | None = None,
        config_id: str | None = None,
    ) -> AssistantConfig:
        config = AssistantConfig(
            config_id=config_id or str(uuid4()),
            api_key=api_key,
            assistant_id=assistant_id,
            name=name,
            owner_id=owner_id,
            created_at=utc_now(),
        )
        self._conn.execute(
            """
            INSERT INTO assistant_configs (id, api_key, assistant_id, name, owner_id, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (config.config_id, config.api_key, config.assistant_id, config.name, config.owner_id, config.created_at),
        )
        self._conn.commit()
        logger.info(f"Configuration created: {config.config_id} for assistant {assistant_id}")
        return config

    def get(self, config_id: str) -> AssistantConfig | None:
        row = self._conn.execute(
            "SELECT * FROM assistant_configs WHERE id = ? LIMIT 1",
            (config_id,),
        ).fetchone()
        if row is None:
            return None
        return _to_config(row)

    def lookup(self, config_id: str) -> AssistantConfig:
        config = self.get(config_id)
        if config is None:
            raise ConfigNotFound(config_id)
        return config

    def delete(self, config_id: str) -> bool:
        cursor = self._conn.execute("DELETE FROM assistant_configs WHERE id = ?", (config_id,))
        self._conn.commit()
        return cursor.rowcount > 0

    def list_for_owner(self, owner_id: str) -> list[AssistantConfig]:
        rows = self._conn.execute(
            """
            SELECT * FROM assistant_configs
            WHERE owner_id = ?
            ORDER BY created_at ASC, rowid ASC
            """,
            (owner_id,),
        ).fetchall()
        return [_to_config(row) for row in rows]

    def _initialize_schema(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS assistant_configs (
                id TEXT PRIMARY KEY,
                api_key TEXT NOT NULL,
                assistant_id TEXT NOT NULL,
                name TEXT NOT NULL DEFAULT '',
                owner_id TEXT NULL,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_assistant_configs_owner
                ON assistant_configs(owner_id, created_at);
            """
        )
        self._conn.commit()


def _to_config(row: sqlite3.Row) -> AssistantConfig:
    return AssistantConfig(
        config_id=row["id"],
        api_key=row["api_key"],
        assistant_id=row["assistant_id"],
        name=row["name"],
        owner_id=row["owner_id"],
        created_at=row["created_at"],
    )
