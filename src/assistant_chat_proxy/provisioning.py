from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from loguru import logger
from tenacity import retry

from assistant_chat_proxy.assistant_client import DEFAULT_MODEL
from assistant_chat_proxy.config_store import ConfigStore
from assistant_chat_proxy.embed import chat_page_url, render_embed_snippet
from assistant_chat_proxy.errors import ConfigurationError
from assistant_chat_proxy.models import AssistantConfig
from assistant_chat_proxy.retry_policy import upstream_retry_kwargs


@dataclass(frozen=True)
class EmbedRegistration:
    config: AssistantConfig
    embed_code: str
    chat_url: str


@retry(**upstream_retry_kwargs())
async def _create_assistant(client: Any, api_key: str, name: str, instructions: str, model: str) -> str:
    return await client.create_assistant(
        api_key,
        name=name,
        instructions=instructions,
        model=model,
        tools=[{"type": "code_interpreter"}, {"type": "file_search"}],
    )


@retry(**upstream_retry_kwargs())
async def _verify_assistant(client: Any, api_key: str, assistant_id: str) -> None:
    await client.retrieve_assistant(api_key, assistant_id)


async def create_embed(
    client: Any,
    store: ConfigStore,
    *,
    api_key: str | None,
    base_url: str,
    assistant_id: str | None = None,
    name: str | None = None,
    instructions: str | None = None,
    model: str | None = None,
    owner_id: str | None = None,
) -> EmbedRegistration:
    """Register an assistant for embedding, creating it upstream when no id is given.

    An existing ``assistant_id`` is checked against the provider before it is
    stored. Transient upstream failures are retried; anything else propagates
    as :class:`UpstreamError`.
    """
    api_key = (api_key or "").strip()
    if not api_key:
        raise ConfigurationError("OpenAI API Key is required.")

    assistant_id = (assistant_id or "").strip()
    if assistant_id:
        await _verify_assistant(client, api_key, assistant_id)
    else:
        if not (name or "").strip() or not (instructions or "").strip():
            raise ConfigurationError("Name and description are required to create a new assistant.")
        assistant_id = await _create_assistant(client, api_key, name.strip(), instructions, model or DEFAULT_MODEL)

    config = store.register(api_key, assistant_id, name=(name or "").strip(), owner_id=owner_id)
    logger.debug(f"Embed ready for config {config.config_id}")
    return EmbedRegistration(
        config=config,
        embed_code=render_embed_snippet(config.config_id, base_url),
        chat_url=chat_page_url(config.config_id, base_url),
    )
