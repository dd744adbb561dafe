from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import httpx
from loguru import logger

from assistant_chat_proxy.errors import UpstreamError
from assistant_chat_proxy.models import RunHandle, utc_now

DEFAULT_API_BASE = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o"
_BETA_HEADER = "assistants=v2"
_TIMEOUT_SECONDS = 30.0
_GENERIC_ERROR = "An unknown API error occurred."


def _headers(api_key: str) -> dict[str, str]:
    return {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {api_key}",
        "OpenAI-Beta": _BETA_HEADER,
    }


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return _GENERIC_ERROR
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
    return _GENERIC_ERROR


class AssistantClient:
    """Thin async wrapper over the hosted assistants REST API.

    Every call is authenticated with the caller's key, so one client may be
    shared by many sessions. Nothing is retried here; non-2xx responses,
    transport failures and malformed bodies all raise :class:`UpstreamError`.
    """

    def __init__(
        self,
        *,
        api_base: str = DEFAULT_API_BASE,
        timeout_seconds: float = _TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_base = api_base.rstrip("/")
        self._http = httpx.AsyncClient(timeout=timeout_seconds, transport=transport)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def create_thread(self, api_key: str) -> str:
        payload = await self._request("POST", "/threads", api_key, required=("id",))
        thread_id = str(payload["id"])
        logger.debug(f"Created thread {thread_id}")
        return thread_id

    async def add_message(self, api_key: str, thread_id: str, text: str) -> dict[str, Any]:
        return await self._request(
            "POST",
            f"/threads/{thread_id}/messages",
            api_key,
            json={"role": "user", "content": text},
        )

    async def create_run(self, api_key: str, thread_id: str, assistant_id: str) -> RunHandle:
        payload = await self._request(
            "POST",
            f"/threads/{thread_id}/runs",
            api_key,
            json={"assistant_id": assistant_id},
            required=("id", "status"),
        )
        run = RunHandle(
            run_id=str(payload["id"]),
            thread_id=thread_id,
            assistant_id=assistant_id,
            status=str(payload["status"]),
            created_at=_created_at(payload.get("created_at")),
        )
        logger.debug(f"Created run {run.run_id} on thread {thread_id} (status={run.status})")
        return run

    async def get_run_status(self, api_key: str, thread_id: str, run_id: str) -> str:
        payload = await self._request(
            "GET", f"/threads/{thread_id}/runs/{run_id}", api_key, required=("status",)
        )
        return str(payload["status"])

    async def cancel_run(self, api_key: str, thread_id: str, run_id: str) -> str:
        payload = await self._request(
            "POST", f"/threads/{thread_id}/runs/{run_id}/cancel", api_key, required=("status",)
        )
        return str(payload["status"])

    async def list_messages(self, api_key: str, thread_id: str) -> list[dict[str, Any]]:
        """Return the thread's messages oldest-first.

        The provider lists newest-first; the order is reversed here so callers
        never see a reply before the message it answers.
        """
        payload = await self._request(
            "GET", f"/threads/{thread_id}/messages", api_key, required=("data",)
        )
        data = payload["data"]
        if not isinstance(data, list):
            raise UpstreamError(200, "Malformed response: 'data' is not a list")
        if not all(isinstance(entry, dict) for entry in data):
            raise UpstreamError(200, "Malformed response: 'data' holds a non-object message")
        return list(reversed(data))

    async def create_assistant(
        self,
        api_key: str,
        *,
        name: str,
        instructions: str,
        model: str = DEFAULT_MODEL,
        tools: list[dict[str, Any]] | None = None,
    ) -> str:
        body = {
            "name": name,
            "instructions": instructions,
            "model": model,
            "tools": tools if tools is not None else [{"type": "code_interpreter"}],
        }
        payload = await self._request("POST", "/assistants", api_key, json=body, required=("id",))
        assistant_id = str(payload["id"])
        logger.info(f"Created assistant {assistant_id} ({name!r}, model={model})")
        return assistant_id

    async def retrieve_assistant(self, api_key: str, assistant_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/assistants/{assistant_id}", api_key)

    async def _request(
        self,
        method: str,
        path: str,
        api_key: str,
        *,
        json: dict[str, Any] | None = None,
        required: tuple[str, ...] = (),
    ) -> dict[str, Any]:
        url = f"{self._api_base}{path}"
        logger.debug(f"Upstream request: {method} {path}")
        try:
            response = await self._http.request(method, url, headers=_headers(api_key), json=json)
        except httpx.TimeoutException as ex:
            raise UpstreamError(None, f"Timed out calling {method} {path}") from ex
        except httpx.HTTPError as ex:
            raise UpstreamError(None, f"{type(ex).__name__} calling {method} {path}") from ex

        if not response.is_success:
            message = _error_message(response)
            logger.warning(f"Upstream error: {method} {path} -> HTTP {response.status_code}: {message}")
            raise UpstreamError(response.status_code, message)

        try:
            payload = response.json()
        except ValueError as ex:
            raise UpstreamError(response.status_code, "Malformed response: body is not JSON") from ex
        if not isinstance(payload, dict):
            raise UpstreamError(response.status_code, "Malformed response: expected a JSON object")
        missing = [key for key in required if payload.get(key) is None]
        if missing:
            raise UpstreamError(response.status_code, f"Malformed response: missing {', '.join(missing)}")

        logger.debug(f"Upstream response: {method} {path} -> HTTP {response.status_code}")
        return payload


def _created_at(value: Any) -> str:
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, UTC).isoformat(timespec="seconds")
    return utc_now()
