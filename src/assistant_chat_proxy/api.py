from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from assistant_chat_proxy.bootstrap import AppRuntime
from assistant_chat_proxy.embed import EMBED_SCRIPT, NOT_FOUND_MESSAGE, resolve_embed
from assistant_chat_proxy.errors import ChatError, ConfigNotFound, ConfigurationError, RunFailed, UpstreamError
from assistant_chat_proxy.provisioning import create_embed
from assistant_chat_proxy.proxy import relay_message

CREATE_EMBED_FAILURE = "Failed to configure assistant. Please check your API key and Assistant ID."
CHAT_FAILURE = "An error occurred while processing the chat message."


class CreateEmbedRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    api_key: str | None = Field(default=None, alias="apiKey")
    assistant_id: str | None = Field(default=None, alias="assistantId")
    name: str | None = None
    description: str | None = None
    model: str | None = None


class ChatMessageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str | None = None
    thread_id: str | None = Field(default=None, alias="threadId")


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app(runtime: AppRuntime, *, close_runtime: bool = True) -> FastAPI:
    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        if close_runtime:
            await runtime.close()

    app = FastAPI(title="Assistant Chat Proxy", version="0.1.0", lifespan=lifespan)
    app.state.runtime = runtime

    app.add_middleware(
        CORSMiddleware,
        allow_origins=runtime.app.cors_origins or ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _runtime(request: Request) -> AppRuntime:
        return request.app.state.runtime

    @app.exception_handler(RequestValidationError)
    async def _invalid_body(_request: Request, exc: RequestValidationError):
        logger.debug(f"Rejected request body: {exc.errors()}")
        return _error(400, "Request body is invalid.")

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        }

    @app.get("/embed.js")
    def embed_script():
        return Response(content=EMBED_SCRIPT, media_type="application/javascript")

    @app.get("/embed/{config_id}")
    def embed_view(config_id: str, request: Request):
        rt = _runtime(request)
        view = resolve_embed(rt.config_store, config_id, rt.app.public_base_url)
        if not view.found:
            return _error(404, view.message or NOT_FOUND_MESSAGE)
        return {"configId": view.config_id, "chatUrl": view.chat_url, "embedCode": view.embed_code}

    @app.post("/api/create-embed")
    async def create_embed_route(body: CreateEmbedRequest, request: Request):
        rt = _runtime(request)
        try:
            registration = await create_embed(
                rt.client,
                rt.config_store,
                api_key=body.api_key,
                base_url=rt.app.public_base_url,
                assistant_id=body.assistant_id,
                name=body.name,
                instructions=body.description,
                model=body.model,
            )
        except ConfigurationError as ex:
            return _error(400, str(ex))
        except UpstreamError as ex:
            logger.error(f"Error configuring assistant: {ex}")
            return _error(500, CREATE_EMBED_FAILURE)

        return {
            "success": True,
            "message": "Assistant configured successfully!",
            "configId": registration.config.config_id,
            "assistantId": registration.config.assistant_id,
            "embedCode": registration.embed_code,
            "chatUrl": registration.chat_url,
        }

    @app.post("/chat/{config_id}/message")
    async def chat_message(config_id: str, body: ChatMessageRequest, request: Request):
        rt = _runtime(request)
        if not body.message or not body.message.strip():
            return _error(400, "Message content is required.")
        try:
            config = rt.config_store.lookup(config_id)
        except ConfigNotFound:
            return _error(404, f"{NOT_FOUND_MESSAGE} Please check the embed code.")

        try:
            reply = await relay_message(rt.client, rt.poller, config, body.message, body.thread_id)
        except RunFailed as ex:
            logger.error(f"Run did not complete successfully: {ex.status}")
            return _error(500, f"Run finished with status: {ex.status}")
        except ChatError as ex:
            logger.error(f"Error during chat processing: {ex}")
            return _error(500, CHAT_FAILURE)

        return {"success": True, "response": reply.response, "threadId": reply.thread_id}

    return app
