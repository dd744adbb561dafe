import asyncio
import sys

from dotenv import load_dotenv
from loguru import logger

from assistant_chat_proxy.app_config import AppConfig, RuntimeEnv, load_json_config, parse_app_config, resolve_runtime_env
from assistant_chat_proxy.bootstrap import AppRuntime, bootstrap_runtime
from assistant_chat_proxy.console import USER_PROMPT, Spinner, format_message
from assistant_chat_proxy.conversation import ConversationSession
from assistant_chat_proxy.errors import ConfigNotFound
from assistant_chat_proxy.logging_config import mask_secret
from assistant_chat_proxy.models import ASSISTANT, AssistantConfig, USER

_USAGE = "usage: python -m assistant_chat_proxy [serve|chat]"


def _resolve_chat_config(runtime: AppRuntime, env: RuntimeEnv) -> AssistantConfig | None:
    if runtime.app.chat_config_id:
        try:
            return runtime.config_store.lookup(runtime.app.chat_config_id)
        except ConfigNotFound as ex:
            logger.error(str(ex))
            return None
    if not env.openai_api_key or not env.assistant_id:
        logger.error("Set ChatConfigId in config.json, or OPENAI_API_KEY and ASSISTANT_ID in the environment.")
        return None
    return AssistantConfig(config_id="local", api_key=env.openai_api_key, assistant_id=env.assistant_id)


async def chat(runtime: AppRuntime, env: RuntimeEnv) -> None:
    config = _resolve_chat_config(runtime, env)
    if config is None:
        await runtime.close()
        sys.exit(1)

    session = ConversationSession(runtime.client, runtime.poller, config)
    print(f"assistant-chat-proxy (assistant {config.assistant_id}, key {mask_secret(config.api_key)})")
    print("Type 'exit' to quit.")
    if runtime.log_descriptions:
        print(f"Logging: {', '.join(runtime.log_descriptions)}")
    print()

    try:
        with Spinner(label=" Connecting..."):
            greeting = await session.start()
        for message in greeting.messages:
            print(format_message(message))

        while True:
            try:
                user_input = input(USER_PROMPT)
            except (EOFError, KeyboardInterrupt):
                break

            trimmed = user_input.strip()
            if trimmed in ("exit", "quit"):
                break
            if not trimmed:
                continue

            with Spinner():
                result = await session.submit(trimmed)
            for message in result.messages:
                if message.role == USER:
                    continue
                print(format_message(message))
            if result.error is not None and not any(m.role == ASSISTANT for m in result.messages):
                print(f"[{result.error}]")
            print()
    finally:
        await session.close()
        await runtime.close()


def serve(runtime: AppRuntime) -> None:
    import uvicorn

    from assistant_chat_proxy.api import create_app

    app = runtime.app
    logger.info(f"Server is running on http://{app.host}:{app.port} (public URL {app.public_base_url})")
    uvicorn.run(create_app(runtime), host=app.host, port=app.port, log_config=None)


def main(argv: list[str] | None = None) -> None:
    args = sys.argv[1:] if argv is None else argv
    command = args[0] if args else "serve"
    if command not in ("serve", "chat"):
        print(_USAGE, file=sys.stderr)
        sys.exit(2)

    load_dotenv()
    app: AppConfig = parse_app_config(load_json_config())
    runtime = bootstrap_runtime(app)

    if command == "chat":
        asyncio.run(chat(runtime, resolve_runtime_env()))
    else:
        serve(runtime)


if __name__ == "__main__":
    main()
