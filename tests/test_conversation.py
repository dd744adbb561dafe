import asyncio
import unittest

import httpx

from assistant_chat_proxy.assistant_client import AssistantClient
from assistant_chat_proxy.conversation import (
    CONNECT_FAILURE_MESSAGE,
    GREETING,
    TURN_FAILURE_MESSAGE,
    UNSUPPORTED_CONTENT,
    ConversationSession,
    extract_content,
)
from assistant_chat_proxy.errors import Busy, EmptyMessage, InitError, RunFailed, RunTimeout, SessionClosed, UpstreamError
from assistant_chat_proxy.run_poller import RunPoller
from tests.fakes import CONFIG, FakeAssistantClient, RecordingSleep, assistant_entry


def _session(client: FakeAssistantClient, **poller_kwargs) -> ConversationSession:
    poller = RunPoller(client, interval_seconds=1.5, sleep=RecordingSleep(), **poller_kwargs)
    return ConversationSession(client, poller, CONFIG)


def _roles_and_content(session: ConversationSession) -> list[tuple[str, str]]:
    return [(m.role, m.content) for m in session.transcript]


class ConversationSessionTests(unittest.TestCase):
    def test_single_turn_appends_user_then_assistant_reply(self) -> None:
        client = FakeAssistantClient(initial_status="completed", replies={"r1": ["Hi there"]})
        session = _session(client)

        result = asyncio.run(session.submit("Hello"))

        self.assertTrue(result.ok)
        self.assertEqual([("user", "Hello"), ("assistant", "Hi there")], _roles_and_content(session))
        self.assertEqual("t1", session.thread_id)
        self.assertEqual("r1", session.transcript[1].originating_run_id)
        self.assertEqual(0, client.count("get_run_status"))
        self.assertIsNone(session.pending_run)

    def test_replies_keep_call_order_across_turns(self) -> None:
        client = FakeAssistantClient(
            run_ids=["r1", "r2", "r3"],
            statuses=["completed", "in_progress", "completed", "completed"],
            replies={"r1": ["a1"], "r2": ["a2-first", "a2-second"], "r3": ["a3"]},
        )
        session = _session(client)

        async def scenario() -> None:
            for text in ("u1", "u2", "u3"):
                result = await session.submit(text)
                self.assertTrue(result.ok)

        asyncio.run(scenario())

        self.assertEqual(
            [
                ("user", "u1"),
                ("assistant", "a1"),
                ("user", "u2"),
                ("assistant", "a2-first"),
                ("assistant", "a2-second"),
                ("user", "u3"),
                ("assistant", "a3"),
            ],
            _roles_and_content(session),
        )
        self.assertEqual(1, client.count("create_thread"))

    def test_only_replies_from_the_completed_run_are_appended(self) -> None:
        client = FakeAssistantClient(initial_status="completed", replies={"r1": ["fresh"]})
        client.thread_messages.append(assistant_entry("old", "r0", "stale reply"))
        session = _session(client)

        result = asyncio.run(session.submit("Hello"))

        self.assertEqual(["Hello", "fresh"], [m.content for m in result.messages])

    def test_submit_while_run_pending_returns_busy_without_touching_transcript(self) -> None:
        client = FakeAssistantClient(statuses=["completed"], replies={"r1": ["done"]})
        client.status_gate = asyncio.Event()
        session = _session(client)

        async def scenario():
            first = asyncio.create_task(session.submit("first"))
            while client.count("get_run_status") == 0:
                await asyncio.sleep(0)
            before = session.transcript
            second = await session.submit("second")
            after = session.transcript
            client.status_gate.set()
            return await first, second, before, after

        first, second, before, after = asyncio.run(scenario())

        self.assertIsInstance(second.error, Busy)
        self.assertEqual((), second.messages)
        self.assertEqual(before, after)
        self.assertTrue(first.ok)
        self.assertEqual(1, client.count("create_run"))
        self.assertEqual([("user", "first"), ("assistant", "done")], _roles_and_content(session))

    def test_expired_run_appends_one_failure_message_and_keeps_user_turn(self) -> None:
        client = FakeAssistantClient(statuses=["in_progress", "expired"])
        session = _session(client)

        result = asyncio.run(session.submit("Hello"))

        self.assertIsInstance(result.error, RunFailed)
        self.assertEqual("expired", result.error.status)
        self.assertEqual([("user", "Hello"), ("assistant", TURN_FAILURE_MESSAGE)], _roles_and_content(session))
        self.assertEqual("r1", session.transcript[1].originating_run_id)
        self.assertEqual(0, client.count("list_messages"))

    def test_failed_and_cancelled_runs_surface_the_same_way(self) -> None:
        for status in ("failed", "cancelled"):
            with self.subTest(status=status):
                session = _session(FakeAssistantClient(statuses=[status]))

                result = asyncio.run(session.submit("Hello"))

                self.assertIsInstance(result.error, RunFailed)
                failures = [m for m in session.transcript if m.content == TURN_FAILURE_MESSAGE]
                self.assertEqual(1, len(failures))
                self.assertEqual("user", session.transcript[0].role)

    def test_client_error_mid_turn_appends_failure_message(self) -> None:
        client = FakeAssistantClient()
        client.fail_on["add_message"] = UpstreamError(400, "thread not found")
        session = _session(client)

        result = asyncio.run(session.submit("Hello"))

        self.assertIsInstance(result.error, UpstreamError)
        self.assertEqual([("user", "Hello"), ("assistant", TURN_FAILURE_MESSAGE)], _roles_and_content(session))
        self.assertIsNone(session.transcript[1].originating_run_id)
        self.assertFalse(session.is_busy)

    def test_poll_timeout_is_reported_as_turn_failure(self) -> None:
        client = FakeAssistantClient(statuses=["in_progress"] * 5)
        session = _session(client, max_attempts=3)

        result = asyncio.run(session.submit("Hello"))

        self.assertIsInstance(result.error, RunTimeout)
        self.assertEqual(TURN_FAILURE_MESSAGE, session.transcript[-1].content)

    def test_malformed_message_list_ends_turn_with_failure_message(self) -> None:
        routes = {
            ("POST", "/v1/threads"): {"id": "t1"},
            ("POST", "/v1/threads/t1/messages"): {"id": "msg_1"},
            ("POST", "/v1/threads/t1/runs"): {"id": "r1", "status": "completed"},
            ("GET", "/v1/threads/t1/messages"): {"data": [None]},
        }

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=routes[(request.method, request.url.path)])

        async def scenario():
            client = AssistantClient(api_base="https://api.test/v1", transport=httpx.MockTransport(handler))
            poller = RunPoller(client, sleep=RecordingSleep())
            session = ConversationSession(client, poller, CONFIG)
            try:
                return session, await session.submit("Hello")
            finally:
                await client.aclose()

        session, result = asyncio.run(scenario())

        self.assertIsInstance(result.error, UpstreamError)
        self.assertIn("Malformed response", result.error.message)
        self.assertEqual([("user", "Hello"), ("assistant", TURN_FAILURE_MESSAGE)], _roles_and_content(session))
        self.assertEqual("r1", session.transcript[-1].originating_run_id)

    def test_non_text_content_uses_placeholder(self) -> None:
        client = FakeAssistantClient(initial_status="completed")
        client.replies = {}
        session = _session(client)

        async def scenario():
            client.thread_messages.append(
                {
                    "id": "img",
                    "role": "assistant",
                    "run_id": "r1",
                    "content": [{"type": "image_file", "image_file": {"file_id": "file_1"}}],
                }
            )
            return await session.submit("Draw something")

        result = asyncio.run(scenario())

        self.assertTrue(result.ok)
        self.assertEqual(UNSUPPORTED_CONTENT, session.transcript[-1].content)

    def test_thread_creation_failure_seeds_connect_message_and_retries_next_time(self) -> None:
        client = FakeAssistantClient(initial_status="completed", replies={"r1": ["back online"]})
        client.fail_on["create_thread"] = UpstreamError(None, "connection refused")
        session = _session(client)

        async def scenario():
            first = await session.submit("Hello")
            del client.fail_on["create_thread"]
            second = await session.submit("Hello again")
            return first, second

        first, second = asyncio.run(scenario())

        self.assertIsInstance(first.error, InitError)
        self.assertIsInstance(first.error.__cause__, UpstreamError)
        self.assertTrue(second.ok)
        self.assertEqual(
            [("assistant", CONNECT_FAILURE_MESSAGE), ("user", "Hello again"), ("assistant", "back online")],
            _roles_and_content(session),
        )
        self.assertEqual(2, client.count("create_thread"))

    def test_empty_text_is_rejected(self) -> None:
        client = FakeAssistantClient()
        session = _session(client)

        result = asyncio.run(session.submit("   "))

        self.assertIsInstance(result.error, EmptyMessage)
        self.assertEqual((), session.transcript)
        self.assertEqual([], client.calls)

    def test_start_creates_thread_and_seeds_greeting(self) -> None:
        client = FakeAssistantClient()
        session = _session(client)

        result = asyncio.run(session.start())

        self.assertTrue(result.ok)
        self.assertEqual([("assistant", GREETING)], _roles_and_content(session))
        self.assertEqual("t1", session.thread_id)

    def test_start_failure_seeds_connect_message(self) -> None:
        client = FakeAssistantClient()
        client.fail_on["create_thread"] = UpstreamError(401, "Incorrect API key provided")
        session = _session(client)

        result = asyncio.run(session.start())

        self.assertIsInstance(result.error, InitError)
        self.assertEqual([("assistant", CONNECT_FAILURE_MESSAGE)], _roles_and_content(session))
        self.assertIsNone(session.thread_id)

    def test_close_stops_polling_and_requests_cancel(self) -> None:
        client = FakeAssistantClient(statuses=["in_progress"] * 5)
        client.status_gate = asyncio.Event()
        session = _session(client)

        async def scenario():
            task = asyncio.create_task(session.submit("Hello"))
            while client.count("get_run_status") == 0:
                await asyncio.sleep(0)
            await session.close()
            client.status_gate.set()
            return await task

        result = asyncio.run(scenario())

        self.assertIsInstance(result.error, SessionClosed)
        self.assertEqual(1, client.count("get_run_status"))
        self.assertEqual(1, client.count("cancel_run"))
        self.assertEqual([("user", "Hello")], _roles_and_content(session))

    def test_submit_after_close_is_rejected(self) -> None:
        client = FakeAssistantClient()
        session = _session(client)

        async def scenario():
            await session.close()
            return await session.submit("Hello")

        result = asyncio.run(scenario())

        self.assertIsInstance(result.error, SessionClosed)
        self.assertEqual([], client.calls)


class ExtractContentTests(unittest.TestCase):
    def test_text_item(self) -> None:
        self.assertEqual("hi", extract_content(assistant_entry("m", "r", "hi")))

    def test_missing_content_uses_placeholder(self) -> None:
        self.assertEqual(UNSUPPORTED_CONTENT, extract_content({"content": []}))

    def test_first_item_decides(self) -> None:
        entry = {
            "content": [
                {"type": "image_file", "image_file": {"file_id": "f"}},
                {"type": "text", "text": {"value": "caption"}},
            ]
        }
        self.assertEqual(UNSUPPORTED_CONTENT, extract_content(entry))


if __name__ == "__main__":
    unittest.main()
