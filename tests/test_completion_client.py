import asyncio
import os
import unittest

os.environ.setdefault("ANALYTICS_ENABLED", "0")

from app.ai.client import CompletionClient
from app.ai.prompts import Prompt
from app.ai.types import ModelProfile, TransientCompletionError
from app.core.errors import CompletionUnavailable

PROFILE = ModelProfile(name="default", model="test-model", temperature=0.1, max_tokens=256, timeout_s=0.05)
PROMPT = Prompt(operation="analyze", system="system text", user="user text", output_keys=("a",))


class ScriptedTransport:
    """Plays back one step per call: a string to return, an exception to raise, or 'hang'."""

    def __init__(self, *steps, enabled: bool = True):
        self.steps = list(steps)
        self.calls = []
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def create(self, messages, profile):
        self.calls.append((list(messages), profile))
        step = self.steps.pop(0)
        if step == "hang":
            await asyncio.sleep(10)
        if isinstance(step, Exception):
            raise step
        return step


class CompletionClientTests(unittest.IsolatedAsyncioTestCase):
    async def test_returns_text_on_first_success(self):
        transport = ScriptedTransport('{"a": 1}')
        client = CompletionClient(transport, log_payloads=False)

        text = await client.complete(PROMPT, PROFILE)

        self.assertEqual(text, '{"a": 1}')
        self.assertEqual(len(transport.calls), 1)
        messages, profile = transport.calls[0]
        self.assertEqual([m.role for m in messages], ["system", "user"])
        self.assertEqual(messages[1].content, "user text")
        self.assertIs(profile, PROFILE)

    async def test_timeout_is_retried_once(self):
        transport = ScriptedTransport("hang", "ok")
        client = CompletionClient(transport, log_payloads=False)

        self.assertEqual(await client.complete(PROMPT, PROFILE), "ok")
        self.assertEqual(len(transport.calls), 2)
        self.assertIs(transport.calls[0][1], transport.calls[1][1])

    async def test_transient_errors_exhaust_after_two_attempts(self):
        transport = ScriptedTransport(
            TransientCompletionError("connection reset"),
            TransientCompletionError("connection reset"),
            "never reached",
        )
        client = CompletionClient(transport, log_payloads=False)

        with self.assertRaises(CompletionUnavailable):
            await client.complete(PROMPT, PROFILE)
        self.assertEqual(len(transport.calls), 2)

    async def test_two_timeouts_raise_unavailable(self):
        transport = ScriptedTransport("hang", "hang")
        client = CompletionClient(transport, log_payloads=False)

        with self.assertRaises(CompletionUnavailable):
            await client.complete(PROMPT, PROFILE)
        self.assertEqual(len(transport.calls), 2)

    async def test_non_transient_failure_is_not_retried(self):
        transport = ScriptedTransport(CompletionUnavailable("AI is not configured"), "ok")
        client = CompletionClient(transport, log_payloads=False)

        with self.assertRaises(CompletionUnavailable):
            await client.complete(PROMPT, PROFILE)
        self.assertEqual(len(transport.calls), 1)

    async def test_invalid_body_is_returned_not_retried(self):
        transport = ScriptedTransport("not json at all", "ok")
        client = CompletionClient(transport, log_payloads=False)

        self.assertEqual(await client.complete(PROMPT, PROFILE), "not json at all")
        self.assertEqual(len(transport.calls), 1)

    async def test_logs_metadata_without_bodies(self):
        transport = ScriptedTransport("secret answer")
        client = CompletionClient(transport, log_payloads=False)

        with self.assertLogs("app.ai", level="INFO") as logs:
            await client.complete(PROMPT, PROFILE)

        joined = "\n".join(logs.output)
        self.assertIn("ai_completion_attempt", joined)
        self.assertIn('"operation": "analyze"', joined)
        self.assertNotIn("secret answer", joined)
        self.assertNotIn("user text", joined)

    async def test_payload_logging_is_opt_in(self):
        transport = ScriptedTransport("visible answer")
        client = CompletionClient(transport, log_payloads=True)

        with self.assertLogs("app.ai", level="INFO") as logs:
            await client.complete(PROMPT, PROFILE)

        self.assertIn("visible answer", "\n".join(logs.output))


if __name__ == "__main__":
    unittest.main()
