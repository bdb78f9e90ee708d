import asyncio
import unittest
from types import SimpleNamespace
from unittest import mock

import httpx
from openai import APIStatusError

from app.core.settings import settings
from app.services.ai.client import AIDisabledError, AIServiceError, OpenAIClient, build_ai_client


def _status_error(status: int) -> APIStatusError:
    request = httpx.Request("POST", "https://api.openai.com/v1/audio/transcriptions")
    return APIStatusError(f"status {status}", response=httpx.Response(status, request=request), body=None)


def _chunk(content):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])


class FakeEndpoint:
    def __init__(self, *outcomes) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


async def _stream(*chunks):
    for chunk in chunks:
        yield chunk


class AIClientTestCase(unittest.TestCase):
    def setUp(self):
        self.client = OpenAIClient(
            api_key="sk-test",
            base_url=None,
            transcribe_model="gpt-4o-transcribe",
            chat_model="gpt-4o-mini",
            max_retries=3,
            retry_base_s=0.0,
        )
        self._real = self.client._client
        self.transcriptions = FakeEndpoint()
        self.completions = FakeEndpoint()
        self.client._client = SimpleNamespace(
            audio=SimpleNamespace(transcriptions=self.transcriptions),
            chat=SimpleNamespace(completions=self.completions),
        )
        sleep = mock.patch("app.services.ai.client.asyncio.sleep", new=mock.AsyncMock())
        sleep.start()
        self.addCleanup(sleep.stop)

    def tearDown(self):
        asyncio.run(self._real.close())

    async def _collect(self, prompt):
        return [text async for text in self.client.stream_chat(prompt)]


class TestTranscribe(AIClientTestCase):
    def test_returns_text(self):
        self.transcriptions.outcomes = [SimpleNamespace(text="hello")]
        text = asyncio.run(self.client.transcribe(filename="a.webm", content=b"abc", content_type="audio/webm"))
        self.assertEqual(text, "hello")
        call = self.transcriptions.calls[0]
        self.assertEqual(call["model"], "gpt-4o-transcribe")
        self.assertEqual(call["file"], ("a.webm", b"abc", "audio/webm"))

    def test_retries_transient_status(self):
        self.transcriptions.outcomes = [_status_error(503), _status_error(429), SimpleNamespace(text="ok")]
        text = asyncio.run(self.client.transcribe(filename="a.webm", content=b"abc"))
        self.assertEqual(text, "ok")
        self.assertEqual(len(self.transcriptions.calls), 3)

    def test_gives_up_after_max_retries(self):
        self.transcriptions.outcomes = [_status_error(503)] * 3
        with self.assertRaises(AIServiceError) as ctx:
            asyncio.run(self.client.transcribe(filename="a.webm", content=b"abc"))
        self.assertEqual(ctx.exception.status_code, 503)

    def test_client_errors_are_not_retried(self):
        self.transcriptions.outcomes = [_status_error(400)]
        with self.assertRaises(AIServiceError):
            asyncio.run(self.client.transcribe(filename="a.webm", content=b"abc"))
        self.assertEqual(len(self.transcriptions.calls), 1)


class TestStreamChat(AIClientTestCase):
    def test_yields_non_empty_deltas(self):
        self.completions.outcomes = [_stream(_chunk("Hi"), _chunk(None), SimpleNamespace(choices=[]), _chunk(" you"))]
        self.assertEqual(asyncio.run(self._collect("hello")), ["Hi", " you"])
        call = self.completions.calls[0]
        self.assertTrue(call["stream"])
        self.assertEqual(call["messages"], [{"role": "user", "content": "hello"}])

    def test_open_failure_raises(self):
        self.completions.outcomes = [_status_error(401)]
        with self.assertRaises(AIServiceError):
            asyncio.run(self._collect("hello"))


class TestBuild(unittest.TestCase):
    def test_requires_api_key(self):
        with mock.patch.object(settings, "openai_api_key", None):
            with self.assertRaises(AIDisabledError):
                build_ai_client()


if __name__ == "__main__":
    unittest.main()
