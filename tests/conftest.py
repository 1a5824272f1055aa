"""Pytest configuration and fixtures."""

import json

import httpx
import pytest

from gemini_proxy.config import Settings
from gemini_proxy.provider import GeminiClient


def envelope(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays instead of waiting."""

    def __init__(self):
        self.calls = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)


class ScriptedProvider:
    """MockTransport handler that replays a list of responses in order.

    Each item is either an ``httpx.Response`` or an exception class from httpx
    that is raised with the outbound request attached.
    """

    def __init__(self, *replies):
        self.replies = list(replies)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, type) and issubclass(reply, Exception):
            raise reply("scripted failure", request=request)
        return reply

    def last_json(self) -> dict:
        return json.loads(self.requests[-1].content)


@pytest.fixture
def settings():
    return Settings(
        api_key="test-key",
        base_url="https://provider.test/v1beta",
        model="gemini-pro",
    )


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def make_client(settings, sleep):
    def _make(provider: ScriptedProvider) -> GeminiClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(provider))
        return GeminiClient(settings, http_client=http_client, sleep=sleep)

    return _make
