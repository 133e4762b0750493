"""Shared fixtures: explicit settings, a fake clock and mock HTTP transports."""

import json

import httpx
import pytest

from worksheet_api.deadline import Deadline
from worksheet_api.settings import Settings


COMPLETIONS_URL = "https://api.openai.com/v1/chat/completions"


class FakeClock:
    """Monotonic clock that only moves when the code under test sleeps."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def completion(content, status_code: int = 200, headers=None) -> httpx.Response:
    """A chat-completions style reply whose message content is `content`."""
    if not isinstance(content, str):
        content = json.dumps(content)
    body = {"choices": [{"message": {"role": "assistant", "content": content}}]}
    return httpx.Response(status_code, json=body, headers=headers)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_settings():
    def _make(**overrides):
        values = {"openai_api_key": None, "_env_file": None}
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def make_deadline(clock):
    def _make(budget_ms: int = 18_000):
        return Deadline.after_ms(budget_ms, clock=clock)

    return _make


@pytest.fixture
def mock_client():
    """Factory for an AsyncClient routed through a handler; records every request."""
    clients = []

    def _make(handler):
        seen = []

        def _record(request: httpx.Request):
            seen.append(request)
            return handler(request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(_record))
        client.seen = seen
        clients.append(client)
        return client

    return _make
