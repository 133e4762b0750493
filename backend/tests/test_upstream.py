from datetime import datetime, timezone

import httpx
import pytest

from conftest import COMPLETIONS_URL, completion
from worksheet_api.deadline import Deadline
from worksheet_api.upstream import (
    BUSY_MESSAGE,
    CompletionClient,
    extract_message_content,
    parse_retry_after,
)


PAYLOAD = {"model": "gpt-4o-mini", "messages": [{"role": "user", "content": "hi"}]}


def _client(make_settings, mock_client, clock, handler, **overrides):
    settings = make_settings(openai_api_key="sk-test", **overrides)
    return CompletionClient(
        settings=settings,
        http_client=mock_client(handler),
        sleep=clock.sleep,
        jitter=lambda: 0.0,
    )


def _sequence(*responses):
    """Handler replaying `responses` in order, then repeating the last one."""
    queue = list(responses)

    def handler(request):
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return httpx.Response(item.status_code, headers=item.headers, content=item.content)

    return handler


def test_requires_a_credential(make_settings):
    with pytest.raises(ValueError):
        CompletionClient(settings=make_settings())


@pytest.mark.asyncio
async def test_success_returns_after_one_attempt(make_settings, mock_client, clock, make_deadline):
    client = _client(make_settings, mock_client, clock, _sequence(completion({"student_text": "x"})))
    r = await client.call(PAYLOAD, make_deadline())
    assert r.status_code == 200
    assert len(client._client.seen) == 1
    request = client._client.seen[0]
    assert str(request.url) == COMPLETIONS_URL
    assert request.headers["authorization"] == "Bearer sk-test"
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_permanent_error_is_not_retried(make_settings, mock_client, clock, make_deadline):
    client = _client(make_settings, mock_client, clock, _sequence(httpx.Response(401, json={"error": "bad key"})))
    r = await client.call(PAYLOAD, make_deadline())
    assert r.status_code == 401
    assert len(client._client.seen) == 1
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_malformed_body_is_not_a_transport_concern(make_settings, mock_client, clock, make_deadline):
    client = _client(make_settings, mock_client, clock, _sequence(httpx.Response(200, text="not json")))
    r = await client.call(PAYLOAD, make_deadline())
    assert r.status_code == 200
    assert len(client._client.seen) == 1


@pytest.mark.asyncio
async def test_always_rate_limited_exhausts_attempts_within_budget(make_settings, mock_client, clock, make_deadline):
    client = _client(make_settings, mock_client, clock, _sequence(httpx.Response(429)))
    deadline = make_deadline(18_000)
    r = await client.call(PAYLOAD, deadline)

    assert r.status_code == 503
    assert r.json() == {"error": BUSY_MESSAGE}
    assert len(client._client.seen) == 3
    # exponential: 400, 800, 1600 ms with zero jitter
    assert clock.sleeps == [0.4, 0.8, 1.6]
    assert clock.now <= deadline.expires_at


@pytest.mark.asyncio
async def test_retry_after_hint_is_honoured(make_settings, mock_client, clock, make_deadline):
    busy = httpx.Response(503, headers={"retry-after": "1"})
    client = _client(make_settings, mock_client, clock, _sequence(busy))
    r = await client.call(PAYLOAD, make_deadline())
    assert r.status_code == 503
    assert len(client._client.seen) == 3
    assert clock.sleeps == [1.0, 1.0, 1.0]


@pytest.mark.asyncio
async def test_recovers_after_a_transient_status(make_settings, mock_client, clock, make_deadline):
    handler = _sequence(httpx.Response(502), httpx.Response(524), completion({"student_text": "ok"}))
    client = _client(make_settings, mock_client, clock, handler)
    r = await client.call(PAYLOAD, make_deadline())
    assert r.status_code == 200
    assert len(client._client.seen) == 3
    assert clock.sleeps == [0.4, 0.8]


@pytest.mark.asyncio
async def test_timeouts_count_as_transient_attempts(make_settings, mock_client, clock, make_deadline):
    client = _client(make_settings, mock_client, clock, _sequence(httpx.ReadTimeout("slow")))
    r = await client.call(PAYLOAD, make_deadline())
    assert r.status_code == 503
    assert len(client._client.seen) == 3


@pytest.mark.asyncio
async def test_expired_deadline_makes_no_attempt(make_settings, mock_client, clock):
    client = _client(make_settings, mock_client, clock, _sequence(completion({})))
    expired = Deadline(clock() - 1, clock=clock)
    r = await client.call(PAYLOAD, expired)
    assert r.status_code == 503
    assert client._client.seen == []
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_sleep_never_runs_past_the_deadline(make_settings, mock_client, clock, make_deadline):
    busy = httpx.Response(429, headers={"retry-after": "30"})
    client = _client(make_settings, mock_client, clock, _sequence(busy))
    deadline = make_deadline(1_000)
    r = await client.call(PAYLOAD, deadline)
    assert r.status_code == 503
    # 1000 ms left minus the 500 ms safety margin, then nothing is left to wait with
    assert clock.sleeps == [0.5]
    assert len(client._client.seen) == 2
    assert clock.now <= deadline.expires_at


@pytest.mark.asyncio
async def test_per_call_timeout_tracks_remaining_budget(make_settings, mock_client, clock, make_deadline):
    client = _client(make_settings, mock_client, clock, _sequence(completion({})))
    for budget in (18_000, 2_000, 500):
        await client.call(PAYLOAD, make_deadline(budget))
    timeouts = [request.extensions["timeout"]["read"] for request in client._client.seen]
    assert timeouts == [9.0, 2.0, 1.5]


def test_parse_retry_after():
    assert parse_retry_after("2") == 2000
    assert parse_retry_after("0.5") == 500
    assert parse_retry_after("0") is None
    assert parse_retry_after(None) is None
    assert parse_retry_after("soon") is None
    now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    assert parse_retry_after("Mon, 01 Jan 2024 12:00:03 GMT", now=now) == 3000


def test_extract_message_content():
    assert extract_message_content(completion('{"a": 1}')) == '{"a": 1}'
    assert extract_message_content(httpx.Response(200, text="<html>")) is None
    assert extract_message_content(httpx.Response(200, json={"choices": []})) is None
    assert extract_message_content(httpx.Response(200, json={"choices": [{"message": {"content": None}}]})) is None
