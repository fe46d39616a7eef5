"""Tests for the HTTP gateway: NDJSON streaming, request deadline, lifespan."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from gateway.server import create_app, stream_with_deadline


class FakeAgent:
    model = "fake-model"

    def __init__(self, events, delay=0.0, error=None):
        self.events = events
        self.delay = delay
        self.error = error
        self.received = None

    async def stream_conversation(self, messages):
        self.received = messages
        for event in self.events:
            yield event
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error


def _pool(sessions=0):
    pool = MagicMock()
    pool.close_all = AsyncMock()
    pool.__len__.return_value = sessions
    return pool


def _lines(response):
    return [json.loads(line) for line in response.text.splitlines() if line]


async def _drain(stream):
    return [event async for event in stream]


class TestChatEndpoint:
    def test_streams_events_as_ndjson(self):
        events = [
            {"type": "text", "text": "Hello"},
            {"type": "finish", "finishReason": "stop", "steps": 1},
        ]
        agent = FakeAgent(events)
        app = create_app(config={"max_duration": 5}, agent=agent, pool=_pool())
        with TestClient(app) as client:
            response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/x-ndjson")
        assert _lines(response) == events
        assert agent.received == [{"role": "user", "content": "hi"}]

    def test_deadline_closes_stream(self):
        agent = FakeAgent([{"type": "text", "text": "working"}, {"type": "text", "text": "never"}], delay=5)
        app = create_app(config={"max_duration": 0.2}, agent=agent, pool=_pool())
        with TestClient(app) as client:
            response = client.post("/api/chat", json={"messages": []})

        lines = _lines(response)
        assert lines[0] == {"type": "text", "text": "working"}
        assert lines[1]["type"] == "error"
        assert "maximum duration" in lines[1]["error"]
        assert lines[2] == {"type": "finish", "finishReason": "timeout"}
        assert len(lines) == 3

    def test_invalid_body(self):
        app = create_app(config={"max_duration": 5}, agent=FakeAgent([]), pool=_pool())
        with TestClient(app) as client:
            assert client.post("/api/chat", json={"messages": "nope"}).status_code == 422
            assert client.post("/api/chat", json={}).status_code == 422


class TestHealth:
    def test_reports_pooled_sessions(self):
        app = create_app(config={"max_duration": 5}, agent=FakeAgent([]), pool=_pool(sessions=2))
        with TestClient(app) as client:
            assert client.get("/health").json() == {"status": "ok", "sessions": 2}

    def test_shutdown_closes_pool(self):
        pool = _pool()
        app = create_app(config={"max_duration": 5}, agent=FakeAgent([]), pool=pool)
        with TestClient(app):
            pool.close_all.assert_not_awaited()
        pool.close_all.assert_awaited_once()


class TestStreamWithDeadline:
    @pytest.mark.asyncio
    async def test_passes_events_through(self):
        agent = FakeAgent([{"type": "text", "text": "a"}, {"type": "finish", "finishReason": "stop"}])
        events = await _drain(stream_with_deadline(agent.stream_conversation([]), 5))
        assert [e["type"] for e in events] == ["text", "finish"]

    @pytest.mark.asyncio
    async def test_stream_failure_becomes_error_event(self):
        agent = FakeAgent([{"type": "text", "text": "a"}], error=RuntimeError("boom"))
        events = await _drain(stream_with_deadline(agent.stream_conversation([]), 5))
        assert events[1] == {"type": "error", "error": "Internal error: boom"}
        assert events[2] == {"type": "finish", "finishReason": "error"}

    @pytest.mark.asyncio
    async def test_timeout(self):
        agent = FakeAgent([{"type": "text", "text": "a"}, {"type": "text", "text": "b"}], delay=5)
        events = await _drain(stream_with_deadline(agent.stream_conversation([]), 0.05))
        assert events[-1] == {"type": "finish", "finishReason": "timeout"}
        assert events[-2]["error"] == "Request exceeded the maximum duration of 0.05s"
