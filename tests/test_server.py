"""Tests for server.py - JSON and SSE endpoints with a scripted agent."""

import asyncio
import json
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from agent.core import DataChatAgent
from server import app, get_agent

from conftest import FakeToolServer, ScriptedAdapter, text_response, tool_response

SALES_PAYLOAD = [{"type": "text", "text": json.dumps({"data": [
    {"Year": 2022, "Sales": 1000},
    {"Year": 2023, "Sales": 2500},
]})}]


def _parse_sse(body: str) -> list[tuple[str, dict]]:
    frames = []
    for block in body.strip().split("\n\n"):
        lines = block.split("\n")
        event = lines[0][len("event: "):]
        data = json.loads(lines[1][len("data: "):])
        frames.append((event, data))
    return frames


@pytest.fixture
def client_for():
    def make(adapter, server=None):
        server = server or FakeToolServer(handlers={"query-datasource": SALES_PAYLOAD})
        agent = DataChatAgent(adapter, model="test-model", tool_server_factory=lambda: server)
        app.dependency_overrides[get_agent] = lambda: agent
        return TestClient(app)

    yield make
    app.dependency_overrides.clear()


def _sales_adapter():
    return ScriptedAdapter([
        tool_response(("query-datasource", {"datasource": "Superstore"}, "call_1")),
        text_response("Sales rose from $1,000 to $2,500."),
    ])


class TestHealth:
    def test_ok(self, client_for):
        client = client_for(ScriptedAdapter())
        assert client.get("/health").json() == {"status": "ok"}


class TestChat:
    def test_result_with_charts(self, client_for):
        client = client_for(_sales_adapter())
        resp = client.post("/api/mcp-chat", json={"query": "sales by year", "messages": []})
        assert resp.status_code == 200
        body = resp.json()
        assert body["response"] == "Sales rose from $1,000 to $2,500."
        assert body["iterations"] == 2
        assert body["toolResults"][0]["tool"] == "query-datasource"
        assert body["charts"][0]["type"] == "line"
        assert body["charts"][0]["isCurrency"] is True
        assert body["vegaCharts"] == []

    def test_failure_is_500(self, client_for):
        client = client_for(ScriptedAdapter([RuntimeError("model down")]))
        resp = client.post("/api/mcp-chat", json={"query": "q"})
        assert resp.status_code == 500
        assert resp.json() == {"error": "Failed to process chat request", "details": "model down"}

    def test_empty_query_rejected(self, client_for):
        client = client_for(ScriptedAdapter())
        assert client.post("/api/mcp-chat", json={"query": ""}).status_code == 422

    def test_prior_messages_forwarded(self, client_for):
        adapter = ScriptedAdapter([text_response("ok")])
        client = client_for(adapter)
        client.post("/api/mcp-chat", json={
            "query": "and 2024?",
            "messages": [
                {"role": "user", "content": "sales 2023?", "id": "m1"},
                {"role": "assistant", "content": "$2,500", "id": "m2"},
            ],
        })
        assert [m.content for m in adapter.calls[0]["messages"]] == ["sales 2023?", "$2,500", "and 2024?"]


class TestChatStream:
    def test_event_sequence(self, client_for):
        client = client_for(_sales_adapter())
        resp = client.post("/api/mcp-chat-stream", json={"query": "sales by year"})
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/event-stream")
        assert resp.headers["cache-control"] == "no-cache"

        frames = _parse_sse(resp.text)
        assert frames[0] == ("progress", {"message": "Connection established", "step": "init"})
        assert [name for name, _ in frames[-2:]] == ["result", "done"]

        result = frames[-2][1]
        assert result["response"] == "Sales rose from $1,000 to $2,500."
        assert result["charts"][0]["xKey"] == "Year"

        steps = [data.get("step") for name, data in frames if name == "progress"]
        assert "tool-completed" in steps
        assert steps.count("iteration-start") == 2

    def test_error_event(self, client_for):
        server = FakeToolServer(discover_error=RuntimeError("cannot reach tool server"))
        client = client_for(ScriptedAdapter(), server)
        frames = _parse_sse(client.post("/api/mcp-chat-stream", json={"query": "q"}).text)
        assert frames[-1] == ("error", {
            "error": "Failed to process chat request",
            "details": "cannot reach tool server",
        })
        assert not any(name in ("result", "done") for name, _ in frames)

    def test_chart_inference_runs_off_the_event_loop(self, client_for):
        seen = []

        def record(result):
            try:
                asyncio.get_running_loop()
                seen.append("event-loop")
            except RuntimeError:
                seen.append("worker")
            return {"charts": [], "vegaCharts": []}

        client = client_for(_sales_adapter())
        with patch("server.chart_payload", side_effect=record):
            frames = _parse_sse(client.post("/api/mcp-chat-stream", json={"query": "sales by year"}).text)
        assert seen == ["worker"]
        assert frames[-2][1]["charts"] == []
