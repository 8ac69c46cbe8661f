"""Shared fixtures: isolated data dir, fake LLM adapter, fake tool server."""

import os
import tempfile

# Logs and charts go to a throwaway directory; must be set before
# agent.logging resolves LOG_DIR at import time.
os.environ.setdefault("DATACHAT_AGENT_DIR", tempfile.mkdtemp(prefix="datachat-test-"))

import pytest

from agent.llm.base import LLMAdapter, LLMResponse, ToolCall, UsageMetadata
from agent.tool_server import ToolDescriptor, ToolServer, ToolServerError


class ScriptedAdapter(LLMAdapter):
    """Returns queued responses in order and records every call."""

    def __init__(self, responses=None, default=None):
        self.responses = list(responses or [])
        self.default = default
        self.calls = []

    def complete(self, model, system_prompt, messages, tools=None):
        self.calls.append({
            "model": model,
            "system_prompt": system_prompt,
            "messages": list(messages),
            "tools": tools,
        })
        if self.responses:
            item = self.responses.pop(0)
        else:
            item = self.default
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(tools)
        return item


class FakeToolServer(ToolServer):
    """In-memory tool server; handlers are plain callables or exceptions."""

    def __init__(self, tools=None, handlers=None, discover_error=None):
        self.tools = tools if tools is not None else [
            ToolDescriptor("list-datasources", "List data sources"),
            ToolDescriptor("query-datasource", "Run a query", {
                "type": "object",
                "properties": {"query": {"type": "object"}},
            }),
        ]
        self.handlers = handlers or {}
        self.discover_error = discover_error
        self.invocations = []
        self.connected = False
        self.closed = False

    def connect(self):
        self.connected = True

    def close(self):
        self.closed = True

    def discover_tools(self):
        if self.discover_error:
            raise self.discover_error
        return list(self.tools)

    def call_tool(self, name, arguments):
        self.invocations.append((name, arguments))
        handler = self.handlers.get(name)
        if handler is None:
            raise ToolServerError(f"Unknown tool: {name}")
        if isinstance(handler, Exception):
            raise handler
        return handler(arguments) if callable(handler) else handler


def text_response(text, input_tokens=10, output_tokens=5):
    return LLMResponse(text=text, usage=UsageMetadata(input_tokens, output_tokens))


def tool_response(*calls, text="", input_tokens=10, output_tokens=5):
    """LLMResponse requesting ``calls`` given as (name, args) or (name, args, id)."""
    tool_calls = [ToolCall(name=c[0], args=c[1], id=c[2] if len(c) > 2 else None) for c in calls]
    return LLMResponse(text=text, tool_calls=tool_calls, usage=UsageMetadata(input_tokens, output_tokens))


@pytest.fixture
def fake_server():
    return FakeToolServer()
