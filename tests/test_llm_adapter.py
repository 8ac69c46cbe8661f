"""Tests for the provider-agnostic LLM types and adapter factory."""

from unittest.mock import patch

import pytest

from agent.llm import create_adapter
from agent.llm.base import Message, ToolCall, UsageMetadata


class TestUsageMetadata:
    def test_addition(self):
        total = UsageMetadata(10, 5, 1) + UsageMetadata(3, 2, 0)
        assert (total.input_tokens, total.output_tokens, total.thinking_tokens) == (13, 7, 1)
        assert total.total_tokens == 21

    def test_to_dict(self):
        assert UsageMetadata(1, 2).to_dict() == {
            "input_tokens": 1,
            "output_tokens": 2,
            "thinking_tokens": 0,
            "total_tokens": 3,
        }


class TestMessage:
    def test_ids_are_unique(self):
        assert Message(role="user").id != Message(role="user").id

    def test_rejects_unknown_role(self):
        with pytest.raises(ValueError, match="Unknown message role"):
            Message(role="robot", content="beep")

    def test_is_immutable(self):
        msg = Message(role="user", content="hi")
        with pytest.raises(AttributeError):
            msg.content = "changed"

    def test_from_dict_keeps_id(self):
        msg = Message.from_dict({"role": "assistant", "content": "hello", "id": "m-1"})
        assert msg.id == "m-1"
        assert msg.to_dict() == {"id": "m-1", "role": "assistant", "content": "hello"}

    def test_from_dict_null_content(self):
        assert Message.from_dict({"role": "user", "content": None}).content == ""

    def test_tool_calls_tuple(self):
        msg = Message(role="assistant", tool_calls=(ToolCall("t", {}, "c1"),))
        assert msg.tool_calls[0].id == "c1"


class TestCreateAdapter:
    def test_missing_key(self):
        with pytest.raises(ValueError, match="No API key"):
            create_adapter("openai", None)

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unsupported LLM provider"):
            create_adapter("gemini", "key")

    def test_openai(self):
        with patch("agent.llm.openai_adapter.openai.OpenAI"):
            adapter = create_adapter("OpenAI", "key", base_url="http://x/v1")
        assert type(adapter).__name__ == "OpenAIAdapter"

    def test_anthropic(self):
        with patch("agent.llm.anthropic_adapter.anthropic.Anthropic"):
            adapter = create_adapter("anthropic", "key")
        assert type(adapter).__name__ == "AnthropicAdapter"
