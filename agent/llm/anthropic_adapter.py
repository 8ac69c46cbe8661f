"""Anthropic adapter - wraps the ``anthropic`` SDK for Claude models.

This is the **only** module that imports the ``anthropic`` package.

Key Anthropic API differences from OpenAI:
- System prompt is a separate ``system`` parameter, not a message.
- Strict user/assistant alternation required - consecutive same-role messages
  must be merged.
- Tool results are sent inside a ``user`` message with ``tool_result`` blocks.
"""

from __future__ import annotations

import json
from typing import Any

import anthropic

from .base import (
    FunctionSchema,
    LLMAdapter,
    LLMResponse,
    Message,
    ToolCall,
    UsageMetadata,
)

_DEFAULT_MAX_TOKENS = 8192


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _build_tools(schemas: list[FunctionSchema] | None) -> list[dict] | None:
    """Convert FunctionSchema list to Anthropic tool format."""
    if not schemas:
        return None
    return [
        {
            "name": s.name,
            "description": s.description,
            "input_schema": s.parameters,
        }
        for s in schemas
    ]


def _parse_response(raw) -> LLMResponse:
    """Parse an Anthropic Messages response into a provider-agnostic LLMResponse."""
    text_parts: list[str] = []
    tool_calls: list[ToolCall] = []
    thoughts: list[str] = []

    for block in raw.content:
        if block.type == "text":
            text_parts.append(block.text)
        elif block.type == "tool_use":
            tool_calls.append(ToolCall(
                name=block.name,
                args=block.input if isinstance(block.input, dict) else {},
                id=block.id,
            ))
        elif block.type == "thinking":
            thinking_text = getattr(block, "thinking", None)
            if thinking_text:
                thoughts.append(thinking_text)

    usage = UsageMetadata()
    if raw.usage:
        usage = UsageMetadata(
            input_tokens=getattr(raw.usage, "input_tokens", 0) or 0,
            output_tokens=getattr(raw.usage, "output_tokens", 0) or 0,
        )

    return LLMResponse(
        text="\n".join(text_parts) if text_parts else "",
        tool_calls=tool_calls,
        usage=usage,
        thoughts=thoughts,
        raw=raw,
    )


def _split_system(system_prompt: str, messages: list[Message]) -> tuple[str, list[Message]]:
    """Fold system-role history entries into the system parameter."""
    parts = [system_prompt] if system_prompt else []
    rest: list[Message] = []
    for msg in messages:
        if msg.role == "system":
            if msg.content:
                parts.append(msg.content)
        else:
            rest.append(msg)
    return "\n\n".join(parts), rest


def _build_messages(messages: list[Message], *, inline_tools: bool = False) -> list[dict]:
    """Convert the neutral history into Anthropic message dicts.

    With ``inline_tools`` the tool_use and tool_result blocks are rendered as
    plain text. The API rejects those blocks when the request carries no
    tool definitions, which is the case for the forced final answer.
    """
    result: list[dict] = []
    for msg in messages:
        if inline_tools and msg.role == "tool":
            result.append({
                "role": "user",
                "content": [{"type": "text", "text": f"Result of {msg.name or 'tool'}: {msg.content}"}],
            })
        elif inline_tools and msg.role == "assistant" and msg.tool_calls:
            lines = [msg.content] if msg.content else []
            for tc in msg.tool_calls:
                lines.append(f"Called {tc.name} with {json.dumps(tc.args, default=str)}")
            result.append({"role": "assistant", "content": [{"type": "text", "text": "\n".join(lines)}]})
        elif msg.role == "tool":
            result.append({
                "role": "user",
                "content": [{
                    "type": "tool_result",
                    "tool_use_id": msg.tool_call_id,
                    "content": msg.content,
                }],
            })
        elif msg.role == "assistant" and msg.tool_calls:
            blocks: list[dict] = []
            if msg.content:
                blocks.append({"type": "text", "text": msg.content})
            for tc in msg.tool_calls:
                blocks.append({
                    "type": "tool_use",
                    "id": tc.id,
                    "name": tc.name,
                    "input": tc.args,
                })
            result.append({"role": "assistant", "content": blocks})
        else:
            result.append({"role": msg.role, "content": msg.content})
    return _ensure_alternation(result)


def _ensure_alternation(messages: list[dict]) -> list[dict]:
    """Merge consecutive same-role messages to satisfy Anthropic's alternation rule.

    Anthropic requires strict user/assistant alternation. If two consecutive
    messages have the same role (e.g. several tool results in a row), merge
    their content.
    """
    if not messages:
        return messages

    merged: list[dict] = []
    for msg in messages:
        if merged and merged[-1]["role"] == msg["role"]:
            prev = merged[-1]
            prev_content = prev.get("content", "")
            new_content = msg.get("content", "")

            # Normalize to list form for merging
            if isinstance(prev_content, str):
                prev_list = [{"type": "text", "text": prev_content}] if prev_content else []
            else:
                prev_list = list(prev_content)

            if isinstance(new_content, str):
                new_list = [{"type": "text", "text": new_content}] if new_content else []
            else:
                new_list = list(new_content)

            prev["content"] = prev_list + new_list
        else:
            merged.append(dict(msg))

    return merged


# ---------------------------------------------------------------------------
# AnthropicAdapter
# ---------------------------------------------------------------------------

class AnthropicAdapter(LLMAdapter):
    """Adapter that wraps the ``anthropic`` SDK for Claude models."""

    def __init__(
        self,
        api_key: str,
        *,
        timeout_ms: int = 300_000,
        max_tokens: int = _DEFAULT_MAX_TOKENS,
    ):
        self._client = anthropic.Anthropic(
            api_key=api_key,
            timeout=timeout_ms / 1000.0,
        )
        self._max_tokens = max_tokens

    def complete(
        self,
        model: str,
        system_prompt: str,
        messages: list[Message],
        tools: list[FunctionSchema] | None = None,
    ) -> LLMResponse:
        system, history = _split_system(system_prompt, messages)
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": _build_messages(history, inline_tools=not tools),
            "max_tokens": self._max_tokens,
        }
        if system:
            kwargs["system"] = system
        anthropic_tools = _build_tools(tools)
        if anthropic_tools:
            kwargs["tools"] = anthropic_tools
        raw = self._client.messages.create(**kwargs)
        return _parse_response(raw)

    @property
    def client(self):
        """Escape hatch - the underlying ``anthropic.Anthropic`` client."""
        return self._client
