"""OpenAI adapter - wraps the ``openai`` SDK for OpenAI and compatible APIs.

Covers OpenAI itself and any provider exposing an OpenAI-compatible
``/chat/completions`` endpoint (set ``llm_base_url`` in config.json).

This is the **only** module that imports the ``openai`` package.
"""

from __future__ import annotations

import json
from typing import Any

import openai

from .base import (
    FunctionSchema,
    LLMAdapter,
    LLMResponse,
    Message,
    ToolCall,
    UsageMetadata,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _build_tools(schemas: list[FunctionSchema] | None) -> list[dict] | None:
    """Convert FunctionSchema list to OpenAI tool format."""
    if not schemas:
        return None
    return [
        {
            "type": "function",
            "function": {
                "name": s.name,
                "description": s.description,
                "parameters": s.parameters,
            },
        }
        for s in schemas
    ]


def _build_messages(system_prompt: str, messages: list[Message]) -> list[dict]:
    """Convert the neutral history into OpenAI chat messages."""
    result: list[dict] = []
    if system_prompt:
        result.append({"role": "system", "content": system_prompt})
    for msg in messages:
        if msg.role == "tool":
            result.append({
                "role": "tool",
                "tool_call_id": msg.tool_call_id,
                "content": msg.content,
            })
        elif msg.role == "assistant" and msg.tool_calls:
            entry: dict[str, Any] = {
                "role": "assistant",
                "content": msg.content or None,
                "tool_calls": [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {
                            "name": tc.name,
                            "arguments": tc.raw_args if tc.raw_args is not None else json.dumps(tc.args, default=str),
                        },
                    }
                    for tc in msg.tool_calls
                ],
            }
            result.append(entry)
        else:
            result.append({"role": msg.role, "content": msg.content})
    return result


def _parse_tool_calls(raw_tool_calls) -> list[ToolCall]:
    """Parse OpenAI tool calls into our ToolCall dataclass."""
    if not raw_tool_calls:
        return []
    result = []
    for tc in raw_tool_calls:
        raw = tc.function.arguments
        error = None
        try:
            args = json.loads(raw) if raw else {}
        except (json.JSONDecodeError, TypeError) as e:
            args, error = {}, f"Invalid JSON in tool arguments: {e}"
        if error is None and not isinstance(args, dict):
            args, error = {}, "Tool arguments must be a JSON object"
        result.append(ToolCall(
            name=tc.function.name,
            args=args,
            id=tc.id,
            raw_args=str(raw) if error else None,
            parse_error=error,
        ))
    return result


def _parse_response(raw) -> LLMResponse:
    """Parse a raw OpenAI ChatCompletion into a provider-agnostic LLMResponse."""
    if not raw.choices:
        return LLMResponse(raw=raw)

    message = raw.choices[0].message

    text = message.content or ""
    tool_calls = _parse_tool_calls(message.tool_calls)

    thoughts: list[str] = []
    reasoning = getattr(message, "reasoning_content", None)
    if isinstance(reasoning, str) and reasoning:
        thoughts.append(reasoning)

    usage = UsageMetadata()
    if raw.usage:
        details = getattr(raw.usage, "completion_tokens_details", None)
        usage = UsageMetadata(
            input_tokens=raw.usage.prompt_tokens or 0,
            output_tokens=raw.usage.completion_tokens or 0,
            thinking_tokens=(details and getattr(details, "reasoning_tokens", 0)) or 0,
        )

    return LLMResponse(
        text=text,
        tool_calls=tool_calls,
        usage=usage,
        thoughts=thoughts,
        raw=raw,
    )


# ---------------------------------------------------------------------------
# OpenAIAdapter
# ---------------------------------------------------------------------------

class OpenAIAdapter(LLMAdapter):
    """Adapter that wraps the ``openai`` SDK for OpenAI and compatible APIs.

    OpenAI chat completions are stateless: the full message list goes out
    on every request, rebuilt from the loop's history.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str | None = None,
        timeout_ms: int = 300_000,
    ):
        kwargs: dict[str, Any] = {"api_key": api_key}
        if base_url:
            kwargs["base_url"] = base_url
        kwargs["timeout"] = timeout_ms / 1000.0  # openai SDK uses seconds
        self._client = openai.OpenAI(**kwargs)

    def complete(
        self,
        model: str,
        system_prompt: str,
        messages: list[Message],
        tools: list[FunctionSchema] | None = None,
    ) -> LLMResponse:
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": _build_messages(system_prompt, messages),
        }
        openai_tools = _build_tools(tools)
        if openai_tools:
            kwargs["tools"] = openai_tools
            kwargs["tool_choice"] = "auto"
        raw = self._client.chat.completions.create(**kwargs)
        return _parse_response(raw)

    @property
    def client(self):
        """Escape hatch - the underlying ``openai.OpenAI`` client."""
        return self._client
