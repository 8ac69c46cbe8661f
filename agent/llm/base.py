"""Provider-agnostic types and abstract base class for LLM adapters.

All agent code should depend on these types, never on provider-specific SDKs.
The conversation history is kept here in a neutral shape (``Message``) and
each adapter translates it into its provider's wire format on every call.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass
class ToolCall:
    """A single function/tool invocation extracted from the LLM response.

    Attributes:
        name: Tool/function name.
        args: Parsed arguments dict.
        id: Provider-assigned correlation ID (e.g. ``call_xxxxx`` for OpenAI,
            ``toolu_xxxxx`` for Anthropic).  Filled in by the loop guard
            when a provider omits it.
        raw_args: The argument text as the model sent it, kept when it
            could not be parsed into an object.
        parse_error: Why ``raw_args`` was rejected; the call is answered
            with this error instead of being executed.
    """
    name: str
    args: dict
    id: str | None = None
    raw_args: str | None = None
    parse_error: str | None = None


@dataclass
class UsageMetadata:
    """Normalized token counts."""
    input_tokens: int = 0
    output_tokens: int = 0
    thinking_tokens: int = 0

    def __add__(self, other: "UsageMetadata") -> "UsageMetadata":
        return UsageMetadata(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            thinking_tokens=self.thinking_tokens + other.thinking_tokens,
        )

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens + self.thinking_tokens

    def to_dict(self) -> dict:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "thinking_tokens": self.thinking_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class LLMResponse:
    """Provider-agnostic response from an LLM call.

    Attributes:
        text: Concatenated text output (excludes thinking text).
        tool_calls: Extracted function/tool calls.
        usage: Token usage for this call.
        thoughts: List of thinking/reasoning text blocks (for verbose logging).
        raw: The original provider-specific response object.
    """
    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: UsageMetadata = field(default_factory=UsageMetadata)
    thoughts: list[str] = field(default_factory=list)
    raw: Any = None


@dataclass
class FunctionSchema:
    """Wraps a tool/function schema dict for type clarity.

    The ``parameters`` dict is already JSON-schema-shaped and provider-agnostic.
    """
    name: str
    description: str
    parameters: dict


MESSAGE_ROLES = ("user", "assistant", "system", "tool")


@dataclass(frozen=True)
class Message:
    """One entry of the conversation history.

    Messages are immutable once appended. ``id`` is a stable identity used
    by display state (never the position in the history).

    Attributes:
        role: ``user``, ``assistant``, ``system`` or ``tool``.
        content: Text content (for tool messages, the serialized result).
        tool_calls: Tool calls requested by an assistant message.
        tool_call_id: For tool messages, the correlation ID being answered.
        name: For tool messages, the tool that produced the content.
    """
    role: str
    content: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: str | None = None
    name: str | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self):
        if self.role not in MESSAGE_ROLES:
            raise ValueError(f"Unknown message role: {self.role!r}")

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        """Build a message from a ``{role, content}`` history entry."""
        kwargs = {"role": data["role"], "content": data.get("content") or ""}
        if data.get("id"):
            kwargs["id"] = str(data["id"])
        return cls(**kwargs)

    def to_dict(self) -> dict:
        return {"id": self.id, "role": self.role, "content": self.content}


# ---------------------------------------------------------------------------
# LLMAdapter ABC
# ---------------------------------------------------------------------------

class LLMAdapter(ABC):
    """Abstract interface that every LLM provider adapter must implement."""

    @abstractmethod
    def complete(
        self,
        model: str,
        system_prompt: str,
        messages: list[Message],
        tools: list[FunctionSchema] | None = None,
    ) -> LLMResponse:
        """Send the full conversation and return the model's reply.

        Args:
            model: Model identifier (e.g. ``"gpt-4o-mini"``).
            system_prompt: System instruction for this call.
            messages: Conversation history, oldest first. System messages in
                the history are folded into the system instruction.
            tools: Tool schemas the model may call. ``None`` or an empty
                list sends no tool definitions, so the model can only
                answer in text.
        """
