"""
Tool executor - runs one model-requested tool call against the tool server.

Every call yields exactly one ``ToolResult``. Failures (transport errors,
server-side errors, bad arguments, timeouts) are captured as an error
string and never propagate: the model gets to see the error as a tool
message and decide what to do next. There are no retries; a repeated
request in a later iteration is an independent invocation.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional

from .llm.base import ToolCall
from .logging import log_tool_call, log_tool_result
from .tool_server import ToolServer


@dataclass
class ToolResult:
    """Outcome of one tool invocation.

    Exactly one of ``result`` / ``error`` is meaningful: ``error`` is None
    on success.
    """
    tool: str
    arguments: dict
    call_id: Optional[str] = None
    result: Any = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"tool": self.tool, "arguments": self.arguments}
        if self.error is None:
            data["result"] = self.result
        else:
            data["error"] = self.error
        return data


def format_tool_message(result: ToolResult) -> str:
    """Serialize a ToolResult as the content of a tool-role message."""
    if result.error is not None:
        return json.dumps({"error": result.error})
    return json.dumps(result.result, default=str)


def _describe_error(exc: Exception) -> str:
    text = str(exc)
    return text if text else type(exc).__name__


class ToolExecutor:
    """Invoke tools on a single, turn-scoped tool server connection."""

    def __init__(self, server: ToolServer):
        self.server = server

    def execute(self, call: ToolCall) -> ToolResult:
        """Run ``call`` once and return its ToolResult. Never raises."""
        args = call.args if isinstance(call.args, dict) else {}
        if call.parse_error:
            error = f"{call.parse_error} (received: {call.raw_args})"
            log_tool_result(call.name, error=error)
            return ToolResult(tool=call.name, arguments=args, call_id=call.id, error=error)
        log_tool_call(call.name, args)
        try:
            payload = self.server.call_tool(call.name, args)
        except Exception as e:
            error = _describe_error(e)
            log_tool_result(call.name, error=error)
            return ToolResult(tool=call.name, arguments=args, call_id=call.id, error=error)

        log_tool_result(call.name, preview=json.dumps(payload, default=str))
        return ToolResult(tool=call.name, arguments=args, call_id=call.id, result=payload)
