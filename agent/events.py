"""
Progress events and the per-turn event channel.

The agent loop pushes typed events into a ``ProgressChannel``; a separate
consumer (the SSE response writer, the CLI, a test) drains it in arrival
order. A channel carries one turn and terminates exactly once: either a
``result`` event followed by ``done``, or a single ``error`` event.
"""

from __future__ import annotations

import json
import queue
import threading
from dataclasses import dataclass
from typing import Any, Iterator, Optional

# Event kinds
PROGRESS = "progress"
RESULT = "result"
ERROR = "error"
DONE = "done"

EVENT_KINDS = (PROGRESS, RESULT, ERROR, DONE)
_TERMINAL_KINDS = (DONE, ERROR)

# Step tags carried by progress events
STEP_INIT = "init"
STEP_TOOLS = "tools"
STEP_TOOLS_FOUND = "tools-found"
STEP_ANALYSIS_START = "analysis-start"
STEP_ITERATION_START = "iteration-start"
STEP_TOOLS_EXECUTING = "tools-executing"
STEP_TOOL_EXECUTING = "tool-executing"
STEP_TOOL_COMPLETED = "tool-completed"
STEP_TOOL_ERROR = "tool-error"
STEP_ITERATION_COMPLETE = "iteration-complete"
STEP_COMPLETE = "complete"
STEP_MAX_ITERATIONS = "max-iterations"

# Python attribute -> wire name for optional progress fields
_WIRE_NAMES = {
    "iteration": "iteration",
    "max_iterations": "maxIterations",
    "tool": "tool",
    "arguments": "arguments",
    "success": "success",
    "error": "error",
    "tool_count": "toolCount",
    "tools_executed": "toolsExecuted",
}


class ChannelClosedError(RuntimeError):
    """Raised when emitting into a channel that already terminated."""


@dataclass
class ProgressEvent:
    """One event of a turn's stream.

    For ``progress`` events ``step`` and ``message`` describe the loop
    state; the optional fields are filled where they apply. ``result``
    and ``error`` events carry their body in ``payload``.
    """
    kind: str
    step: Optional[str] = None
    message: str = ""
    iteration: Optional[int] = None
    max_iterations: Optional[int] = None
    tool: Optional[str] = None
    arguments: Optional[dict] = None
    success: Optional[bool] = None
    error: Optional[str] = None
    tool_count: Optional[int] = None
    tools_executed: Optional[int] = None
    payload: Optional[dict] = None

    def __post_init__(self):
        if self.kind not in EVENT_KINDS:
            raise ValueError(f"Unknown event kind: {self.kind!r}")

    @property
    def is_terminal(self) -> bool:
        return self.kind in _TERMINAL_KINDS

    def to_dict(self) -> dict:
        """Return the event's data object, dropping unset fields."""
        if self.kind != PROGRESS:
            data = dict(self.payload or {})
            if self.kind == DONE and "message" not in data:
                data["message"] = self.message or "Stream complete"
            return data
        data: dict[str, Any] = {"message": self.message, "step": self.step}
        for attr, wire in _WIRE_NAMES.items():
            value = getattr(self, attr)
            if value is not None:
                data[wire] = value
        return data


def format_sse(event: ProgressEvent) -> str:
    """Render an event as a Server-Sent-Events frame."""
    data = json.dumps(event.to_dict(), default=str)
    return f"event: {event.kind}\ndata: {data}\n\n"


class ProgressChannel:
    """Ordered, one-directional, thread-safe event stream for one turn.

    The producer calls :meth:`progress` any number of times and then exactly
    one of :meth:`finish_result` or :meth:`fail`. Iterating the channel
    blocks for the next event and stops after the terminal one.
    """

    def __init__(self):
        self._queue: "queue.Queue[ProgressEvent]" = queue.Queue()
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def emit(self, event: ProgressEvent) -> None:
        with self._lock:
            if self._closed:
                raise ChannelClosedError(
                    f"Cannot emit '{event.kind}' event: channel already terminated"
                )
            if event.kind == RESULT:
                # A result is only terminal together with the done signal
                # that finish_result() appends under the same lock.
                raise ValueError("Use finish_result() to emit a result")
            if event.is_terminal:
                self._closed = True
            self._queue.put(event)

    def progress(self, step: str, message: str, **fields) -> ProgressEvent:
        """Emit a progress event and return it."""
        event = ProgressEvent(kind=PROGRESS, step=step, message=message, **fields)
        self.emit(event)
        return event

    def finish_result(self, payload: dict) -> None:
        """Emit the terminal ``result`` event followed by ``done``."""
        with self._lock:
            if self._closed:
                raise ChannelClosedError("Cannot emit result: channel already terminated")
            self._closed = True
            self._queue.put(ProgressEvent(kind=RESULT, payload=payload))
            self._queue.put(ProgressEvent(kind=DONE, message="Stream complete"))

    def fail(self, error: str, details: str = "") -> None:
        """Emit the terminal ``error`` event."""
        self.emit(ProgressEvent(kind=ERROR, payload={"error": error, "details": details}))

    def get(self, timeout: float | None = None) -> ProgressEvent:
        """Return the next event, blocking up to ``timeout`` seconds.

        Raises:
            queue.Empty: no event arrived within ``timeout``.
        """
        return self._queue.get(timeout=timeout)

    def __iter__(self) -> Iterator[ProgressEvent]:
        while True:
            event = self._queue.get()
            yield event
            if event.is_terminal:
                return
