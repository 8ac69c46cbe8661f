"""
Core agent logic - runs one conversation turn end to end.

A turn opens its own tool server connection, discovers the tools, runs the
bounded tool-calling loop and delivers either a result or a single error on
the turn's progress channel. Turns share no mutable state, so concurrent
turns on one ``DataChatAgent`` are independent.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional

import config
from .events import (
    ProgressChannel, ProgressEvent,
    STEP_INIT, STEP_TOOLS, STEP_TOOLS_FOUND,
)
from .llm import FunctionSchema, LLMAdapter, Message, UsageMetadata, create_adapter
from .logging import get_logger, log_error, log_turn_event, set_session_id, tagged
from .prompts import get_system_prompt
from .tool_executor import ToolExecutor, ToolResult
from .tool_loop import TurnCancelled, run_tool_loop
from .tool_server import MCPToolServer, ToolDescriptor, ToolServer

TURN_FAILED_MESSAGE = "Failed to process chat request"
_CANCEL_POLL_SECONDS = 0.1


class TurnError(Exception):
    """A turn failed fatally (discovery, connection or completion failure)."""

    def __init__(self, summary: str, details: str = ""):
        super().__init__(f"{summary}: {details}" if details else summary)
        self.summary = summary
        self.details = details

    def to_dict(self) -> dict:
        return {"error": self.summary, "details": self.details}


@dataclass
class TurnRequest:
    """Input of one turn: the prior conversation plus the new user query."""
    query: str
    prior_messages: list[Message] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "TurnRequest":
        """Build a request from a ``{messages, query}`` body."""
        messages = [Message.from_dict(m) for m in data.get("messages") or []]
        return cls(query=str(data.get("query") or ""), prior_messages=messages)


@dataclass
class TurnResult:
    """Output of one successful turn."""
    response: str
    tool_results: list[ToolResult] = field(default_factory=list)
    iterations: int = 0
    usage: UsageMetadata = field(default_factory=UsageMetadata)
    messages: list[Message] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Wire shape of the ``result`` event."""
        return {
            "response": self.response,
            "toolResults": [r.to_dict() for r in self.tool_results],
            "usage": self.usage.to_dict(),
            "iterations": self.iterations,
        }


def _default_tool_server() -> ToolServer:
    return MCPToolServer(
        config.MCP_SERVER_URL,
        config.MCP_TRANSPORT,
        timeout_seconds=config.TOOL_TIMEOUT_SECONDS,
    )


def _unique_tools(tools: list[ToolDescriptor]) -> list[ToolDescriptor]:
    seen = set()
    unique = []
    for tool in tools:
        if tool.name in seen:
            get_logger().warning(f"[Tools] Duplicate tool name '{tool.name}' ignored")
            continue
        seen.add(tool.name)
        unique.append(tool)
    return unique


def to_function_schemas(tools: list[ToolDescriptor]) -> list[FunctionSchema]:
    return [
        FunctionSchema(name=t.name, description=t.description, parameters=t.input_schema)
        for t in tools
    ]


class DataChatAgent:
    """Runs conversation turns against an LLM and a remote tool server."""

    # Class-level fallback so tests using __new__ don't crash on self.logger
    logger = get_logger()

    def __init__(
        self,
        adapter: LLMAdapter | None = None,
        *,
        model: str | None = None,
        tool_server_factory: Callable[[], ToolServer] | None = None,
        max_iterations: int | None = None,
        datasource: str | None = None,
    ):
        """Initialize the agent.

        Args:
            adapter: Completion client (default: built from config).
            model: Model name (default: config ``model``).
            tool_server_factory: Returns a fresh, unconnected ToolServer for
                each turn (default: MCPToolServer for config ``mcp_server_url``).
            max_iterations: Tool-enabled completion calls per turn.
            datasource: Data source named in the system prompt.
        """
        self.logger = get_logger()
        self.adapter = adapter or create_adapter(
            config.LLM_PROVIDER,
            config.get_api_key(),
            base_url=config.LLM_BASE_URL,
            timeout_ms=config.LLM_TIMEOUT_MS,
        )
        self.model_name = model or config.LLM_MODEL
        self.tool_server_factory = tool_server_factory or _default_tool_server
        self.max_iterations = max_iterations if max_iterations is not None else config.MAX_ITERATIONS
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.datasource = datasource or config.DEFAULT_DATASOURCE
        self.logger.info(
            f"Initializing DataChatAgent (model={self.model_name}, "
            f"max_iterations={self.max_iterations})"
        )

    # ---- Turn execution ----

    def _close_on_cancel(self, server: ToolServer, cancel_event: threading.Event | None) -> threading.Event:
        """Close ``server`` as soon as ``cancel_event`` is set.

        Closing from the watcher thread aborts a tool call that is still in
        flight. Setting the returned event stops the watcher.
        """
        done = threading.Event()
        if cancel_event is None:
            return done

        def watch():
            while not done.is_set():
                if cancel_event.wait(_CANCEL_POLL_SECONDS):
                    self.logger.debug("[Turn] Cancelled, closing tool server connection", extra=tagged("turn"))
                    server.close()
                    return

        threading.Thread(target=watch, name="turn-cancel-watch", daemon=True).start()
        return done

    def _execute(
        self,
        request: TurnRequest,
        channel: ProgressChannel,
        cancel_event: threading.Event | None,
    ) -> TurnResult:
        server = self.tool_server_factory()
        channel.progress(STEP_INIT, "Initializing MCP connection...")
        with server:
            watch_done = self._close_on_cancel(server, cancel_event)
            try:
                channel.progress(STEP_TOOLS, "Getting available tools...")
                tools = _unique_tools(server.discover_tools())
                names = ", ".join(t.name for t in tools)
                self.logger.debug(f"[Tools] Discovered {len(tools)} tool(s): {names}")
                channel.progress(STEP_TOOLS_FOUND, f"Found {len(tools)} tools: {names}")

                messages = [*request.prior_messages, Message(role="user", content=request.query)]
                outcome = run_tool_loop(
                    self.adapter,
                    self.model_name,
                    get_system_prompt(tools, self.datasource),
                    messages,
                    to_function_schemas(tools),
                    ToolExecutor(server),
                    channel=channel,
                    max_iterations=self.max_iterations,
                    cancel_event=cancel_event,
                )
            finally:
                watch_done.set()

        return TurnResult(
            response=outcome.response,
            tool_results=outcome.tool_results,
            iterations=outcome.iterations,
            usage=outcome.usage,
            messages=outcome.messages,
        )

    def run_turn(
        self,
        request: TurnRequest,
        channel: ProgressChannel,
        cancel_event: threading.Event | None = None,
    ) -> Optional[TurnResult]:
        """Run one turn, reporting everything through ``channel``.

        Never raises. The channel receives progress events followed by
        either ``result`` + ``done`` or exactly one ``error`` event.

        Returns:
            The TurnResult, or None if the turn failed or was cancelled.
        """
        turn_id = uuid.uuid4().hex
        set_session_id(turn_id[:8])
        log_turn_event("started", turn_id, request.query[:80])
        try:
            result = self._execute(request, channel, cancel_event)
        except TurnCancelled:
            log_turn_event("cancelled", turn_id)
            if not channel.closed:
                channel.fail("Turn cancelled", "The client disconnected before the turn completed")
            return None
        except Exception as e:
            log_error(TURN_FAILED_MESSAGE, exc=e, context={"turn_id": turn_id, "query": request.query})
            log_turn_event("failed", turn_id, str(e))
            if not channel.closed:
                channel.fail(TURN_FAILED_MESSAGE, str(e) or type(e).__name__)
            return None

        channel.finish_result(result.to_dict())
        log_turn_event(
            "completed", turn_id,
            f"{result.iterations} iteration(s), {len(result.tool_results)} tool call(s)",
        )
        return result

    def stream_turn(
        self,
        request: TurnRequest,
        cancel_event: threading.Event | None = None,
    ) -> Iterator[ProgressEvent]:
        """Run a turn on a worker thread and yield its events as they arrive.

        Closing the generator before the terminal event cancels the turn.
        """
        cancel_event = cancel_event or threading.Event()
        channel = ProgressChannel()
        worker = threading.Thread(
            target=self.run_turn,
            args=(request, channel, cancel_event),
            name="datachat-turn",
            daemon=True,
        )
        worker.start()
        finished = False
        try:
            for event in channel:
                yield event
            finished = True
        finally:
            if not finished:
                self.logger.debug("[Turn] Consumer went away, cancelling turn", extra=tagged("turn"))
                cancel_event.set()

    def ask(self, request: TurnRequest) -> TurnResult:
        """Run a turn synchronously.

        Raises:
            TurnError: the turn failed fatally.
        """
        turn_id = uuid.uuid4().hex
        set_session_id(turn_id[:8])
        log_turn_event("started", turn_id, request.query[:80])
        try:
            result = self._execute(request, ProgressChannel(), None)
        except Exception as e:
            log_error(TURN_FAILED_MESSAGE, exc=e, context={"turn_id": turn_id, "query": request.query})
            log_turn_event("failed", turn_id, str(e))
            raise TurnError(TURN_FAILED_MESSAGE, str(e) or type(e).__name__) from e
        log_turn_event("completed", turn_id, f"{result.iterations} iteration(s)")
        return result


def create_agent(
    model: str | None = None,
    max_iterations: int | None = None,
    server_url: str | None = None,
) -> DataChatAgent:
    """Factory function to create a new agent instance.

    Args:
        model: Model name (default: config ``model``).
        max_iterations: Iteration budget per turn (default: config).
        server_url: MCP endpoint overriding config ``mcp_server_url``.

    Returns:
        Configured DataChatAgent instance.
    """
    factory = None
    if server_url:
        def factory() -> ToolServer:
            return MCPToolServer(
                server_url,
                config.MCP_TRANSPORT,
                timeout_seconds=config.TOOL_TIMEOUT_SECONDS,
            )
    return DataChatAgent(model=model, tool_server_factory=factory, max_iterations=max_iterations)
