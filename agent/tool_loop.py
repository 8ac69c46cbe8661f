"""
Bounded tool-calling loop for one conversation turn.

Alternates model calls and tool executions until the model answers in plain
text or the iteration budget runs out. In the latter case one extra model
call is made without tool definitions so the turn always ends with a text
answer.

Iterations are strictly sequential, and so are the tool calls inside one
iteration: each model call depends on every earlier tool result, and
results are appended to the history in request order.
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field

from . import events
from .events import ProgressChannel
from .llm.base import FunctionSchema, LLMAdapter, LLMResponse, Message, ToolCall, UsageMetadata
from .logging import get_logger, log_token_usage, tagged
from .loop_guard import LoopGuard
from .tool_executor import ToolExecutor, ToolResult, format_tool_message

logger = get_logger()


class TurnCancelled(Exception):
    """The caller went away; the turn stops at the next checkpoint."""


@dataclass
class LoopOutcome:
    """What the loop hands back when it reaches Done."""
    response: str
    tool_results: list[ToolResult] = field(default_factory=list)
    iterations: int = 0
    usage: UsageMetadata = field(default_factory=UsageMetadata)
    messages: list[Message] = field(default_factory=list)
    forced_final: bool = False


def describe_call(call: ToolCall) -> str:
    """Render a call as ``name(key: value, ...)`` for progress messages."""
    parts = [f"{k}: {json.dumps(v, default=str)}" for k, v in call.args.items()]
    return f"{call.name}({', '.join(parts)})"


def _check_cancel(cancel_event: threading.Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise TurnCancelled("Turn cancelled by caller")


class _NullChannel:
    """Stands in when the caller does not want progress events."""

    def progress(self, step, message, **fields):
        return None


def run_tool_loop(
    adapter: LLMAdapter,
    model: str,
    system_prompt: str,
    messages: list[Message],
    tools: list[FunctionSchema],
    executor: ToolExecutor,
    *,
    channel: ProgressChannel | None = None,
    max_iterations: int = 10,
    cancel_event: threading.Event | None = None,
) -> LoopOutcome:
    """Run the Asking/Executing cycle until a final answer exists.

    Args:
        adapter: Completion client.
        model: Model identifier passed to the adapter.
        system_prompt: System instruction for every call of the turn.
        messages: Prior history plus the new user query. Not mutated.
        tools: Tool schemas offered to the model while the budget lasts.
        executor: Runs tool calls against the turn's tool server.
        channel: Progress channel; events are dropped when None.
        max_iterations: Maximum number of tool-enabled model calls.
        cancel_event: Checked before every model call and tool invocation.

    Returns:
        LoopOutcome with the final text, every ToolResult in execution
        order, the iteration count (never above ``max_iterations``) and
        usage summed over all model calls.

    Raises:
        TurnCancelled: ``cancel_event`` was set.
        Exception: whatever the adapter raised; completion failures are fatal.
    """
    emit = channel or _NullChannel()
    history = list(messages)
    guard = LoopGuard(max_iterations=max_iterations)
    all_results: list[ToolResult] = []
    usage = UsageMetadata()
    api_calls = 0
    final_text = ""
    answered = False

    def complete(offer_tools: bool, context: str) -> LLMResponse:
        nonlocal usage, api_calls
        _check_cancel(cancel_event)
        response = adapter.complete(model, system_prompt, history, tools if offer_tools else None)
        api_calls += 1
        usage = usage + response.usage
        log_token_usage(
            model=model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            thinking_tokens=response.usage.thinking_tokens,
            cumulative_input=usage.input_tokens,
            cumulative_output=usage.output_tokens,
            cumulative_thinking=usage.thinking_tokens,
            api_calls=api_calls,
            context=context,
        )
        for thought in response.thoughts:
            logger.debug(f"[Thinking] {thought[:500]}")
        return response

    emit.progress(
        events.STEP_ANALYSIS_START,
        "Starting analysis...",
        max_iterations=max_iterations,
    )

    while True:
        stop_reason = guard.check_iteration()
        if stop_reason:
            logger.debug(f"[Loop] Stopping: {stop_reason}")
            break

        iteration = guard.iteration
        logger.debug(
            f"[Loop] Iteration {iteration}/{max_iterations}, history has {len(history)} messages",
            extra=tagged("progress"),
        )
        emit.progress(
            events.STEP_ITERATION_START,
            f"Iteration {iteration}/{max_iterations}: Analyzing and planning...",
            iteration=iteration,
            max_iterations=max_iterations,
        )

        response = complete(offer_tools=True, context=f"iteration {iteration}")

        if not response.tool_calls:
            final_text = response.text
            answered = True
            history.append(Message(role="assistant", content=final_text))
            logger.debug(f"[Loop] Final answer after {iteration} iteration(s): {final_text[:100]}")
            emit.progress(events.STEP_COMPLETE, "Analysis complete - generating final response...")
            break

        calls = guard.assign_call_ids(response.tool_calls)
        history.append(Message(role="assistant", content=response.text, tool_calls=tuple(calls)))
        emit.progress(
            events.STEP_TOOLS_EXECUTING,
            f"Executing {len(calls)} tool(s)...",
            tool_count=len(calls),
        )

        iteration_results: list[ToolResult] = []
        for call in calls:
            _check_cancel(cancel_event)
            emit.progress(
                events.STEP_TOOL_EXECUTING,
                describe_call(call),
                tool=call.name,
                arguments=call.args,
            )

            result = executor.execute(call)
            iteration_results.append(result)
            all_results.append(result)
            history.append(Message(
                role="tool",
                content=format_tool_message(result),
                tool_call_id=call.id,
                name=call.name,
            ))

            if result.succeeded:
                emit.progress(
                    events.STEP_TOOL_COMPLETED,
                    f"{call.name} completed successfully",
                    tool=call.name,
                    success=True,
                )
            else:
                emit.progress(
                    events.STEP_TOOL_ERROR,
                    f"{call.name} failed: {result.error}",
                    tool=call.name,
                    success=False,
                    error=result.error,
                )

        guard.verify_results(calls, iteration_results)

        failed = sum(1 for r in iteration_results if not r.succeeded)
        logger.debug(
            f"[Loop] Iteration {iteration} completed: {len(iteration_results)} tool(s), "
            f"{len(iteration_results) - failed} ok, {failed} failed"
        )
        emit.progress(
            events.STEP_ITERATION_COMPLETE,
            f"Iteration {iteration} completed - {len(iteration_results)} tool(s) executed",
            iteration=iteration,
            tools_executed=len(iteration_results),
        )

    forced = False
    if not answered:
        logger.info(f"[Loop] Max iterations ({max_iterations}) reached, forcing final answer")
        emit.progress(
            events.STEP_MAX_ITERATIONS,
            "Max iterations reached - generating final response...",
        )
        response = complete(offer_tools=False, context="finalize")
        final_text = response.text
        forced = True
        history.append(Message(role="assistant", content=final_text))

    return LoopOutcome(
        response=final_text,
        tool_results=all_results,
        iterations=guard.iteration,
        usage=usage,
        messages=history,
        forced_final=forced,
    )
