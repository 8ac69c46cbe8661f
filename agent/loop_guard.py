"""
Loop guard for the agent's tool-call loop.

Two jobs:
1. Iteration budget - caps the number of tool-enabled model calls per turn.
   Once the budget is spent the loop makes one last call without tools.
2. Correlation IDs - every tool call in an iteration gets a unique ID, and
   every ID must be answered by exactly one tool result before the next
   model call.
"""

import uuid
from collections import Counter
from dataclasses import replace

from .llm.base import ToolCall


class CorrelationError(RuntimeError):
    """Tool results do not match the iteration's tool calls one-to-one."""


class LoopGuard:
    """Tracks the iteration budget of one turn.

    Usage:
        guard = LoopGuard(max_iterations=10)

        while True:
            reason = guard.check_iteration()
            if reason:
                break   # budget spent: finalize without tools

            calls = guard.assign_call_ids(response.tool_calls)
            results = [execute(c) for c in calls]
            guard.verify_results(calls, results)
    """

    def __init__(self, max_iterations: int = 10):
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.max_iterations = max_iterations
        self.iteration = 0

    @property
    def exhausted(self) -> bool:
        return self.iteration >= self.max_iterations

    def check_iteration(self) -> str | None:
        """Start the next iteration if the budget allows. Returns stop reason or None."""
        if self.exhausted:
            return f"iteration limit ({self.max_iterations}) reached"
        self.iteration += 1
        return None

    def assign_call_ids(self, calls: list[ToolCall]) -> list[ToolCall]:
        """Return the calls with unique, non-empty correlation IDs.

        Calls that already carry a unique ID keep it. Missing IDs are
        generated; repeated IDs get a numeric suffix.
        """
        seen: set[str] = set()
        result = []
        for index, call in enumerate(calls):
            call_id = call.id or f"call_{self.iteration}_{index}_{uuid.uuid4().hex[:8]}"
            if call_id in seen:
                suffix = 1
                while f"{call_id}_{suffix}" in seen:
                    suffix += 1
                call_id = f"{call_id}_{suffix}"
            seen.add(call_id)
            if call_id == call.id:
                result.append(call)
            else:
                result.append(replace(call, id=call_id))
        return result

    @staticmethod
    def verify_results(calls: list[ToolCall], results: list) -> None:
        """Check that each call ID is answered by exactly one result.

        Raises:
            CorrelationError: on a missing, extra or duplicated answer.
        """
        expected = Counter(c.id for c in calls)
        answered = Counter(getattr(r, "call_id", None) for r in results)
        if expected != answered:
            missing = sorted(str(k) for k in expected - answered)
            extra = sorted(str(k) for k in answered - expected)
            raise CorrelationError(
                f"Tool results do not match tool calls (missing: {missing}, unexpected: {extra})"
            )
