"""Tests for agent/events.py - ProgressEvent wire shape and ProgressChannel."""

import json
import queue
import threading

import pytest

from agent.events import (
    DONE, ERROR, PROGRESS, RESULT,
    STEP_ITERATION_START, STEP_TOOL_ERROR, STEP_TOOLS_EXECUTING,
    ChannelClosedError, ProgressChannel, ProgressEvent, format_sse,
)


class TestProgressEvent:
    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            ProgressEvent(kind="status")

    def test_progress_wire_names(self):
        event = ProgressEvent(
            kind=PROGRESS, step=STEP_ITERATION_START, message="Iteration 1/10",
            iteration=1, max_iterations=10,
        )
        assert event.to_dict() == {
            "message": "Iteration 1/10",
            "step": "iteration-start",
            "iteration": 1,
            "maxIterations": 10,
        }

    def test_unset_fields_dropped(self):
        data = ProgressEvent(kind=PROGRESS, step=STEP_TOOLS_EXECUTING, message="x", tool_count=2).to_dict()
        assert data == {"message": "x", "step": "tools-executing", "toolCount": 2}

    def test_failed_tool_event(self):
        data = ProgressEvent(
            kind=PROGRESS, step=STEP_TOOL_ERROR, message="m",
            tool="query", success=False, error="boom",
        ).to_dict()
        assert data["success"] is False
        assert data["error"] == "boom"

    def test_done_default_message(self):
        assert ProgressEvent(kind=DONE).to_dict() == {"message": "Stream complete"}

    def test_terminal_kinds(self):
        assert ProgressEvent(kind=DONE).is_terminal
        assert ProgressEvent(kind=ERROR).is_terminal
        assert not ProgressEvent(kind=RESULT).is_terminal
        assert not ProgressEvent(kind=PROGRESS).is_terminal


class TestFormatSse:
    def test_frame(self):
        frame = format_sse(ProgressEvent(kind=ERROR, payload={"error": "e", "details": "d"}))
        assert frame.startswith("event: error\ndata: ")
        assert frame.endswith("\n\n")
        body = frame[len("event: error\ndata: "):-2]
        assert json.loads(body) == {"error": "e", "details": "d"}


class TestProgressChannel:
    def test_result_then_done(self):
        channel = ProgressChannel()
        channel.progress("init", "starting")
        channel.finish_result({"response": "hi"})
        kinds = [e.kind for e in channel]
        assert kinds == [PROGRESS, RESULT, DONE]
        assert channel.closed

    def test_error_terminates(self):
        channel = ProgressChannel()
        channel.fail("Failed to process chat request", "timeout")
        events = list(channel)
        assert len(events) == 1
        assert events[0].to_dict() == {"error": "Failed to process chat request", "details": "timeout"}

    def test_terminates_exactly_once(self):
        channel = ProgressChannel()
        channel.finish_result({})
        with pytest.raises(ChannelClosedError):
            channel.fail("late")
        with pytest.raises(ChannelClosedError):
            channel.progress("complete", "late")
        with pytest.raises(ChannelClosedError):
            channel.finish_result({})

    def test_result_only_via_finish(self):
        channel = ProgressChannel()
        with pytest.raises(ValueError):
            channel.emit(ProgressEvent(kind=RESULT, payload={}))

    def test_get_timeout(self):
        with pytest.raises(queue.Empty):
            ProgressChannel().get(timeout=0.01)

    def test_cross_thread_order(self):
        channel = ProgressChannel()

        def produce():
            for i in range(50):
                channel.progress("iteration-start", f"step {i}", iteration=i)
            channel.finish_result({"iterations": 50})

        worker = threading.Thread(target=produce)
        worker.start()
        events = list(channel)
        worker.join()

        iterations = [e.iteration for e in events if e.kind == PROGRESS]
        assert iterations == list(range(50))
        assert events[-1].kind == DONE
