#!/usr/bin/env python3
"""
DataChat Agent - Main Entry Point

Run this to start an interactive conversation with the data-analysis agent.

Usage:
    python main.py              # Normal mode
    python main.py --verbose    # Show debug logging on the console
    python main.py "question"   # Single question (non-interactive)

Commands:
    charts       - Save the last answer's charts as HTML
    toggle       - Show/hide chart summaries for the last answer
    tools        - Show/hide tool call details for the last answer
    errors       - Show recent errors from logs
    reset        - Clear conversation history
    help         - Show help message
    quit         - Exit the program
"""

import sys
import argparse
from datetime import datetime
from pathlib import Path

# readline is optional (not available on Windows without pyreadline3)
try:
    import readline
    READLINE_AVAILABLE = True
except ImportError:
    READLINE_AVAILABLE = False

HISTORY_FILE = Path.home() / ".datachat_agent_history"


def setup_readline():
    """Configure readline for input history."""
    if not READLINE_AVAILABLE:
        return
    readline.set_history_length(500)
    try:
        readline.read_history_file(HISTORY_FILE)
    except FileNotFoundError:
        pass


def save_readline():
    if READLINE_AVAILABLE:
        try:
            readline.write_history_file(HISTORY_FILE)
        except OSError:
            pass


def print_welcome():
    """Print welcome message."""
    print("=" * 60)
    print("  DataChat Agent")
    print("=" * 60)
    print()
    print("Ask questions about your data in plain language. The agent")
    print("queries the connected data tools and charts tabular results.")
    print()
    print("Examples:")
    print("  'What were total sales by year?'")
    print("  'Show sales by region for 2023'")
    print("  'Which product models sold best last quarter?'")
    print()
    print("Commands: quit, reset, charts, toggle, tools, errors, help")
    print("-" * 60)
    print()


class ConversationState:
    """Client-side state of a REPL conversation."""

    def __init__(self):
        from rendering import DisplayStateStore
        from agent.llm import UsageMetadata

        self.history = []
        self.display = DisplayStateStore()
        self.last_message_id = None
        self.last_result = None
        self.last_charts = []
        self.usage = UsageMetadata()
        self.turns = 0

    def reset(self):
        for message in self.history:
            self.display.forget(message.id)
        self.history = []
        self.last_message_id = None
        self.last_result = None
        self.last_charts = []


def print_event(event, verbose: bool):
    """Print one progress event as a status line."""
    data = event.to_dict()
    if event.step in ("tool-executing", "tool-error", "iteration-start", "max-iterations") or verbose:
        print(f"  [{event.step}] {data.get('message', '')}")


def print_charts(state: ConversationState):
    prefs = state.display.get(state.last_message_id)
    if not state.last_charts or not prefs.show_chart:
        return
    print("Charts:")
    for chart in state.last_charts:
        print(f"  - {chart.type}: {chart.title} ({len(chart.data)} rows)")
    print()


def print_tool_details(state: ConversationState):
    prefs = state.display.get(state.last_message_id)
    if state.last_result is None or not prefs.show_tool_details:
        return
    print("Tool calls:")
    for result in state.last_result.tool_results:
        status = "ok" if result.succeeded else f"error: {result.error}"
        print(f"  - {result.tool}({result.arguments}) -> {status}")
    print()


def save_charts(state: ConversationState) -> list:
    """Write the last answer's charts to <data_dir>/charts/ as HTML."""
    from config import get_data_dir
    from rendering import build_figure, save_figure

    out_dir = get_data_dir() / "charts"
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    paths = []
    for i, chart in enumerate(state.last_charts, start=1):
        paths.append(save_figure(build_figure(chart), out_dir / f"chart_{stamp}_{i}.html"))
    return paths


def run_question(agent, state: ConversationState, question: str, verbose: bool):
    """Stream one turn, then record it in the conversation state."""
    from agent.core import TurnRequest, TurnResult
    from agent.events import ERROR, RESULT
    from agent.llm import Message, UsageMetadata
    from agent.tool_executor import ToolResult
    from rendering import build_charts

    request = TurnRequest(query=question, prior_messages=list(state.history))
    result = None
    events = agent.stream_turn(request)
    try:
        for event in events:
            if event.kind == RESULT:
                payload = event.payload or {}
                usage = payload.get("usage") or {}
                result = TurnResult(
                    response=payload.get("response", ""),
                    tool_results=[
                        ToolResult(
                            tool=r.get("tool", ""),
                            arguments=r.get("arguments") or {},
                            result=r.get("result"),
                            error=r.get("error"),
                        )
                        for r in payload.get("toolResults", [])
                    ],
                    iterations=payload.get("iterations", 0),
                    usage=UsageMetadata(
                        input_tokens=usage.get("input_tokens", 0),
                        output_tokens=usage.get("output_tokens", 0),
                        thinking_tokens=usage.get("thinking_tokens", 0),
                    ),
                )
            elif event.kind == ERROR:
                data = event.to_dict()
                print(f"\nError: {data.get('error')}")
                if data.get("details"):
                    print(f"  {data['details']}")
                print()
                return
            else:
                print_event(event, verbose)
    finally:
        events.close()

    if result is None:
        return

    state.last_result = result
    state.usage = state.usage + result.usage
    user_message = Message(role="user", content=question)
    answer = Message(role="assistant", content=result.response)
    state.history.extend([user_message, answer])
    state.last_message_id = answer.id
    state.last_charts = build_charts(result.tool_results, result.response)
    state.turns += 1

    print()
    print(f"Agent: {result.response}")
    print()
    print_charts(state)
    print_tool_details(state)


def main():
    """Main conversation loop."""
    parser = argparse.ArgumentParser(description="DataChat Agent")
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show debug logging and every progress event",
    )
    parser.add_argument(
        "--model", "-m",
        default=None,
        help="Model name (default: 'model' from config.json)",
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=None,
        help="Tool-calling iterations per question (default: 10)",
    )
    parser.add_argument(
        "--server-url",
        default=None,
        help="MCP server endpoint (default: 'mcp_server_url' from config.json)",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default=None,
        help="Single question to ask (non-interactive mode)",
    )
    args = parser.parse_args()

    if not args.command:
        setup_readline()
        print_welcome()

    from agent.core import create_agent
    from agent.logging import setup_logging

    setup_logging(verbose=args.verbose)

    try:
        agent = create_agent(
            model=args.model,
            max_iterations=args.max_iterations,
            server_url=args.server_url,
        )
    except Exception as e:
        print(f"Error initializing agent: {e}")
        print()
        print("Troubleshooting:")
        print("  1. Make sure OPENAI_API_KEY (or DATACHAT_LLM_API_KEY) is set in .env")
        print("  2. Check 'llm_provider' in ~/.datachat-agent/config.json")
        sys.exit(1)

    state = ConversationState()

    # Single command mode (non-interactive)
    if args.command:
        print(f"You: {args.command}\n")
        run_question(agent, state, args.command, args.verbose)
        sys.exit(0 if state.last_result is not None else 1)

    print(f"Model: {agent.model_name}")
    print("Agent ready. Type your request:\n")

    while True:
        try:
            user_input = input("You: ").strip()

            if not user_input:
                continue

            command = user_input.lower()

            if command in ("quit", "exit", "q"):
                print("Goodbye!")
                break

            if command == "reset":
                state.reset()
                print("Conversation reset.\n")
                continue

            if command == "help":
                print_welcome()
                continue

            if command == "errors":
                from agent.logging import print_recent_errors
                print_recent_errors(days=7, limit=10)
                print()
                continue

            if command == "charts":
                if not state.last_charts:
                    print("No charts for the last answer.\n")
                    continue
                for path in save_charts(state):
                    print(f"  Saved {path}")
                print()
                continue

            if command in ("toggle", "tools"):
                if state.last_message_id is None:
                    print("No answer yet.\n")
                    continue
                if command == "toggle":
                    prefs = state.display.toggle_chart(state.last_message_id)
                    print(f"Charts {'shown' if prefs.show_chart else 'hidden'}.\n")
                    print_charts(state)
                else:
                    prefs = state.display.toggle_tool_details(state.last_message_id)
                    print(f"Tool details {'shown' if prefs.show_tool_details else 'hidden'}.\n")
                    print_tool_details(state)
                continue

            print()
            run_question(agent, state, user_input, args.verbose)

        except KeyboardInterrupt:
            print("\n\nGoodbye!")
            break
        except Exception as e:
            print(f"\nError: {e}")
            print("You can continue the conversation or type 'reset' to start fresh.\n")

    if state.turns:
        usage = state.usage
        print()
        print("-" * 60)
        print(f"  Session token usage ({state.turns} questions):")
        print(f"    Input tokens:  {usage.input_tokens:,}")
        print(f"    Output tokens: {usage.output_tokens:,}")
        print(f"    Total tokens:  {usage.total_tokens:,}")
        print("-" * 60)

    save_readline()
    sys.stdout.flush()


if __name__ == "__main__":
    main()
