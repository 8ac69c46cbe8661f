"""
Logging configuration for datachat-agent.

Two destinations, one tier:
  - File: always DEBUG level, one file per process session
  - Console: DEBUG if --verbose, WARNING+ otherwise
  - Filter: both drop records with extra={'skip_file': True}
  - Format: "timestamp | level | name | session_id | message"
  - Config console_format options:
    - "full"   - same structured format as the file handler
    - "simple" - (default) bare messages for DEBUG/INFO, [LEVEL] prefix for WARNING+
    - "clean"  - no console output at all (file logging still active)

Per-call token usage goes to a separate ``token_<ts>.log`` next to the
agent log so the two can be correlated by timestamp.

Log files are stored in ~/.datachat-agent/logs/.
"""

import logging
import sys
import threading
import traceback
from datetime import datetime
from pathlib import Path
from typing import Optional

from config import get_data_dir


# Log directory
LOG_DIR = get_data_dir() / "logs"

LOGGER_NAME = "datachat-agent"


def tagged(tag: str) -> dict:
    """Return ``extra`` dict for logger calls: ``logger.debug("...", extra=tagged("x"))``.

    Tags in use: ``turn``, ``progress``, ``tool`` and ``error``.
    """
    return {"log_tag": tag}


# Module-level state (shared across re-inits)
_session_filter: Optional["_SessionFilter"] = None
_token_log_file: Optional[Path] = None


class _SessionFilter(logging.Filter):
    """Injects session_id into every log record.

    The id is per thread, so concurrent turns label their own lines.
    """

    def __init__(self) -> None:
        super().__init__()
        self._local = threading.local()

    @property
    def session_id(self) -> str:
        return getattr(self._local, "session_id", "")

    @session_id.setter
    def session_id(self, value: str) -> None:
        self._local.session_id = value

    def filter(self, record: logging.LogRecord) -> bool:
        record.session_id = self.session_id or "-"
        if not hasattr(record, "log_tag"):
            record.log_tag = ""
        return True


class _SkipDuplicateFilter(logging.Filter):
    """Drops records marked with ``extra={'skip_file': True}``."""

    def filter(self, record: logging.LogRecord) -> bool:
        return not getattr(record, "skip_file", False)


class _ConsoleFormatter(logging.Formatter):
    """Console formatter: shows [LEVEL] prefix only for WARNING and above.

    DEBUG/INFO messages print bare (e.g. ``  [Loop] Iteration 1/10``).
    WARNING/ERROR messages include the level (e.g. ``  [WARNING] ...``).
    """

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno >= logging.WARNING:
            return f"  [{record.levelname}] {record.getMessage()}"
        return f"  {record.getMessage()}"


def setup_token_log(session_timestamp: str) -> Path:
    """Create the per-API-call token usage log file.

    Args:
        session_timestamp: Timestamp string (e.g. '20260210_211534') shared
            with the main agent log for easy correlation.

    Returns:
        Path to the token log file.
    """
    global _token_log_file
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    path = LOG_DIR / f"token_{session_timestamp}.log"
    _token_log_file = path
    with open(path, "w", encoding="utf-8") as f:
        f.write("# timestamp | model | context | in out think | cum_in cum_out cum_think | calls\n")
    return path


def log_token_usage(
    model: str,
    input_tokens: int,
    output_tokens: int,
    thinking_tokens: int,
    cumulative_input: int,
    cumulative_output: int,
    cumulative_thinking: int,
    api_calls: int,
    context: str = "complete",
    token_log_path: Optional[Path] = None,
) -> None:
    """Append one line to the token usage log.

    Args:
        model: Model the call went to.
        input_tokens: Prompt tokens for this call.
        output_tokens: Completion tokens for this call.
        thinking_tokens: Reasoning tokens for this call.
        cumulative_input: Running total of input tokens for the turn.
        cumulative_output: Running total of output tokens for the turn.
        cumulative_thinking: Running total of reasoning tokens for the turn.
        api_calls: Completion calls made so far in the turn.
        context: What triggered the call ('iteration 3', 'finalize', ...).
        token_log_path: Explicit token log path; defaults to the module-global one.
    """
    target = token_log_path or _token_log_file
    if target is None:
        return
    ctx = context[:60] if context else "unknown"
    ts = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    line = (
        f"{ts} | {model} | {ctx} | "
        f"in:{input_tokens} out:{output_tokens} think:{thinking_tokens} | "
        f"cum_in:{cumulative_input} cum_out:{cumulative_output} cum_think:{cumulative_thinking} | "
        f"calls:{api_calls}\n"
    )
    try:
        with open(target, "a", encoding="utf-8") as f:
            f.write(line)
    except OSError:
        pass  # Don't let token logging break the turn


def setup_logging(verbose: bool = False) -> logging.Logger:
    """Configure logging for the agent.

    Args:
        verbose: If True, show DEBUG level on console; otherwise WARNING+ only

    Returns:
        Configured logger instance
    """
    global _session_filter
    LOG_DIR.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)  # Capture everything, filter at handler level
    logger.propagate = False

    # Clear existing handlers (in case of re-init)
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    # Session filter - reuse existing instance to preserve session_id across re-inits
    if _session_filter is None:
        _session_filter = _SessionFilter()
    logger.addFilter(_session_filter)

    session_timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    log_file = LOG_DIR / f"agent_{session_timestamp}.log"
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.addFilter(_SkipDuplicateFilter())
    file_format = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(session_id)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    file_handler.setFormatter(file_format)
    logger.addHandler(file_handler)

    import config as _config
    console_format = _config.get("console_format", "simple")

    if console_format != "clean":
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.addFilter(_SkipDuplicateFilter())
        console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
        if console_format == "simple":
            console_handler.setFormatter(_ConsoleFormatter())
        else:
            console_handler.setFormatter(file_format)
        logger.addHandler(console_handler)

    setup_token_log(session_timestamp)

    logger.info("=" * 60)
    logger.info(f"Session started at {datetime.now().isoformat()}")
    logger.info(f"Log file: {log_file}")

    return logger


def get_logger() -> logging.Logger:
    """Get the agent logger instance.

    Returns:
        The datachat-agent logger (creates with defaults if not configured)
    """
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        return setup_logging(verbose=False)
    return logger


def set_session_id(session_id: str) -> None:
    """Set the session ID included in subsequent log lines from this thread.

    Args:
        session_id: The session identifier (the turn id for the HTTP service)
    """
    global _session_filter
    if _session_filter is None:
        _session_filter = _SessionFilter()
    _session_filter.session_id = session_id


def log_error(
    message: str,
    exc: Optional[Exception] = None,
    context: Optional[dict] = None,
) -> None:
    """Log an error with full details including stack trace.

    Args:
        message: Error description
        exc: Optional exception to include stack trace from
        context: Optional dict of additional context (tool name, args, etc.)
    """
    logger = get_logger()

    lines = [message]

    if context:
        lines.append("Context:")
        for key, value in context.items():
            lines.append(f"  {key}: {value}")

    if exc:
        lines.append(f"Exception type: {type(exc).__name__}")
        lines.append(f"Exception message: {exc}")
        lines.append("Stack trace:")
        lines.append("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))

    logger.error("\n".join(lines), extra=tagged("error"))


def log_tool_call(tool_name: str, tool_args: dict) -> None:
    """Log a tool call for debugging.

    Args:
        tool_name: Name of the tool being called
        tool_args: Arguments passed to the tool
    """
    logger = get_logger()
    logger.debug(f"Tool call: {tool_name}({tool_args})", extra=tagged("tool"))


def log_tool_result(tool_name: str, error: Optional[str] = None, preview: str = "") -> None:
    """Log a tool result.

    Args:
        tool_name: Name of the tool
        error: Error text when the call failed, None on success
        preview: Short preview of the payload for the debug log
    """
    logger = get_logger()
    if error is None:
        suffix = f": {preview[:300]}" if preview else ""
        logger.debug(f"Tool result: {tool_name} -> success{suffix}", extra=tagged("tool"))
    else:
        logger.warning(f"Tool result: {tool_name} -> error: {error}", extra=tagged("tool"))


def log_turn_event(event: str, turn_id: str, details: Optional[str] = None) -> None:
    """Log a turn lifecycle event.

    Args:
        event: Event type (started, completed, failed, cancelled)
        turn_id: ID of the turn
        details: Optional additional details
    """
    logger = get_logger()
    msg = f"Turn {event}: {turn_id[:8]}"
    if details:
        msg += f" - {details}"
    logger.info(msg, extra=tagged("turn"))


def get_recent_errors(days: int = 7, limit: int = 50) -> list[dict]:
    """Retrieve recent errors from log files.

    Args:
        days: How many days back to search
        limit: Maximum number of errors to return

    Returns:
        List of error entries with timestamp, message, and details
    """
    errors = []
    cutoff = datetime.now().timestamp() - days * 86400
    log_files = sorted(LOG_DIR.glob("agent_*.log"), reverse=True)

    for log_file in log_files:
        if log_file.stat().st_mtime < cutoff:
            break

        try:
            with open(log_file, "r", encoding="utf-8") as f:
                current_error = None
                for line in f:
                    if "| ERROR" in line or "| WARNING" in line:
                        if current_error:
                            errors.append(current_error)
                        # Format: timestamp | level | name | session_id | message
                        parts = line.split(" | ", 4)
                        if len(parts) >= 5:
                            current_error = {
                                "timestamp": parts[0].strip(),
                                "level": parts[1].strip(),
                                "session_id": parts[3].strip(),
                                "message": parts[4].strip(),
                                "details": [],
                            }
                    elif current_error and line.startswith("  "):
                        current_error["details"].append(line.rstrip())

                if current_error:
                    errors.append(current_error)

        except OSError:
            continue

        if len(errors) >= limit:
            break

    return errors[:limit]


def print_recent_errors(days: int = 7, limit: int = 10) -> None:
    """Print recent errors to console for review.

    Args:
        days: How many days back to search
        limit: Maximum number of errors to show
    """
    errors = get_recent_errors(days=days, limit=limit)

    if not errors:
        print(f"No errors found in the last {days} days.")
        return

    print(f"Recent errors (last {days} days, showing up to {limit}):")
    print("-" * 60)

    for i, error in enumerate(errors, 1):
        print(f"\n{i}. [{error['timestamp']}] {error['level']}")
        print(f"   {error['message']}")
        if error["details"]:
            for detail in error["details"][:5]:
                print(f"   {detail}")
            if len(error["details"]) > 5:
                print(f"   ... and {len(error['details']) - 5} more lines")

    print("-" * 60)
    print(f"Full logs available at: {LOG_DIR}")
