"""Agent layer for tool-calling conversations over remote MCP data tools."""

from .core import DataChatAgent, TurnError, TurnRequest, TurnResult, create_agent
from .events import ProgressChannel, ProgressEvent
from .tool_loop import TurnCancelled
from .prompts import get_system_prompt
