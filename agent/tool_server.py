"""
Remote tool server client.

Tools are discovered at the start of every turn from a Model Context
Protocol server and invoked by name with a JSON argument object. Nothing in
the agent knows the tool set statically: a tool is just a name, a
description and an input schema.

The MCP SDK is async; the agent loop is synchronous. ``MCPToolServer``
bridges the two with an anyio blocking portal that owns one event loop for
the lifetime of the connection, so a single session is opened per turn,
reused for every call in that turn, and closed at turn end.
"""

from __future__ import annotations

import functools
from abc import ABC, abstractmethod
from contextlib import ExitStack
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from .logging import get_logger

logger = get_logger()

SUPPORTED_TRANSPORTS = ("streamable-http", "sse")

_EMPTY_SCHEMA = {"type": "object", "properties": {}}


class ToolServerError(Exception):
    """Discovery, transport or execution failure on the remote tool server."""


@dataclass(frozen=True)
class ToolDescriptor:
    """A tool advertised by the remote server.

    Attributes:
        name: Tool name, unique within one discovery snapshot.
        description: Human-readable description (may be empty).
        input_schema: JSON schema for the tool's arguments.
    """
    name: str
    description: str = ""
    input_schema: dict = field(default_factory=lambda: dict(_EMPTY_SCHEMA))


class ToolServer(ABC):
    """Abstract remote tool server connection.

    Usage:
        with MCPToolServer(url) as server:
            tools = server.discover_tools()
            payload = server.call_tool("query-datasource", {"query": ...})
    """

    def connect(self) -> None:
        """Open the connection. Default: nothing to open."""

    def close(self) -> None:
        """Release the connection. Default: nothing to release."""

    @abstractmethod
    def discover_tools(self) -> list[ToolDescriptor]:
        """Return the tools currently offered by the server."""

    @abstractmethod
    def call_tool(self, name: str, arguments: dict) -> Any:
        """Invoke ``name`` with ``arguments`` and return its raw payload.

        Raises:
            ToolServerError: the server reported an error, or the transport failed.
        """

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


# ---------------------------------------------------------------------------
# MCP conversion helpers
# ---------------------------------------------------------------------------

def descriptor_from_mcp_tool(tool) -> ToolDescriptor:
    """Convert an ``mcp.types.Tool`` into a ToolDescriptor."""
    schema = getattr(tool, "inputSchema", None)
    return ToolDescriptor(
        name=tool.name,
        description=getattr(tool, "description", None) or "",
        input_schema=dict(schema) if schema else dict(_EMPTY_SCHEMA),
    )


def _content_to_dict(block) -> Any:
    if hasattr(block, "model_dump"):
        return block.model_dump(mode="json", exclude_none=True)
    return block


def payload_from_mcp_result(name: str, result) -> list:
    """Turn an ``mcp.types.CallToolResult`` into a JSON-safe payload.

    The payload is the list of content blocks as plain dicts, e.g.
    ``[{"type": "text", "text": "{...}"}]``; the loop passes it through
    verbatim and chart inference unwraps it later.

    Raises:
        ToolServerError: if the server flagged the result as an error.
    """
    blocks = [_content_to_dict(b) for b in (getattr(result, "content", None) or [])]
    if getattr(result, "isError", False):
        texts = [
            b.get("text", "") for b in blocks
            if isinstance(b, dict) and b.get("type") == "text"
        ]
        message = "; ".join(t for t in texts if t) or "Tool execution failed"
        raise ToolServerError(f"Tool '{name}' failed: {message}")
    return blocks


# ---------------------------------------------------------------------------
# MCPToolServer
# ---------------------------------------------------------------------------

class MCPToolServer(ToolServer):
    """Tool server backed by a remote MCP endpoint.

    Args:
        server_url: MCP endpoint (e.g. ``https://host/tableau-mcp``).
        transport: ``"streamable-http"`` (default) or ``"sse"``.
        timeout_seconds: Per-call read timeout for list/call requests.
        headers: Extra HTTP headers (auth tokens etc.).
        client_name: Name reported to the server during initialization.
    """

    def __init__(
        self,
        server_url: str,
        transport: str = "streamable-http",
        *,
        timeout_seconds: float = 120,
        headers: dict | None = None,
        client_name: str = "datachat-agent",
    ):
        self.server_url = server_url
        self.transport = transport.lower()
        self.timeout_seconds = timeout_seconds
        self.headers = headers or {}
        self.client_name = client_name
        self._stack: ExitStack | None = None
        self._portal = None
        self._session = None

        if self.transport not in SUPPORTED_TRANSPORTS:
            raise ValueError(
                f"Unsupported MCP transport: {self.transport}. "
                f"Supported: {', '.join(SUPPORTED_TRANSPORTS)}"
            )

    @property
    def connected(self) -> bool:
        return self._session is not None

    def _open_streams(self, portal):
        if self.transport == "sse":
            from mcp.client.sse import sse_client
            return portal.wrap_async_context_manager(
                sse_client(self.server_url, headers=self.headers, timeout=self.timeout_seconds)
            )
        from mcp.client.streamable_http import streamablehttp_client
        return portal.wrap_async_context_manager(
            streamablehttp_client(
                self.server_url,
                headers=self.headers,
                timeout=timedelta(seconds=self.timeout_seconds),
            )
        )

    def connect(self) -> None:
        if self._session is not None:
            return
        from anyio.from_thread import start_blocking_portal
        from mcp import ClientSession
        from mcp.types import Implementation

        logger.debug(f"[ToolServer] Connecting to {self.server_url} ({self.transport})")
        stack = ExitStack()
        try:
            portal = stack.enter_context(start_blocking_portal())
            streams = stack.enter_context(self._open_streams(portal))
            read_stream, write_stream = streams[0], streams[1]
            session = stack.enter_context(portal.wrap_async_context_manager(
                ClientSession(
                    read_stream,
                    write_stream,
                    read_timeout_seconds=timedelta(seconds=self.timeout_seconds),
                    client_info=Implementation(name=self.client_name, version="1.0.0"),
                )
            ))
            portal.call(session.initialize)
        except Exception as e:
            stack.close()
            raise ToolServerError(f"Could not connect to tool server at {self.server_url}: {e}") from e

        self._stack = stack
        self._portal = portal
        self._session = session
        logger.debug("[ToolServer] Session initialized")

    def close(self) -> None:
        stack, self._stack = self._stack, None
        self._session = None
        self._portal = None
        if stack is None:
            return
        try:
            stack.close()
        except Exception as e:
            # shutdown errors are logged, not raised
            logger.warning(f"[ToolServer] Error while closing connection: {e}")
        else:
            logger.debug("[ToolServer] Connection closed")

    def _require_session(self, op: str):
        if self._session is None:
            raise ToolServerError(f"MCPToolServer.{op}() called without an open connection")
        return self._session

    def discover_tools(self) -> list[ToolDescriptor]:
        session = self._require_session("discover_tools")
        try:
            result = self._portal.call(session.list_tools)
        except Exception as e:
            raise ToolServerError(f"Tool discovery failed: {e}") from e
        return [descriptor_from_mcp_tool(t) for t in result.tools]

    def call_tool(self, name: str, arguments: dict) -> Any:
        session = self._require_session("call_tool")
        try:
            result = self._portal.call(
                functools.partial(session.call_tool, name, arguments=arguments)
            )
        except Exception as e:
            raise ToolServerError(f"Tool '{name}' call failed: {e}") from e
        return payload_from_mcp_result(name, result)
