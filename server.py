"""HTTP service exposing conversation turns as JSON and as Server-Sent Events."""

from __future__ import annotations

import threading
from typing import Any, Literal, Optional

from fastapi import Depends, FastAPI
from fastapi.concurrency import iterate_in_threadpool, run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

import config
from agent.core import DataChatAgent, TurnError, TurnRequest
from agent.events import PROGRESS, RESULT, STEP_INIT, ProgressEvent, format_sse
from agent.llm import Message
from agent.logging import get_logger
from rendering import build_charts, extract_vega_lite_specs

logger = get_logger()

app = FastAPI(title="DataChat Agent Service")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(config.CORS_ORIGINS),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_agent: Optional[DataChatAgent] = None
_agent_lock = threading.Lock()


def get_agent() -> DataChatAgent:
    """Process-wide agent, created on first use."""
    global _agent
    with _agent_lock:
        if _agent is None:
            _agent = DataChatAgent()
        return _agent


class ChatMessage(BaseModel):
    """One prior conversation message."""

    role: Literal["user", "assistant", "system"]
    content: str = ""
    id: Optional[str] = None


class ChatRequest(BaseModel):
    """Request payload for a conversation turn."""

    query: str = Field(..., min_length=1)
    messages: list[ChatMessage] = Field(default_factory=list)

    def to_turn_request(self) -> TurnRequest:
        prior = [Message.from_dict(m.model_dump(exclude_none=True)) for m in self.messages]
        return TurnRequest(query=self.query, prior_messages=prior)


def chart_payload(result: dict[str, Any]) -> dict[str, Any]:
    """Charts inferred from a turn's wire result."""
    tool_results = result.get("toolResults") or []
    try:
        charts = build_charts(tool_results, result.get("response"))
        vega = extract_vega_lite_specs(tool_results)
    except Exception as e:
        logger.warning(f"[Charts] Chart inference failed: {e}")
        return {"charts": [], "vegaCharts": []}
    return {
        "charts": [c.to_dict() for c in charts],
        "vegaCharts": [v.to_dict() for v in vega],
    }


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/api/mcp-chat")
def mcp_chat(request: ChatRequest, agent: DataChatAgent = Depends(get_agent)):
    """Run a turn and return the complete result."""
    try:
        result = agent.ask(request.to_turn_request())
    except TurnError as e:
        return JSONResponse(status_code=500, content=e.to_dict())
    body = result.to_dict()
    body.update(chart_payload(body))
    return body


@app.post("/api/mcp-chat-stream")
async def mcp_chat_stream(request: ChatRequest, agent: DataChatAgent = Depends(get_agent)) -> StreamingResponse:
    """Run a turn and stream its progress events via SSE."""
    turn = request.to_turn_request()

    async def event_generator():
        yield format_sse(ProgressEvent(kind=PROGRESS, step=STEP_INIT, message="Connection established"))
        cancel_event = threading.Event()
        try:
            async for event in iterate_in_threadpool(agent.stream_turn(turn, cancel_event)):
                if event.kind == RESULT:
                    payload = dict(event.payload or {})
                    payload.update(await run_in_threadpool(chart_payload, payload))
                    event = ProgressEvent(kind=RESULT, payload=payload)
                yield format_sse(event)
        finally:
            # Client gone or turn finished; a no-op in the latter case
            cancel_event.set()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


def main() -> None:
    import uvicorn

    from agent.logging import setup_logging

    setup_logging(verbose=False)
    uvicorn.run(app, host=config.SERVER_HOST, port=config.SERVER_PORT)


if __name__ == "__main__":
    main()
