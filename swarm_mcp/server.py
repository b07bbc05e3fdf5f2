"""FastAPI application exposing the MCP dispatcher over HTTP and SSE."""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse

from swarm_mcp import __version__
from swarm_mcp.bee_api import default_client
from swarm_mcp.config import default_config
from swarm_mcp.errors import ErrorCode
from swarm_mcp.logging_config import configure_logging
from swarm_mcp.mcp import McpDispatcher, jsonrpc_error_payload
from swarm_mcp.metrics import default_metrics
from swarm_mcp.rate_limiter import PerKeyRateLimiter
from swarm_mcp.sessions import SseSession, default_sessions

logger = logging.getLogger(__name__)
configure_logging(default_config)

rate_limiter = PerKeyRateLimiter(
    rate_per_sec=default_config.rate_limit_qps,
    per_key=default_config.per_tool_rate_limits,
)
http_dispatcher = McpDispatcher("http")
HEALTH_STATUS = {"status": "ok"}
APP_VERSION = __version__
SSE_KEEPALIVE_SECONDS = 15.0
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@asynccontextmanager
async def lifespan(_app: FastAPI):
    # Startup
    logger.info("Swarm MCP server using Bee endpoint %s", default_config.endpoint)
    yield
    # Shutdown
    default_sessions.end_all()
    await default_client.aclose()


app = FastAPI(
    title="Swarm MCP Server",
    description="MCP tools for storing and retrieving data on Swarm through a Bee node.",
    version=APP_VERSION,
    lifespan=lifespan,
)


@app.middleware("http")
async def add_request_context(request: Request, call_next):
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id
    start = time.time()
    default_metrics.incr_request()
    response = await call_next(request)
    duration_ms = (time.time() - start) * 1000
    default_metrics.record_duration(request_id, duration_ms)
    response.headers["X-Request-ID"] = request_id
    return response


def _rate_limit_key(body: Any) -> Optional[str]:
    """Tool calls are limited per tool, catalog requests per method; nothing else is limited."""
    if not isinstance(body, dict):
        return None
    method = body.get("method")
    if method in ("list_tools", "tools/list"):
        return "list_tools"
    if method in ("call_tool", "tools/call"):
        params = body.get("params")
        if isinstance(params, dict):
            name = params.get("name") or params.get("tool")
            if isinstance(name, str) and name:
                return name
        return "call_tool"
    return None


async def _enforce_rate_limit(body: Any) -> Optional[JSONResponse]:
    key = _rate_limit_key(body)
    if key is None:
        return None
    allowed = await rate_limiter.allow(key)
    if not allowed:
        logger.warning("tool=%s outcome=rate_limited", key, extra={"tool": key})
        default_metrics.incr_rate_limited()
        rpc_id = body.get("id") if isinstance(body, dict) else None
        return JSONResponse(
            status_code=429,
            content={"jsonrpc": "2.0", "id": rpc_id, "error": {"code": 429, "message": "Rate limit exceeded"}},
        )
    return None


@app.get("/health")
async def health() -> JSONResponse:
    """Lightweight health endpoint for monitoring."""
    return JSONResponse(content=HEALTH_STATUS)


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Return in-process metrics snapshot."""
    return JSONResponse(content=default_metrics.snapshot())


@app.post("/mcp")
async def mcp_gateway(request: Request) -> Response:
    """
    Stateless JSON-RPC endpoint: every POST carries one complete message.

    Supported methods:
      - initialize
      - ping
      - list_tools / tools/list
      - call_tool / tools/call
      - notifications (acknowledged with 202 and no body)
    """
    request_id = getattr(request.state, "request_id", None)

    try:
        body = await request.json()
    except ValueError:
        payload = jsonrpc_error_payload(None, ErrorCode.PARSE_ERROR, "Parse error")
        return JSONResponse(status_code=400, content=payload)

    if not isinstance(body, dict):
        payload = jsonrpc_error_payload(None, ErrorCode.INVALID_REQUEST, "Invalid request")
        return JSONResponse(status_code=400, content=payload)

    limited = await _enforce_rate_limit(body)
    if limited:
        return limited

    payload = await http_dispatcher.handle(body, request_id=request_id)
    if payload is None:
        return Response(status_code=202)

    logger.debug(
        "mcp method=%s id=%s error=%s",
        body.get("method"),
        body.get("id"),
        payload.get("error", {}).get("code"),
        extra={"request_id": request_id},
    )
    return JSONResponse(content=payload)


@app.get("/mcp")
async def mcp_stream_not_supported() -> JSONResponse:
    payload = jsonrpc_error_payload(None, -32000, "Method not allowed.")
    return JSONResponse(status_code=405, content=payload, headers={"Allow": "POST"})


def _format_event(event: str, data: str) -> str:
    return f"event: {event}\ndata: {data}\n\n"


async def _event_stream(request: Request, session: SseSession) -> AsyncIterator[str]:
    yield _format_event("endpoint", session.endpoint)
    try:
        while True:
            try:
                message = await asyncio.wait_for(session.queue.get(), timeout=SSE_KEEPALIVE_SECONDS)
            except asyncio.TimeoutError:
                if await request.is_disconnected():
                    break
                yield ": keepalive\n\n"
                continue
            if message is None:
                break
            yield _format_event("message", json.dumps(message))
    finally:
        default_sessions.close(session.session_id)
        default_metrics.session_closed()
        logger.info("SSE session closed", extra={"transport": "sse", "request_id": session.session_id})


@app.get("/sse")
async def sse_connect(request: Request) -> Response:
    """Open an SSE session; the first event names the endpoint for client messages."""
    if request.query_params.get("sessionId"):
        return PlainTextResponse(
            "Reconnecting with a session ID is not supported on this endpoint.", status_code=400
        )

    session = default_sessions.open(McpDispatcher("sse"))
    default_metrics.session_opened()
    logger.info("SSE session opened", extra={"transport": "sse", "request_id": session.session_id})
    return StreamingResponse(
        _event_stream(request, session),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@app.post("/message")
async def sse_message(request: Request) -> Response:
    """Receive a client message for an SSE session; the response goes out on the stream."""
    session_id = request.query_params.get("sessionId")
    if not session_id:
        return PlainTextResponse("Session ID is required", status_code=400)

    session = default_sessions.get(session_id)
    if session is None:
        logger.error("No transport found for sessionId %s", session_id, extra={"transport": "sse"})
        return PlainTextResponse("Session not found", status_code=403)

    try:
        body = await request.json()
    except ValueError:
        await session.queue.put(jsonrpc_error_payload(None, ErrorCode.PARSE_ERROR, "Parse error"))
        return PlainTextResponse("Invalid JSON", status_code=400)

    limited = await _enforce_rate_limit(body)
    if limited:
        return limited

    task = asyncio.create_task(
        _dispatch_to_stream(session, body, getattr(request.state, "request_id", None))
    )
    session.tasks.add(task)
    task.add_done_callback(session.tasks.discard)
    return PlainTextResponse("Accepted", status_code=202)


async def _dispatch_to_stream(session: SseSession, body: Any, request_id: Optional[str]) -> None:
    """Handle one client message and queue its response for the session's stream."""
    try:
        payload = await session.dispatcher.handle(body, request_id=request_id)
    except Exception:
        logger.exception("Unexpected error handling SSE message", extra={"transport": "sse", "request_id": request_id})
        if not isinstance(body, dict) or "id" not in body:
            return
        payload = jsonrpc_error_payload(body.get("id"), ErrorCode.INTERNAL_ERROR, "Internal error")
    if payload is not None:
        await session.queue.put(payload)


def main() -> None:
    """Serve the HTTP and SSE transports."""
    uvicorn.run(app, host=default_config.host, port=default_config.port, log_config=None)


# Run with: uvicorn swarm_mcp.server:app --reload

if __name__ == "__main__":
    main()
