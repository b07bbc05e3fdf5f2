"""
stdio transport for local MCP clients.

Inbound messages are newline-delimited JSON or Content-Length framed JSON-RPC.
Responses are written to stdout one JSON document per line; logs go to stderr.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any, BinaryIO, Dict, Optional, Set

from swarm_mcp.bee_api import default_client
from swarm_mcp.config import default_config
from swarm_mcp.errors import ErrorCode
from swarm_mcp.logging_config import configure_logging
from swarm_mcp.mcp import McpDispatcher, jsonrpc_error_payload
from swarm_mcp.tools.common import STDIO_TRANSPORT

logger = logging.getLogger(__name__)


def _consume_framing_headers(stream: BinaryIO) -> bool:
    """Skip headers up to the blank separator line; False when the stream ends."""
    while True:
        line = stream.readline()
        if not line:
            return False
        if line in (b"\r\n", b"\n"):
            return True


def read_message(stream: BinaryIO) -> Optional[bytes]:
    """Return the next raw message body, or None at end of input."""
    while True:
        first_line = stream.readline()
        if not first_line:
            return None
        if not first_line.strip():
            continue

        if not first_line.lower().startswith(b"content-length:"):
            return first_line.strip()

        try:
            length = int(first_line.split(b":", 1)[1].strip())
        except ValueError:
            logger.warning("Invalid Content-Length header: %r", first_line)
            if not _consume_framing_headers(stream):
                return None
            continue
        if not _consume_framing_headers(stream):
            return None
        body = stream.read(length)
        if len(body) != length:
            logger.warning("Truncated framed message (%d/%d bytes)", len(body), length)
            return None
        return body


def write_message(stream: BinaryIO, payload: Dict[str, Any]) -> None:
    stream.write(json.dumps(payload).encode("utf-8") + b"\n")
    stream.flush()


class StdioServer:
    """Read messages from ``stdin`` and answer each one concurrently on ``stdout``."""

    def __init__(self, stdin: BinaryIO, stdout: BinaryIO, dispatcher: Optional[McpDispatcher] = None) -> None:
        self.stdin = stdin
        self.stdout = stdout
        self.dispatcher = dispatcher or McpDispatcher(STDIO_TRANSPORT)
        self._tasks: Set["asyncio.Task[None]"] = set()

    async def _handle(self, raw: bytes) -> None:
        try:
            body = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            write_message(self.stdout, jsonrpc_error_payload(None, ErrorCode.PARSE_ERROR, "Parse error"))
            return
        try:
            payload = await self.dispatcher.handle(body)
        except Exception:
            logger.exception("Unexpected error handling stdio message", extra={"transport": STDIO_TRANSPORT})
            if not isinstance(body, dict) or "id" not in body:
                return
            payload = jsonrpc_error_payload(body.get("id"), ErrorCode.INTERNAL_ERROR, "Internal error")
        if payload is not None:
            write_message(self.stdout, payload)

    async def serve(self) -> None:
        while True:
            raw = await asyncio.to_thread(read_message, self.stdin)
            if raw is None:
                break
            task = asyncio.create_task(self._handle(raw))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)


async def _run() -> None:
    server = StdioServer(sys.stdin.buffer, sys.stdout.buffer)
    try:
        await server.serve()
    finally:
        await default_client.aclose()


def main() -> None:
    configure_logging(default_config)
    logger.info("Starting Swarm MCP server on stdio", extra={"transport": STDIO_TRANSPORT})
    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
