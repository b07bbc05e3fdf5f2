"""Registry of open SSE sessions, keyed by session id."""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Set

from swarm_mcp.mcp import McpDispatcher


@dataclass
class SseSession:
    session_id: str
    dispatcher: McpDispatcher
    # Outgoing JSON-RPC payloads; ``None`` ends the stream.
    queue: "asyncio.Queue[Optional[Dict[str, Any]]]" = field(default_factory=asyncio.Queue)
    # In-flight dispatches whose responses are still to be queued.
    tasks: Set["asyncio.Task[None]"] = field(default_factory=set)

    @property
    def endpoint(self) -> str:
        return f"/message?sessionId={self.session_id}"


class SessionRegistry:
    def __init__(self) -> None:
        self._sessions: Dict[str, SseSession] = {}

    def open(self, dispatcher: McpDispatcher) -> SseSession:
        session = SseSession(session_id=str(uuid.uuid4()), dispatcher=dispatcher)
        self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> Optional[SseSession]:
        return self._sessions.get(session_id)

    def close(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def end_all(self) -> None:
        """Ask every open stream to finish."""
        for session in list(self._sessions.values()):
            session.queue.put_nowait(None)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions


default_sessions = SessionRegistry()
