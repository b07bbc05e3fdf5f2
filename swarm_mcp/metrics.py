"""In-process counters for requests, tool outcomes and SSE sessions (single process only)."""

from __future__ import annotations

from collections import Counter, deque
from threading import Lock
from typing import Deque, Dict, Tuple

RECENT_DURATIONS = 100


class MetricsRecorder:
    def __init__(self, *, recent: int = RECENT_DURATIONS) -> None:
        self._lock = Lock()
        self._requests = 0
        self._rate_limited = 0
        self._durations_ms: Deque[Tuple[str, float]] = deque(maxlen=recent)
        self._tool_success: Counter[str] = Counter()
        self._tool_error: Counter[str] = Counter()
        self._sse_opened = 0
        self._sse_active = 0

    def incr_request(self) -> None:
        with self._lock:
            self._requests += 1

    def record_duration(self, request_id: str, duration_ms: float) -> None:
        with self._lock:
            self._durations_ms.append((request_id, duration_ms))

    def incr_rate_limited(self) -> None:
        with self._lock:
            self._rate_limited += 1

    def record_tool(self, tool: str, *, success: bool) -> None:
        with self._lock:
            if success:
                self._tool_success[tool] += 1
            else:
                self._tool_error[tool] += 1

    def session_opened(self) -> None:
        with self._lock:
            self._sse_opened += 1
            self._sse_active += 1

    def session_closed(self) -> None:
        with self._lock:
            self._sse_active = max(self._sse_active - 1, 0)

    def snapshot(self) -> Dict[str, object]:
        with self._lock:
            return {
                "requests": self._requests,
                "rate_limited": self._rate_limited,
                "tool_success": dict(self._tool_success),
                "tool_error": dict(self._tool_error),
                "sse_sessions": {"opened": self._sse_opened, "active": self._sse_active},
                "recent_request_durations_ms": dict(self._durations_ms),
            }

    def reset(self) -> None:
        with self._lock:
            self._requests = 0
            self._rate_limited = 0
            self._durations_ms.clear()
            self._tool_success.clear()
            self._tool_error.clear()
            self._sse_opened = 0
            self._sse_active = 0


default_metrics = MetricsRecorder()
