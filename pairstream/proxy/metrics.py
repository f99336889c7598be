"""Thread-safe event collector for the chat endpoint."""

from __future__ import annotations

import statistics
import threading
import time
from collections import Counter, deque
from datetime import datetime, timezone

RECENT_LIMIT = 50


class ProxyMetrics:
    """Collects structured events from the chat pipeline.

    Event types: ``request`` (one per accepted chat request), ``summary``,
    ``context``, ``segment`` (one per backend generation call), ``response``
    (one per finished turn) and ``error``. Only the newest ``max_events``
    are retained; per-type totals count everything since start.
    """

    def __init__(self, max_events: int = 5000) -> None:
        self.start_time: float = time.time()
        self._events: deque[dict] = deque(maxlen=max_events)
        self._totals: Counter[str] = Counter()
        self._lock = threading.Lock()
        self._seq = 0

    def record(self, event: dict) -> None:
        """Store a copy of *event* stamped with ``_seq`` and ``ts``."""
        stamped = {**event, "_seq": 0}
        stamped.setdefault("ts", datetime.now(timezone.utc).isoformat())
        with self._lock:
            stamped["_seq"] = self._seq
            self._seq += 1
            self._totals[stamped.get("type", "unknown")] += 1
            self._events.append(stamped)

    def events_since(self, seq: int) -> list[dict]:
        with self._lock:
            return [e for e in self._events if e["_seq"] > seq]

    def _of_type(self, kind: str) -> list[dict]:
        return [e for e in self._events if e.get("type") == kind]

    def snapshot(self) -> dict:
        """Totals since start plus averages over the retained events."""
        with self._lock:
            requests = self._of_type("request")
            summaries = self._of_type("summary")
            segments = self._of_type("segment")
            responses = self._of_type("response")
            errors = self._of_type("error")
            totals = dict(self._totals)

        summary_ms = [s["duration_ms"] for s in summaries if "duration_ms" in s]
        response_ms = [r["duration_ms"] for r in responses if "duration_ms" in r]
        cached = sum(1 for s in summaries if s.get("cached"))

        return {
            "type": "snapshot",
            "uptime_s": round(time.time() - self.start_time, 1),
            "total_requests": totals.get("request", 0),
            "total_summaries": totals.get("summary", 0),
            "summary_cache_hits": cached,
            "summary_cache_hit_rate": round(cached / len(summaries), 3) if summaries else 0,
            "total_context_selections": totals.get("context", 0),
            "total_segments": totals.get("segment", 0),
            "total_continuations": sum(1 for s in segments if s.get("index", 0) > 0),
            "segment_limit_hits": sum(
                1 for r in responses if r.get("state") == "segment_limit_exceeded"
            ),
            "total_errors": totals.get("error", 0),
            "total_prompt_tokens": sum(r.get("prompt_tokens", 0) for r in responses),
            "total_completion_tokens": sum(r.get("completion_tokens", 0) for r in responses),
            "avg_summary_ms": round(statistics.mean(summary_ms), 1) if summary_ms else 0,
            "avg_response_ms": round(statistics.mean(response_ms), 1) if response_ms else 0,
            "recent_requests": requests[-RECENT_LIMIT:],
            "responses": responses[-RECENT_LIMIT:],
            "errors": errors[-RECENT_LIMIT:],
        }
