"""
In-memory progress tracking for feed import runs.

One ``ProgressTracker`` instance is owned by the application and shared by the
background runs (writers) and the progress endpoint (readers). Every access
goes through a single lock. State is kept until the next run for the same feed
replaces it; nothing is persisted and nothing expires.
"""
from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, Optional

STATUS_IDLE = "idle"
STATUS_DOWNLOADING = "downloading"
STATUS_PARSING = "parsing"
STATUS_IMPORTING = "importing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_CANCELLED = "cancelled"

DEFAULT_LOG_LIMIT = 200
DEFAULT_UPDATE_INTERVAL = 50


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ProgressState:
    feed_id: str
    status: str = STATUS_IDLE
    message: str = ""
    total: int = 0
    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    percent: int = 0
    logs: Deque[str] = field(default_factory=deque)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "feed_id": self.feed_id,
            "status": self.status,
            "message": self.message,
            "total": self.total,
            "processed": self.processed,
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": self.errors,
            "percent": self.percent,
            "logs": list(self.logs),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


class ProgressTracker:
    """Thread-safe map of feed id -> ProgressState."""

    def __init__(self, log_limit: int = DEFAULT_LOG_LIMIT, update_interval: int = DEFAULT_UPDATE_INTERVAL):
        self._states: Dict[str, ProgressState] = {}
        self._lock = threading.Lock()
        self._log_limit = max(1, log_limit)
        self._update_interval = max(1, update_interval)

    def start(self, feed_id: str, message: str = "", status: str = STATUS_DOWNLOADING) -> None:
        """Replace any previous state for ``feed_id`` with a fresh run."""
        state = ProgressState(
            feed_id=feed_id,
            status=status,
            message=message,
            logs=deque(maxlen=self._log_limit),
            started_at=_utcnow(),
        )
        if message:
            state.logs.append(message)
        with self._lock:
            self._states[feed_id] = state

    def set_status(self, feed_id: str, status: str, message: Optional[str] = None) -> None:
        with self._lock:
            state = self._states.get(feed_id)
            if state is None:
                return
            state.status = status
            if message is not None:
                state.message = message

    def set_total(self, feed_id: str, total: int) -> None:
        with self._lock:
            state = self._states.get(feed_id)
            if state is not None:
                state.total = total

    def add_log(self, feed_id: str, line: str) -> None:
        with self._lock:
            state = self._states.get(feed_id)
            if state is not None:
                state.logs.append(line)

    def record_outcome(self, feed_id: str, outcome: str) -> None:
        """
        Count one attempted record.

        ``outcome`` is one of created/updated/skipped/error. Counters move on
        every call; percent and the status message are only recomputed every
        ``update_interval`` records and on the last one.
        """
        with self._lock:
            state = self._states.get(feed_id)
            if state is None:
                return
            state.processed += 1
            if outcome == "created":
                state.created += 1
            elif outcome == "updated":
                state.updated += 1
            elif outcome == "skipped":
                state.skipped += 1
            else:
                state.errors += 1

            if state.processed % self._update_interval == 0 or state.processed >= state.total:
                if state.total:
                    state.percent = min(100, (state.processed * 100) // state.total)
                state.message = f"Processed {state.processed}/{state.total}"

    def finish(self, feed_id: str, status: str, message: str = "") -> None:
        """Move the run to a terminal status and freeze its counters."""
        with self._lock:
            state = self._states.get(feed_id)
            if state is None:
                return
            state.status = status
            if message:
                state.message = message
                state.logs.append(message)
            if status == STATUS_COMPLETED:
                state.processed = state.total
                state.percent = 100
            elif state.total:
                state.percent = min(100, (state.processed * 100) // state.total)
            state.finished_at = _utcnow()

    def snapshot(self, feed_id: str) -> Optional[Dict[str, Any]]:
        """Return a copy of the current state, or None if no run was ever recorded."""
        with self._lock:
            state = self._states.get(feed_id)
            return state.to_dict() if state is not None else None
