"""Append-only activity feed (``.clawhub/activity.jsonl``)."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Optional

from .constants import ACTIVITY_FILE, ACTIVITY_LOCK_FILE, DEFAULT_MAX_ACTIVITY_EVENTS
from .io_utils import FileLock, _append_event, _read_jsonl, _rewrite_jsonl
from .utils import _now_iso

logger = logging.getLogger(__name__)


class ActivityLog:
    """Capped JSONL log of board events, oldest lines trimmed first."""

    def __init__(self, state_dir: Path, max_events: int = DEFAULT_MAX_ACTIVITY_EVENTS) -> None:
        self._path = state_dir / ACTIVITY_FILE
        self._lock = FileLock(state_dir / ACTIVITY_LOCK_FILE)
        self._thread_lock = threading.RLock()
        self.max_events = max_events

    def record(
        self,
        event_type: str,
        *,
        task_id: Optional[str] = None,
        agent_id: Optional[str] = None,
        **details: Any,
    ) -> dict[str, Any]:
        """Append an event. Failures are logged, never raised to the caller."""
        payload: dict[str, Any] = {"ts": _now_iso(), "type": event_type}
        if task_id:
            payload["task_id"] = task_id
        if agent_id:
            payload["agent_id"] = agent_id
        if details:
            payload["details"] = details
        try:
            with self._thread_lock, self._lock:
                _append_event(self._path, payload)
                events = _read_jsonl(self._path)
                if len(events) > self.max_events:
                    _rewrite_jsonl(self._path, events[-self.max_events:])
        except OSError:
            logger.exception("Failed to append activity event %s", event_type)
        return payload

    def recent(self, limit: int = 50) -> list[dict[str, Any]]:
        """Newest-last slice of the feed."""
        if limit < 1:
            return []
        with self._thread_lock, self._lock:
            events = _read_jsonl(self._path)
        return events[-limit:]

    def for_task(self, task_id: str, limit: int = 50) -> list[dict[str, Any]]:
        if limit < 1:
            return []
        with self._thread_lock, self._lock:
            events = _read_jsonl(self._path)
        return [e for e in events if e.get("task_id") == task_id][-limit:]
