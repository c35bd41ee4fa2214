"""Task model for the control-center board.

A task sits in exactly one *lane* and records every lane change in an
append-only ``status_history``. ``depends_on`` is the only stored side of
the dependency graph; the reverse ``blocks`` view is derived by the store.
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Lane(str, Enum):
    """Kanban column / workflow stage."""

    PROPOSED = "proposed"
    QUEUED = "queued"
    DEVELOPMENT = "development"
    REVIEW = "review"
    BLOCKED = "blocked"
    DONE = "done"


class TaskPriority(str, Enum):
    """Priority level, P0 is most urgent."""

    P0 = "P0"  # Critical / drop everything
    P1 = "P1"  # High
    P2 = "P2"  # Medium (default)
    P3 = "P3"  # Low / nice-to-have

    @property
    def sort_key(self) -> int:
        return {"P0": 0, "P1": 1, "P2": 2, "P3": 3}[self.value]


LANE_VALUES = [lane.value for lane in Lane]
PRIORITY_VALUES = [p.value for p in TaskPriority]


# ---------------------------------------------------------------------------
# Helper
# ---------------------------------------------------------------------------

def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _generate_id() -> str:
    """Short human-friendly task ID: ``task-<8hex>``."""
    return f"task-{uuid.uuid4().hex[:8]}"


def _empty_work() -> dict[str, Any]:
    return {"commits": [], "files": [], "test_results": None, "artifacts": []}


# ---------------------------------------------------------------------------
# Task dataclass
# ---------------------------------------------------------------------------

@dataclass
class Task:
    """A unit of work on the board, owned by at most one agent."""

    # Identity
    id: str = field(default_factory=_generate_id)
    title: str = ""
    description: str = ""

    # Workflow
    lane: Lane = Lane.PROPOSED
    priority: TaskPriority = TaskPriority.P2
    owner: Optional[str] = None
    status_history: list[dict[str, Any]] = field(default_factory=list)

    # Hierarchy / grouping
    parent_id: Optional[str] = None
    project_id: Optional[str] = None
    tags: list[str] = field(default_factory=list)

    # Work definition
    acceptance_criteria: list[str] = field(default_factory=list)
    depends_on: list[str] = field(default_factory=list)

    # Collaboration and effort tracking
    comments: list[dict[str, Any]] = field(default_factory=list)
    estimated_hours: Optional[float] = None
    actual_hours: float = 0.0
    time_entries: list[dict[str, Any]] = field(default_factory=list)
    work: dict[str, Any] = field(default_factory=_empty_work)

    # Provenance
    created_by: Optional[str] = None
    created_at: str = field(default_factory=_now_iso)
    updated_at: str = field(default_factory=_now_iso)

    # Extensible metadata
    metadata: dict[str, Any] = field(default_factory=dict)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @classmethod
    def validate_dict(cls, data: dict[str, Any]) -> list[str]:
        """Lightweight validation of a task payload.

        Returns a list of error strings (empty = valid). Only the keys that
        are present are checked, so the same function serves creation input
        and update patches.
        """
        errors: list[str] = []
        if not isinstance(data, dict):
            return ["Expected a dict"]
        if "title" in data:
            title = data.get("title")
            if not isinstance(title, str) or not title.strip():
                errors.append("'title' is required and must be non-empty")
        lane = data.get("lane")
        if lane is not None and str(getattr(lane, "value", lane)) not in LANE_VALUES:
            errors.append(f"'lane' must be one of {LANE_VALUES}, got '{lane}'")
        priority = data.get("priority")
        if priority is not None and str(getattr(priority, "value", priority)) not in PRIORITY_VALUES:
            errors.append(f"'priority' must be one of {PRIORITY_VALUES}, got '{priority}'")
        for list_field in ("tags", "acceptance_criteria", "depends_on"):
            val = data.get(list_field)
            if val is not None and not isinstance(val, list):
                errors.append(f"'{list_field}' must be an array")
        for str_field in ("description", "owner", "parent_id", "project_id", "created_by"):
            val = data.get(str_field)
            if val is not None and not isinstance(val, str):
                errors.append(f"'{str_field}' must be a string")
        estimate = data.get("estimated_hours")
        if estimate is not None:
            if isinstance(estimate, bool) or not isinstance(estimate, (int, float)) or estimate < 0:
                errors.append("'estimated_hours' must be a non-negative number")
        metadata = data.get("metadata")
        if metadata is not None and not isinstance(metadata, dict):
            errors.append("'metadata' must be an object")
        return errors

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict for YAML/JSON persistence."""
        data: dict[str, Any] = {}
        for k, v in asdict(self).items():
            if isinstance(v, Enum):
                data[k] = v.value
            else:
                data[k] = v
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        """Deserialize from a plain dict, coercing enums gracefully."""
        d = dict(data)

        def _enum(enum_cls: type[Enum], key: str, default: Enum) -> Enum:
            raw = d.pop(key, None)
            if raw is None:
                return default
            if isinstance(raw, enum_cls):
                return raw
            try:
                return enum_cls(str(raw))
            except (ValueError, KeyError):
                return default

        lane = _enum(Lane, "lane", Lane.PROPOSED)
        priority = _enum(TaskPriority, "priority", TaskPriority.P2)
        work = _empty_work()
        work.update(dict(d.pop("work", {}) or {}))
        estimate = d.pop("estimated_hours", None)

        return cls(
            id=str(d.pop("id", _generate_id())),
            title=str(d.pop("title", "")),
            description=str(d.pop("description", "") or ""),
            lane=lane,
            priority=priority,
            owner=d.pop("owner", None),
            status_history=[dict(h) for h in d.pop("status_history", []) or []],
            parent_id=d.pop("parent_id", None),
            project_id=d.pop("project_id", None),
            tags=list(d.pop("tags", []) or []),
            acceptance_criteria=list(d.pop("acceptance_criteria", []) or []),
            depends_on=list(d.pop("depends_on", []) or []),
            comments=[dict(c) for c in d.pop("comments", []) or []],
            estimated_hours=float(estimate) if estimate is not None else None,
            actual_hours=float(d.pop("actual_hours", 0.0) or 0.0),
            time_entries=[dict(e) for e in d.pop("time_entries", []) or []],
            work=work,
            created_by=d.pop("created_by", None),
            created_at=str(d.pop("created_at", _now_iso())),
            updated_at=str(d.pop("updated_at", _now_iso())),
            metadata=dict(d.pop("metadata", {}) or {}),
        )

    def copy(self) -> "Task":
        return copy.deepcopy(self)

    # ------------------------------------------------------------------
    # Lifecycle helpers
    # ------------------------------------------------------------------

    def touch(self) -> None:
        """Bump ``updated_at`` to now."""
        self.updated_at = _now_iso()

    def record_creation(self, note: str = "created") -> None:
        """Seed the history with the creation entry (no ``from`` lane)."""
        self.status_history = [{"at": self.created_at, "to": self.lane.value, "note": note}]

    def move_to(self, lane: Lane, note: Optional[str] = None) -> bool:
        """Move to *lane*, appending a history entry.

        Returns False (and records nothing) when the task is already there.
        """
        if lane == self.lane:
            return False
        now = _now_iso()
        self.status_history.append(
            {"at": now, "from": self.lane.value, "to": lane.value, "note": note}
        )
        self.lane = lane
        self.updated_at = now
        return True

    @property
    def is_done(self) -> bool:
        return self.lane == Lane.DONE

    # ------------------------------------------------------------------
    # Dependency helpers
    # ------------------------------------------------------------------

    def remove_dependency(self, task_id: str) -> bool:
        if task_id not in self.depends_on:
            return False
        self.depends_on = [d for d in self.depends_on if d != task_id]
        self.touch()
        return True
