"""Agent records tracked by the registry."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class AgentStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    BUSY = "busy"


AGENT_STATUS_VALUES = [s.value for s in AgentStatus]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Agent:
    """A registered agent and its current workload.

    ``active_tasks`` holds the ids of open tasks the agent owns; its length
    is the agent's workload. ``current_task`` (``{id, title}``) is what a
    dashboard shows: the agent counts as working iff it is set.
    """

    id: str
    name: str = ""
    emoji: Optional[str] = None
    roles: list[str] = field(default_factory=list)
    model: Optional[str] = None
    workspace: Optional[str] = None
    status: AgentStatus = AgentStatus.OFFLINE
    current_task: Optional[dict[str, Any]] = None
    active_tasks: list[str] = field(default_factory=list)
    last_heartbeat: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=_now_iso)
    updated_at: str = field(default_factory=_now_iso)

    @property
    def workload(self) -> int:
        return len(self.active_tasks)

    @property
    def is_available(self) -> bool:
        return self.status != AgentStatus.OFFLINE

    @property
    def is_working(self) -> bool:
        return self.current_task is not None

    def touch(self) -> None:
        self.updated_at = _now_iso()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "emoji": self.emoji,
            "roles": list(self.roles),
            "model": self.model,
            "workspace": self.workspace,
            "status": self.status.value,
            "current_task": dict(self.current_task) if self.current_task else None,
            "active_tasks": list(self.active_tasks),
            "workload": self.workload,
            "last_heartbeat": self.last_heartbeat,
            "metadata": dict(self.metadata),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Agent":
        try:
            status = AgentStatus(str(data.get("status") or AgentStatus.OFFLINE.value))
        except ValueError:
            status = AgentStatus.OFFLINE
        current = data.get("current_task")
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or data["id"]),
            emoji=data.get("emoji"),
            roles=[str(r) for r in data.get("roles") or []],
            model=data.get("model"),
            workspace=data.get("workspace"),
            status=status,
            current_task=dict(current) if isinstance(current, dict) else None,
            active_tasks=[str(t) for t in data.get("active_tasks") or []],
            last_heartbeat=data.get("last_heartbeat"),
            metadata=dict(data.get("metadata") or {}),
            created_at=str(data.get("created_at") or _now_iso()),
            updated_at=str(data.get("updated_at") or _now_iso()),
        )
