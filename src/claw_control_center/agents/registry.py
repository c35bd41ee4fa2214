"""Agent registry: the file-backed collection of agents and their workload.

Agents are kept in registration order. That order is the tie-break used by
least-load selection, so re-registering an agent never moves it.
``active_tasks`` is changed by the assignment engine under its lock; the
registry only stores it and accepts it back on registration.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

from ..constants import AGENTS_FILE, AGENTS_LOCK_FILE, DEFAULT_STALE_AGENT_SECONDS
from ..errors import NotFoundError, ValidationError
from ..storage import YamlCollection
from ..utils import _age_seconds, _now_iso
from .model import AGENT_STATUS_VALUES, Agent, AgentStatus

logger = logging.getLogger(__name__)

# Fields ``register`` copies from the payload onto the record.
_REGISTRATION_FIELDS = ("name", "emoji", "roles", "model", "workspace", "metadata")


def _coerce_status(status: Any) -> AgentStatus:
    value = str(getattr(status, "value", status))
    if value not in AGENT_STATUS_VALUES:
        raise ValidationError(f"'status' must be one of {AGENT_STATUS_VALUES}, got '{status}'")
    return AgentStatus(value)


def _coerce_current_task(current_task: Any) -> Optional[dict[str, Any]]:
    if current_task is None:
        return None
    if isinstance(current_task, str):
        return {"id": current_task, "title": None}
    if isinstance(current_task, dict) and current_task.get("id"):
        return {"id": str(current_task["id"]), "title": current_task.get("title")}
    raise ValidationError("'current_task' must be a task id or an object with an 'id'")


class AgentRegistry:
    """Thread-safe, file-backed registry of :class:`Agent` records.

    Parameters
    ----------
    state_dir:
        Path to the ``.clawhub/`` directory for the project.
    """

    def __init__(self, state_dir: Path) -> None:
        self.store = YamlCollection[Agent](
            state_dir / AGENTS_FILE,
            state_dir / AGENTS_LOCK_FILE,
            "agents",
            loader=Agent.from_dict,
            dumper=Agent.to_dict,
            key_of=lambda a: a.id,
        )

    # -- registration -------------------------------------------------------

    def register(self, data: dict[str, Any]) -> Agent:
        """Create or update an agent keyed by ``data["id"]``.

        New agents are appended (registration order). An existing agent keeps
        its position, ``created_at`` and, unless supplied, its ``active_tasks``.
        """
        agent_id = data.get("id")
        if not isinstance(agent_id, str) or not agent_id.strip():
            raise ValidationError("Agent 'id' is required")
        roles = data.get("roles")
        if roles is not None and (
            not isinstance(roles, list) or not all(isinstance(r, str) for r in roles)
        ):
            raise ValidationError("'roles' must be an array of strings")
        status = _coerce_status(data["status"]) if data.get("status") else None
        current_task = _coerce_current_task(data.get("current_task"))

        with self.store.transaction() as tx:
            agent = tx.get(agent_id)
            created = agent is None
            if agent is None:
                agent = Agent(id=agent_id, name=agent_id)
                tx.add(agent)
            for key in _REGISTRATION_FIELDS:
                if data.get(key) is not None:
                    setattr(agent, key, list(data[key]) if key == "roles" else data[key])
            if "active_tasks" in data and data["active_tasks"] is not None:
                agent.active_tasks = [str(t) for t in data["active_tasks"]]
            if status is not None:
                agent.status = status
            if current_task is not None:
                agent.current_task = current_task
            if status is not None and status != AgentStatus.OFFLINE:
                agent.last_heartbeat = _now_iso()
            agent.touch()
            tx.mark_dirty()

        if created:
            logger.info("Registered agent %s (roles=%s)", agent.id, ",".join(agent.roles) or "-")
        return agent

    def heartbeat(
        self,
        agent_id: str,
        status: Optional[str] = None,
        current_task: Any = None,
    ) -> Agent:
        """Record liveness. An offline agent comes back online unless *status* says otherwise.

        ``current_task`` is only changed when given; use :meth:`set_current_task`
        to clear it.
        """
        new_status = _coerce_status(status) if status else None
        task_info = _coerce_current_task(current_task)
        with self.store.transaction() as tx:
            agent = self._require(tx, agent_id)
            if new_status is not None:
                agent.status = new_status
            elif agent.status == AgentStatus.OFFLINE:
                agent.status = AgentStatus.ONLINE
            if task_info is not None:
                agent.current_task = task_info
            agent.last_heartbeat = _now_iso()
            agent.touch()
            tx.mark_dirty()
        return agent

    def update_status(self, agent_id: str, status: str, current_task: Any = None) -> Agent:
        new_status = _coerce_status(status)
        task_info = _coerce_current_task(current_task)
        with self.store.transaction() as tx:
            agent = self._require(tx, agent_id)
            agent.status = new_status
            if task_info is not None:
                agent.current_task = task_info
            agent.last_heartbeat = _now_iso()
            agent.touch()
            tx.mark_dirty()
        return agent

    def set_current_task(self, agent_id: str, task: Any) -> Agent:
        """Point the agent at *task* (``{id, title}`` or id), or clear it with None."""
        task_info = _coerce_current_task(task)
        with self.store.transaction() as tx:
            agent = self._require(tx, agent_id)
            agent.current_task = task_info
            agent.touch()
            tx.mark_dirty()
        return agent

    # -- queries ------------------------------------------------------------

    def get(self, agent_id: str) -> Optional[Agent]:
        return self.store.get_one(agent_id)

    def require(self, agent_id: str) -> Agent:
        agent = self.store.get_one(agent_id)
        if agent is None:
            raise NotFoundError("Agent", agent_id)
        return agent

    def list_agents(self, status: Optional[str] = None, role: Optional[str] = None) -> list[Agent]:
        """All agents in registration order, optionally filtered."""
        if status:
            _coerce_status(status)
        agents = self.store.read_snapshot()
        if status:
            agents = [a for a in agents if a.status.value == status]
        if role:
            agents = [a for a in agents if role in a.roles]
        return agents

    def available(self) -> list[Agent]:
        """Agents that may receive work (anything but offline)."""
        return [a for a in self.store.read_snapshot() if a.is_available]

    def workload(self, agent_id: str) -> int:
        return self.require(agent_id).workload

    # -- removal ------------------------------------------------------------

    def prune_stale(self, max_age_seconds: int = DEFAULT_STALE_AGENT_SECONDS) -> list[str]:
        """Remove agents whose last heartbeat is older than *max_age_seconds*.

        Agents that still own active tasks are kept.
        """
        removed: list[str] = []
        with self.store.transaction() as tx:
            for agent in tx.list_all():
                if agent.active_tasks:
                    continue
                age = _age_seconds(agent.last_heartbeat or agent.updated_at)
                if age is not None and age > max_age_seconds:
                    tx.remove(agent.id)
                    removed.append(agent.id)
        if removed:
            logger.info("Pruned %d stale agents: %s", len(removed), ", ".join(removed))
        return removed

    def delete(self, agent_id: str) -> None:
        with self.store.transaction() as tx:
            agent = self._require(tx, agent_id)
            if agent.active_tasks:
                raise ValidationError(
                    f"Agent {agent_id} still owns open tasks: {agent.active_tasks}"
                )
            tx.remove(agent_id)
        logger.info("Deleted agent %s", agent_id)

    @staticmethod
    def _require(tx: Any, agent_id: str) -> Agent:
        agent = tx.get(agent_id)
        if agent is None:
            raise NotFoundError("Agent", agent_id)
        return agent
