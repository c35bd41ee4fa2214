"""Assignment engine: routes unowned tasks to the least-loaded matching agent.

Every operation that reads or changes agent workload runs under one
process-wide lock, so a batch of assignments is strictly sequential and each
selection sees the workload written by the previous one. Inside that lock
the task store and the agent registry are always entered in the same order
(tasks, then agents).
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional

from ..agents.model import Agent, AgentStatus
from ..agents.registry import AgentRegistry
from ..constants import AUTO_ASSIGN_SOURCE, DEV_ROLES
from ..errors import NotFoundError, ValidationError
from ..notifications import NotificationStore
from ..storage import StoreCorruptedError
from ..tasks.engine import TaskEngine
from ..tasks.model import Task
from .roles import DEFAULT_ROLE_TABLE, RoleTable, analyze_task_roles, ordered_roles
from .selection import find_best_agent

logger = logging.getLogger(__name__)


class AssignmentStatus(str, Enum):
    ASSIGNED = "assigned"
    ALREADY_ASSIGNED = "already-assigned"
    NO_CANDIDATE = "no-candidate"


@dataclass
class AssignmentResult:
    """Outcome of an assignment attempt. ``NO_CANDIDATE`` is not an error."""

    status: AssignmentStatus
    task: Task
    agent: Optional[Agent] = None
    roles: list[str] = field(default_factory=list)

    @property
    def assigned(self) -> bool:
        return self.status == AssignmentStatus.ASSIGNED

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "assigned": self.assigned,
            "task": self.task.to_dict(),
            "agent": self.agent.to_dict() if self.agent else None,
            "roles": list(self.roles),
        }


def _task_info(task: Task) -> dict[str, Any]:
    return {"id": task.id, "title": task.title or "Untitled task"}


class AssignmentEngine:
    """Auto and manual assignment over a task engine and an agent registry."""

    def __init__(
        self,
        tasks: TaskEngine,
        agents: AgentRegistry,
        notifications: Optional[NotificationStore] = None,
        role_table: RoleTable = DEFAULT_ROLE_TABLE,
        dev_roles: Iterable[str] = DEV_ROLES,
    ) -> None:
        self.tasks = tasks
        self.agents = agents
        self.notifications = notifications
        self.role_table = role_table
        self.dev_roles = tuple(dev_roles)
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Role inference
    # ------------------------------------------------------------------

    def roles_for(self, task: Task) -> list[str]:
        roles = analyze_task_roles(task.title, task.description, self.role_table)
        return ordered_roles(roles, self.role_table)

    # ------------------------------------------------------------------
    # Auto assignment
    # ------------------------------------------------------------------

    def auto_assign_task(self, task_id: str) -> AssignmentResult:
        """Assign *task_id* to the least-loaded matching agent.

        A task that already has an owner is left alone (``already-assigned``).
        """
        with self._lock:
            with self.tasks.store.transaction() as ttx:
                task = ttx.get(task_id)
                if task is None:
                    raise NotFoundError("Task", task_id)
                roles = self.roles_for(task)
                if task.owner:
                    return AssignmentResult(AssignmentStatus.ALREADY_ASSIGNED, task.copy(), roles=roles)
                if task.is_done:
                    raise ValidationError(f"Task {task_id} is done and cannot be assigned")
                with self.agents.store.transaction() as atx:
                    agent = find_best_agent(roles, atx.list_all(), self.dev_roles)
                    if agent is not None:
                        self._attach(agent, task)
                        atx.mark_dirty()
                        task.owner = agent.id
                        task.touch()
                        ttx.mark_dirty()
                result = AssignmentResult(
                    AssignmentStatus.ASSIGNED if agent else AssignmentStatus.NO_CANDIDATE,
                    task.copy(),
                    agent=agent,
                    roles=roles,
                )

        if result.agent is None:
            logger.info("No candidate for task %s (roles=%s)", task_id, ",".join(roles))
            self.tasks.activity.record("task.assignment_skipped", task_id=task_id, roles=roles)
            return result
        logger.info(
            "Auto-assigned task %s to %s (workload=%d)", task_id, result.agent.id, result.agent.workload
        )
        self.tasks.activity.record(
            "task.assigned", task_id=task_id, agent_id=result.agent.id, source=AUTO_ASSIGN_SOURCE, roles=roles
        )
        self._notify_assigned(result.agent.id, result.task, AUTO_ASSIGN_SOURCE)
        return result

    def auto_assign_tasks(self, task_ids: list[str]) -> list[AssignmentResult]:
        """Assign a batch one task at a time, in order."""
        with self._lock:
            return [self.auto_assign_task(task_id) for task_id in task_ids]

    def suggest(self, task_id: str) -> dict[str, Any]:
        """Preview the roles and agent auto-assignment would pick. Changes nothing."""
        task = self.tasks.require_task(task_id)
        roles = self.roles_for(task)
        with self._lock:
            agent = find_best_agent(roles, self.agents.list_agents(), self.dev_roles)
        return {
            "task_id": task.id,
            "owner": task.owner,
            "roles": roles,
            "agent": (
                {"id": agent.id, "name": agent.name, "workload": agent.workload} if agent else None
            ),
        }

    # ------------------------------------------------------------------
    # Manual assignment
    # ------------------------------------------------------------------

    def assign_task(self, task_id: str, agent_id: str, source: str = "manual") -> AssignmentResult:
        """Give *task_id* to *agent_id*, moving it off the previous owner's workload."""
        with self._lock:
            with self.tasks.store.transaction() as ttx:
                task = ttx.get(task_id)
                if task is None:
                    raise NotFoundError("Task", task_id)
                roles = self.roles_for(task)
                with self.agents.store.transaction() as atx:
                    agent = atx.get(agent_id)
                    if agent is None:
                        raise NotFoundError("Agent", agent_id)
                    previous = atx.get(task.owner) if task.owner and task.owner != agent_id else None
                    if previous is not None:
                        self._detach(previous, task.id, ttx)
                    if not task.is_done:
                        self._attach(agent, task)
                    atx.mark_dirty()
                changed = task.owner != agent_id
                task.owner = agent_id
                task.touch()
                ttx.mark_dirty()
                result = AssignmentResult(AssignmentStatus.ASSIGNED, task.copy(), agent=agent, roles=roles)

        if changed:
            logger.info("Assigned task %s to %s (%s)", task_id, agent_id, source)
            self.tasks.activity.record("task.assigned", task_id=task_id, agent_id=agent_id, source=source)
            self._notify_assigned(agent_id, result.task, source)
        return result

    def unassign_task(self, task_id: str) -> Task:
        with self._lock:
            with self.tasks.store.transaction() as ttx:
                task = ttx.get(task_id)
                if task is None:
                    raise NotFoundError("Task", task_id)
                previous_owner = task.owner
                if previous_owner:
                    with self.agents.store.transaction() as atx:
                        agent = atx.get(previous_owner)
                        if agent is not None:
                            self._detach(agent, task_id, ttx)
                            atx.mark_dirty()
                    task.owner = None
                    task.touch()
                    ttx.mark_dirty()
                result = task.copy()
        if previous_owner:
            self.tasks.activity.record("task.unassigned", task_id=task_id, agent_id=previous_owner)
        return result

    def release_task(self, task_id: str) -> Optional[Agent]:
        """Drop a finished task from its owner's workload.

        The owner's ``current_task`` moves on to its next active task, and a
        ``busy`` owner with nothing left goes back to ``online``.
        """
        with self._lock:
            with self.tasks.store.transaction() as ttx:
                task = ttx.get(task_id)
                if task is None:
                    raise NotFoundError("Task", task_id)
                if not task.owner:
                    return None
                with self.agents.store.transaction() as atx:
                    agent = atx.get(task.owner)
                    if agent is None:
                        return None
                    if self._detach(agent, task_id, ttx):
                        atx.mark_dirty()
        logger.info("Released task %s from %s (workload=%d)", task_id, agent.id, agent.workload)
        return agent

    def start_work(self, task_id: str, agent_id: str) -> Agent:
        """Make *task_id* the agent's current task, keeping it in its workload."""
        with self._lock:
            with self.tasks.store.transaction() as ttx:
                task = ttx.get(task_id)
                if task is None:
                    raise NotFoundError("Task", task_id)
                with self.agents.store.transaction() as atx:
                    agent = atx.get(agent_id)
                    if agent is None:
                        raise NotFoundError("Agent", agent_id)
                    self._attach(agent, task)
                    agent.current_task = _task_info(task)
                    atx.mark_dirty()
        return agent

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def best_agent_for_role(self, role: str) -> Optional[Agent]:
        """Least-loaded available agent carrying *role*, for manual assignment flows."""
        with self._lock:
            return find_best_agent({role}, self.agents.list_agents(), self.dev_roles)

    def workload_report(self) -> list[dict[str, Any]]:
        agents = sorted(self.agents.list_agents(), key=lambda a: a.workload)
        return [
            {
                "id": a.id,
                "name": a.name,
                "status": a.status.value,
                "roles": list(a.roles),
                "workload": a.workload,
                "active_tasks": list(a.active_tasks),
                "current_task": a.current_task,
            }
            for a in agents
        ]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _attach(agent: Agent, task: Task) -> None:
        if task.id not in agent.active_tasks:
            agent.active_tasks.append(task.id)
        if agent.current_task is None:
            agent.current_task = _task_info(task)
        if agent.status == AgentStatus.ONLINE:
            agent.status = AgentStatus.BUSY
        agent.touch()

    @staticmethod
    def _detach(agent: Agent, task_id: str, ttx: Any) -> bool:
        if task_id not in agent.active_tasks and not (
            agent.current_task and agent.current_task.get("id") == task_id
        ):
            return False
        agent.active_tasks = [t for t in agent.active_tasks if t != task_id]
        if agent.current_task and agent.current_task.get("id") == task_id:
            next_task = next((ttx.get(t) for t in agent.active_tasks if ttx.get(t) is not None), None)
            agent.current_task = _task_info(next_task) if next_task else None
        if not agent.active_tasks and agent.status == AgentStatus.BUSY:
            agent.status = AgentStatus.ONLINE
        agent.touch()
        return True

    def _notify_assigned(self, agent_id: str, task: Task, source: str) -> None:
        if self.notifications is None:
            return
        try:
            self.notifications.notify(
                agent_id,
                "task-assigned",
                task.id,
                title="New task assigned",
                text=f"You've been assigned: {task.title}",
                source=source,
                project_id=task.project_id,
            )
        except (OSError, StoreCorruptedError):
            logger.exception("Failed to notify %s about task %s", agent_id, task.id)
