"""Control-center facade: one object per project wiring stores and engines.

The HTTP API and the CLI both talk to :class:`ControlCenter`; it owns the
cross-cutting rules that involve more than one store (auto-assignment on
create, releasing workload on completion, unblock notifications).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from .activity import ActivityLog
from .agents.model import Agent
from .agents.registry import AgentRegistry
from .assignment.engine import AssignmentEngine, AssignmentResult
from .assignment.roles import DEFAULT_ROLE_TABLE, RoleTable
from .config import (
    get_auto_assign_on_create,
    get_dev_roles,
    get_max_activity_events,
    get_notification_retention_days,
    get_role_pattern_overrides,
    get_stale_agent_seconds,
    load_center_config,
)
from .constants import STATE_DIR_NAME
from .errors import ValidationError
from .notifications import NotificationStore
from .storage import StoreCorruptedError
from .tasks.engine import TaskEngine, TaskUpdate
from .tasks.model import Lane, Task

logger = logging.getLogger(__name__)


@dataclass
class CreatedTask:
    task: Task
    assignment: Optional[AssignmentResult] = None


class ControlCenter:
    """Entry point for every board operation on one project directory.

    Parameters
    ----------
    project_dir:
        Project root; state lives in ``<project_dir>/.clawhub/``.
    config:
        Pre-loaded configuration. Read from ``.clawhub/config.yaml`` when omitted.
    """

    def __init__(self, project_dir: Path, config: Optional[dict[str, Any]] = None) -> None:
        self.project_dir = Path(project_dir).resolve()
        self.state_dir = self.project_dir / STATE_DIR_NAME
        self.state_dir.mkdir(parents=True, exist_ok=True)
        if config is None:
            config, err = load_center_config(self.project_dir)
            if err:
                logger.warning("Ignoring unreadable config (%s); using defaults", err)
        self.config = config

        self.auto_assign_on_create = get_auto_assign_on_create(config)
        self.stale_agent_seconds = get_stale_agent_seconds(config)
        self.notification_retention_days = get_notification_retention_days(config)

        self.activity = ActivityLog(self.state_dir, get_max_activity_events(config))
        self.tasks = TaskEngine(self.state_dir, self.activity)
        self.agents = AgentRegistry(self.state_dir)
        self.notifications = NotificationStore(self.state_dir)
        self.assignment = AssignmentEngine(
            self.tasks,
            self.agents,
            self.notifications,
            role_table=self._build_role_table(config),
            dev_roles=get_dev_roles(config),
        )

    @staticmethod
    def _build_role_table(config: dict[str, Any]) -> RoleTable:
        overrides = get_role_pattern_overrides(config)
        try:
            return DEFAULT_ROLE_TABLE.with_overrides(overrides)
        except re.error as exc:
            logger.warning("Invalid role pattern in config (%s); using built-in roles", exc)
            return DEFAULT_ROLE_TABLE

    # ------------------------------------------------------------------
    # Task API surface
    # ------------------------------------------------------------------

    def create_task(self, title: str, **fields: Any) -> Task:
        """Create a task, auto-assigning it when no owner was supplied."""
        return self.create_and_assign(title, **fields).task

    def create_and_assign(self, title: str, **fields: Any) -> CreatedTask:
        owner = fields.get("owner")
        if owner and isinstance(owner, str) and self.agents.get(owner) is not None:
            # Registered owners are attached through the assignment engine so
            # they get the workload entry and the task-assigned notification.
            task = self.tasks.create_task(title, **{**fields, "owner": None})
            if task.is_done:
                return CreatedTask(self.tasks.apply_update(task.id, {"owner": owner}).task)
            result = self.assignment.assign_task(task.id, owner, source=task.created_by or "create")
            return CreatedTask(result.task)
        task = self.tasks.create_task(title, **fields)
        if task.owner:
            return CreatedTask(task)
        if not self.auto_assign_on_create or task.is_done:
            return CreatedTask(task)
        result = self.assignment.auto_assign_task(task.id)
        return CreatedTask(result.task, result)

    def get_task(self, task_id: str) -> Optional[Task]:
        return self.tasks.get_task(task_id)

    def require_task(self, task_id: str) -> Task:
        return self.tasks.require_task(task_id)

    def list_tasks(self, **filters: Any) -> list[Task]:
        return self.tasks.list_tasks(**filters)

    def update_task(self, task_id: str, patch: dict[str, Any]) -> Task:
        return self.apply_update(task_id, patch).task

    def apply_update(self, task_id: str, patch: dict[str, Any]) -> TaskUpdate:
        """Apply *patch* and run the follow-ups that span stores.

        Ownership changes go through the assignment engine so agent workload
        stays in step; a move into ``done`` releases the owner and notifies
        the owners of dependents that became free.
        """
        if not isinstance(patch, dict):
            raise ValidationError("Patch must be an object")
        changes = dict(patch)
        owner_given = "owner" in changes
        new_owner = changes.pop("owner", None)
        if owner_given and new_owner is not None and not isinstance(new_owner, str):
            raise ValidationError("'owner' must be a string")

        update = self.tasks.apply_update(task_id, changes)
        task = update.task
        if update.transitioned and task.lane == Lane.DONE:
            self.assignment.release_task(task_id)
        elif update.transitioned and update.previous_lane == Lane.DONE and task.owner:
            if self.agents.get(task.owner) is not None:
                self.assignment.assign_task(task_id, task.owner, source="reopen")

        if owner_given and (new_owner or None) != task.owner:
            if not new_owner:
                task = self.assignment.unassign_task(task_id)
            elif self.agents.get(new_owner) is not None:
                task = self.assignment.assign_task(task_id, new_owner).task
            else:
                # Owners outside the registry (humans) carry no workload.
                if task.owner:
                    self.assignment.unassign_task(task_id)
                task = self.tasks.apply_update(task_id, {"owner": new_owner}).task
            update.task = task
            update.changed_fields = sorted(set(update.changed_fields) | {"owner"})

        for dependent in update.unblocked:
            self._notify_unblocked(dependent, task)
        return update

    def auto_assign_task(self, task_id: str) -> AssignmentResult:
        return self.assignment.auto_assign_task(task_id)

    def auto_assign_tasks(self, task_ids: Optional[list[str]] = None) -> list[AssignmentResult]:
        """Assign the given tasks, or every open unowned task, one after another."""
        if task_ids is None:
            task_ids = [t.id for t in self.tasks.list_tasks() if not t.owner and not t.is_done]
        return self.assignment.auto_assign_tasks(task_ids)

    def assign_task(self, task_id: str, agent_id: str) -> AssignmentResult:
        return self.assignment.assign_task(task_id, agent_id)

    def start_task(self, task_id: str, agent_id: Optional[str] = None) -> Task:
        """Automated start: move a task into ``development`` for an agent.

        Refused while any dependency is unfinished. Takes ownership of an
        unowned task; a task owned by another agent is refused.
        """
        task = self.tasks.require_task(task_id)
        agent_id = agent_id or task.owner
        if not agent_id:
            raise ValidationError(f"Task {task_id} has no owner; pass the starting agent")
        agent = self.agents.require(agent_id)
        if task.is_done:
            raise ValidationError(f"Task {task_id} is already done")
        if task.owner and task.owner != agent.id:
            raise ValidationError(f"Task {task_id} is owned by {task.owner}")
        unresolved = self.tasks.unresolved_dependencies(task_id)
        if unresolved:
            raise ValidationError(f"Task {task_id} has unresolved dependencies: {unresolved}")
        if task.owner != agent.id:
            self.assignment.assign_task(task_id, agent.id, source=agent.id)
        if task.lane != Lane.DEVELOPMENT:
            task = self.tasks.update_task(
                task_id, {"lane": Lane.DEVELOPMENT.value, "note": f"started by {agent.id}"}
            )
        self.assignment.start_work(task_id, agent.id)
        return self.tasks.require_task(task_id)

    def complete_task(self, task_id: str, note: Optional[str] = None) -> TaskUpdate:
        patch: dict[str, Any] = {"lane": Lane.DONE.value}
        if note:
            patch["note"] = note
        return self.apply_update(task_id, patch)

    # ------------------------------------------------------------------
    # Agents
    # ------------------------------------------------------------------

    def register_agent(self, data: dict[str, Any]) -> Agent:
        agent = self.agents.register(data)
        self.activity.record("agent.registered", agent_id=agent.id, roles=list(agent.roles))
        return agent

    def prune_stale_agents(self, max_age_seconds: Optional[int] = None) -> list[str]:
        removed = self.agents.prune_stale(max_age_seconds or self.stale_agent_seconds)
        for agent_id in removed:
            self.activity.record("agent.pruned", agent_id=agent_id)
        return removed

    def prune_notifications(self, retention_days: Optional[int] = None) -> int:
        return self.notifications.prune_old(retention_days or self.notification_retention_days)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _notify_unblocked(self, dependent: Task, completed: Task) -> None:
        if not dependent.owner:
            return
        try:
            self.notifications.notify(
                dependent.owner,
                "task-unblocked",
                dependent.id,
                title="Task unblocked",
                text=f"{dependent.title} is ready: {completed.title} is done",
                source=completed.id,
                project_id=dependent.project_id,
            )
        except (OSError, StoreCorruptedError):
            logger.exception("Failed to notify %s that %s is unblocked", dependent.owner, dependent.id)
