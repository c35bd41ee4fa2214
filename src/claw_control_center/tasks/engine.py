"""Task engine: CRUD, lane transitions, dependency bookkeeping and board views.

This is the primary entry-point for task manipulation. It wraps
:class:`TaskStore` with the lifecycle rules:

* every lane change appends exactly one ``status_history`` entry;
* moving a task to ``done`` removes it from its direct dependents'
  ``depends_on`` (single hop) and reports which dependents became free,
  without moving them to another lane;
* a failed update raises before anything is saved.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from ..activity import ActivityLog
from ..errors import NotFoundError, ValidationError
from ..utils import _now_iso
from .model import LANE_VALUES, PRIORITY_VALUES, Lane, Task, TaskPriority
from .store import TaskStore

logger = logging.getLogger(__name__)


# Fields a caller may patch through ``update_task``; ``note`` is consumed
# by the history entry and never stored on the task.
PATCHABLE_FIELDS = frozenset({
    "title",
    "description",
    "lane",
    "priority",
    "owner",
    "acceptance_criteria",
    "depends_on",
    "parent_id",
    "project_id",
    "tags",
    "estimated_hours",
    "metadata",
    "note",
})


@dataclass
class TaskUpdate:
    """Outcome of :meth:`TaskEngine.apply_update`."""

    task: Task
    previous_lane: Lane
    transitioned: bool = False
    unblocked: list[Task] = field(default_factory=list)
    changed_fields: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class TaskEngine:
    """Manage the full lifecycle of tasks on the board.

    Parameters
    ----------
    state_dir:
        Path to the ``.clawhub/`` directory.
    activity:
        Activity feed that receives one event per mutation. A private feed
        in *state_dir* is used when omitted.
    """

    def __init__(self, state_dir: Path, activity: Optional[ActivityLog] = None) -> None:
        self.store = TaskStore(state_dir)
        self.activity = activity or ActivityLog(state_dir)
        self._state_dir = state_dir

    def _emit_event(self, event_type: str, task: Task, **details: Any) -> None:
        self.activity.record(event_type, task_id=task.id, lane=task.lane.value, **details)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create_task(
        self,
        title: str,
        description: str = "",
        lane: str = Lane.PROPOSED.value,
        priority: str = TaskPriority.P2.value,
        owner: Optional[str] = None,
        acceptance_criteria: Optional[list[str]] = None,
        depends_on: Optional[list[str]] = None,
        parent_id: Optional[str] = None,
        project_id: Optional[str] = None,
        tags: Optional[list[str]] = None,
        estimated_hours: Optional[float] = None,
        created_by: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Task:
        """Create and persist a new task, returning it.

        Raises :class:`ValidationError` for a missing title, an unknown lane or
        priority, or a dependency / parent id that does not exist.
        """
        payload = {
            "title": title,
            "description": description or "",
            "lane": lane or Lane.PROPOSED.value,
            "priority": priority or TaskPriority.P2.value,
            "owner": owner or None,
            "acceptance_criteria": acceptance_criteria,
            "depends_on": depends_on,
            "parent_id": parent_id,
            "project_id": project_id,
            "tags": tags,
            "estimated_hours": estimated_hours,
            "created_by": created_by,
            "metadata": metadata,
        }
        errors = Task.validate_dict(payload)
        if errors:
            raise ValidationError("; ".join(errors))

        task = Task(
            title=title.strip(),
            description=payload["description"],
            lane=Lane(payload["lane"]),
            priority=TaskPriority(payload["priority"]),
            owner=payload["owner"],
            acceptance_criteria=list(acceptance_criteria or []),
            depends_on=_dedupe(depends_on or []),
            parent_id=parent_id,
            project_id=project_id,
            tags=list(tags or []),
            estimated_hours=float(estimated_hours) if estimated_hours is not None else None,
            created_by=created_by,
            metadata=dict(metadata or {}),
        )
        task.updated_at = task.created_at
        task.record_creation()

        with self.store.transaction() as tx:
            self._check_references(tx, task.id, task.depends_on)
            if parent_id and tx.get(parent_id) is None:
                raise ValidationError(f"Parent task {parent_id} does not exist")
            tx.add(task)

        logger.info("Created task %s: %s", task.id, task.title)
        self._emit_event("task.created", task, priority=task.priority.value, owner=task.owner)
        return task

    def get_task(self, task_id: str) -> Optional[Task]:
        return self.store.get_one(task_id)

    def require_task(self, task_id: str) -> Task:
        task = self.store.get_one(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        return task

    def list_tasks(
        self,
        *,
        lane: Optional[str] = None,
        owner: Optional[str] = None,
        priority: Optional[str] = None,
        tag: Optional[str] = None,
        search: Optional[str] = None,
        parent_id: Optional[str] = None,
    ) -> list[Task]:
        if lane and lane not in LANE_VALUES:
            raise ValidationError(f"'lane' must be one of {LANE_VALUES}, got '{lane}'")
        if priority and priority not in PRIORITY_VALUES:
            raise ValidationError(f"'priority' must be one of {PRIORITY_VALUES}, got '{priority}'")
        with self.store.transaction() as tx:
            return tx.find(
                lane=lane,
                owner=owner,
                priority=priority,
                tag=tag,
                search=search,
                parent_id=parent_id,
            )

    def update_task(self, task_id: str, patch: dict[str, Any]) -> Task:
        """Apply a partial update and return the updated task."""
        return self.apply_update(task_id, patch).task

    def apply_update(self, task_id: str, patch: dict[str, Any]) -> TaskUpdate:
        """Apply a partial update, reporting the transition and unblocked dependents.

        Arrays in *patch* replace the stored arrays wholesale. ``updated_at``
        is bumped on every successful call, even when nothing else changed.
        """
        if not isinstance(patch, dict):
            raise ValidationError("Patch must be an object")
        unknown = sorted(set(patch) - PATCHABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown task fields: {unknown}")
        changes = dict(patch)
        note = changes.pop("note", None)
        if note is not None and not isinstance(note, str):
            raise ValidationError("'note' must be a string")
        errors = Task.validate_dict(changes)
        if "lane" in changes and changes["lane"] is None:
            errors.append("'lane' cannot be null")
        if "priority" in changes and changes["priority"] is None:
            errors.append("'priority' cannot be null")
        if errors:
            raise ValidationError("; ".join(errors))

        with self.store.transaction() as tx:
            task = tx.get(task_id)
            if task is None:
                raise NotFoundError("Task", task_id)
            previous_lane = task.lane
            if "depends_on" in changes:
                changes["depends_on"] = _dedupe(changes["depends_on"] or [])
                self._check_references(tx, task_id, changes["depends_on"])
            if changes.get("parent_id"):
                if changes["parent_id"] == task_id or tx.get(changes["parent_id"]) is None:
                    raise ValidationError(f"Invalid parent task {changes['parent_id']}")

            new_lane = Lane(_enum_value(changes["lane"])) if "lane" in changes else None
            for key, value in changes.items():
                if key == "lane":
                    continue
                if key == "priority":
                    value = TaskPriority(_enum_value(value))
                elif key == "title":
                    value = value.strip()
                elif key == "description":
                    value = value or ""
                elif key in ("acceptance_criteria", "tags"):
                    value = list(value or [])
                elif key == "metadata":
                    value = dict(value or {})
                elif key == "estimated_hours" and value is not None:
                    value = float(value)
                setattr(task, key, value)

            transitioned = new_lane is not None and task.move_to(new_lane, note)
            unblocked: list[Task] = []
            if transitioned and new_lane == Lane.DONE:
                unblocked = self._unblock_dependents(tx, task_id)
            task.touch()
            tx.mark_dirty()

            result = TaskUpdate(
                task=task.copy(),
                previous_lane=previous_lane,
                transitioned=transitioned,
                unblocked=[t.copy() for t in unblocked],
                changed_fields=sorted(changes),
            )
            cycles: list[list[str]] = []
            if "depends_on" in changes and result.task.depends_on:
                cycles = self._cycles_through(tx, task_id)

        self._emit_event("task.updated", result.task, fields=result.changed_fields)
        if result.transitioned:
            logger.info(
                "Task %s moved %s -> %s", task_id, previous_lane.value, result.task.lane.value
            )
            self._emit_event(
                "task.transitioned",
                result.task,
                **{"from": previous_lane.value, "to": result.task.lane.value, "note": note},
            )
        for dependent in result.unblocked:
            logger.info("Task %s unblocked by completion of %s", dependent.id, task_id)
            self._emit_event("task.unblocked", dependent, completed=task_id, owner=dependent.owner)
        self._report_cycles(task_id, cycles)
        return result

    # ------------------------------------------------------------------
    # Dependency management
    # ------------------------------------------------------------------

    def set_dependencies(self, task_id: str, depends_on: list[str]) -> Task:
        """Replace ``depends_on`` for *task_id*.

        Duplicates are dropped (first occurrence wins). A self-reference or an
        unknown id is rejected. Cycles are accepted and reported as a warning.
        """
        if not isinstance(depends_on, list):
            raise ValidationError("'depends_on' must be an array")
        return self.update_task(task_id, {"depends_on": depends_on})

    def dependents_of(self, task_id: str) -> list[Task]:
        """The derived ``blocks`` view: tasks that directly depend on *task_id*."""
        with self.store.transaction() as tx:
            if tx.get(task_id) is None:
                raise NotFoundError("Task", task_id)
            return tx.dependents_of(task_id)

    def unresolved_dependencies(self, task_id: str) -> list[str]:
        """Ids in ``depends_on`` whose task is not done (unknown ids count)."""
        with self.store.transaction() as tx:
            task = tx.get(task_id)
            if task is None:
                raise NotFoundError("Task", task_id)
            return self._unresolved(tx, task)

    def get_blocked_tasks(self) -> list[Task]:
        """Open tasks that still wait on at least one dependency."""
        with self.store.transaction() as tx:
            return [t for t in tx.list_all() if not t.is_done and self._unresolved(tx, t)]

    def find_dependency_cycles(self) -> list[list[str]]:
        """Return every dependency cycle once, rotated to start at its smallest id.

        This is a diagnostic only; cycles are legal and simply never unblock.
        """
        tasks = self.store.read_snapshot()
        graph = {t.id: [d for d in t.depends_on] for t in tasks}
        return _find_cycles(graph)

    def get_context(self, task_id: str) -> dict[str, Any]:
        """A task together with its dependencies, dependents and subtasks."""
        with self.store.transaction() as tx:
            task = tx.get(task_id)
            if task is None:
                raise NotFoundError("Task", task_id)
            dependencies = [tx.get(d) for d in task.depends_on]
            return {
                "task": task.to_dict(),
                "dependencies": [d.to_dict() for d in dependencies if d is not None],
                "unresolved": self._unresolved(tx, task),
                "blocks": [t.to_dict() for t in tx.dependents_of(task_id)],
                "subtasks": [t.to_dict() for t in tx.subtasks_of(task_id)],
            }

    # ------------------------------------------------------------------
    # Comments and time tracking
    # ------------------------------------------------------------------

    def add_comment(self, task_id: str, text: str, by: Optional[str] = None) -> Task:
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Comment text is required")
        with self.store.transaction() as tx:
            task = self._require(tx, task_id)
            task.comments.append({"at": _now_iso(), "by": by, "text": text.strip()})
            task.touch()
            tx.mark_dirty()
        self._emit_event("task.commented", task, by=by)
        return task

    def log_time(
        self,
        task_id: str,
        hours: float,
        agent_id: Optional[str] = None,
        start: Optional[str] = None,
        end: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Task:
        if isinstance(hours, bool) or not isinstance(hours, (int, float)) or hours <= 0:
            raise ValidationError("'hours' must be a positive number")
        with self.store.transaction() as tx:
            task = self._require(tx, task_id)
            task.time_entries.append({
                "agent_id": agent_id,
                "hours": float(hours),
                "start": start,
                "end": end,
                "note": note,
                "logged_at": _now_iso(),
            })
            task.actual_hours = round(task.actual_hours + float(hours), 4)
            task.touch()
            tx.mark_dirty()
        self._emit_event("task.time_logged", task, hours=float(hours), agent_id=agent_id)
        return task

    # ------------------------------------------------------------------
    # Work reporting
    # ------------------------------------------------------------------

    def record_commits(self, task_id: str, commits: list[dict[str, Any]]) -> dict[str, Any]:
        """Attach commits to a task, ignoring hashes that are already recorded."""
        if not isinstance(commits, list) or not commits:
            raise ValidationError("'commits' must be a non-empty array")
        cleaned: list[dict[str, Any]] = []
        for commit in commits:
            if not isinstance(commit, dict):
                raise ValidationError("Each commit must be an object")
            sha = commit.get("hash")
            message = commit.get("message")
            if not isinstance(sha, str) or not sha.strip():
                raise ValidationError("Each commit needs a 'hash'")
            if not isinstance(message, str):
                raise ValidationError("Each commit needs a 'message'")
            cleaned.append({
                "hash": sha.strip(),
                "message": message,
                "timestamp": commit.get("timestamp") or _now_iso(),
                "author": commit.get("author"),
            })
        with self.store.transaction() as tx:
            task = self._require(tx, task_id)
            seen = {c.get("hash") for c in task.work["commits"]}
            added = 0
            for commit in cleaned:
                if commit["hash"] in seen:
                    continue
                seen.add(commit["hash"])
                task.work["commits"].append(commit)
                added += 1
            task.touch()
            tx.mark_dirty()
        self._emit_event("task.work.commits", task, added=added)
        return {"added": added, "commit_count": len(task.work["commits"])}

    def record_files(self, task_id: str, files: list[dict[str, Any]]) -> dict[str, Any]:
        """Attach changed files; a path reported again replaces its earlier entry."""
        if not isinstance(files, list) or not files:
            raise ValidationError("'files' must be a non-empty array")
        cleaned: list[dict[str, Any]] = []
        for entry in files:
            if not isinstance(entry, dict):
                raise ValidationError("Each file must be an object")
            path = entry.get("path")
            if not isinstance(path, str) or not path.strip():
                raise ValidationError("Each file needs a 'path'")
            cleaned.append({
                "path": path.strip(),
                "additions": _non_negative_int(entry.get("additions", 0), "additions"),
                "deletions": _non_negative_int(entry.get("deletions", 0), "deletions"),
            })
        with self.store.transaction() as tx:
            task = self._require(tx, task_id)
            by_path = {f["path"]: f for f in task.work["files"]}
            for entry in cleaned:
                by_path[entry["path"]] = entry
            task.work["files"] = list(by_path.values())
            task.touch()
            tx.mark_dirty()
        self._emit_event("task.work.files", task, reported=len(cleaned))
        return {"file_count": len(task.work["files"])}

    def record_test_results(
        self,
        task_id: str,
        passed: int = 0,
        failed: int = 0,
        skipped: int = 0,
    ) -> dict[str, Any]:
        """Replace the task's latest test results."""
        results = {
            "passed": _non_negative_int(passed, "passed"),
            "failed": _non_negative_int(failed, "failed"),
            "skipped": _non_negative_int(skipped, "skipped"),
        }
        results["total"] = results["passed"] + results["failed"] + results["skipped"]
        results["reported_at"] = _now_iso()
        with self.store.transaction() as tx:
            task = self._require(tx, task_id)
            task.work["test_results"] = results
            task.touch()
            tx.mark_dirty()
        self._emit_event("task.work.tests", task, passed=results["passed"], failed=results["failed"])
        return dict(results)

    def record_artifacts(self, task_id: str, artifacts: list[dict[str, Any]]) -> dict[str, Any]:
        if not isinstance(artifacts, list) or not artifacts:
            raise ValidationError("'artifacts' must be a non-empty array")
        cleaned: list[dict[str, Any]] = []
        for entry in artifacts:
            if not isinstance(entry, dict):
                raise ValidationError("Each artifact must be an object")
            name, path = entry.get("name"), entry.get("path")
            if not isinstance(name, str) or not name.strip():
                raise ValidationError("Each artifact needs a 'name'")
            if not isinstance(path, str) or not path.strip():
                raise ValidationError("Each artifact needs a 'path'")
            size = entry.get("size")
            cleaned.append({
                "name": name.strip(),
                "path": path.strip(),
                "size": _non_negative_int(size, "size") if size is not None else None,
                "created_at": _now_iso(),
            })
        with self.store.transaction() as tx:
            task = self._require(tx, task_id)
            task.work["artifacts"].extend(cleaned)
            task.touch()
            tx.mark_dirty()
        self._emit_event("task.work.artifacts", task, added=len(cleaned))
        return {"artifact_count": len(task.work["artifacts"])}

    def work_summary(self, task_id: str) -> dict[str, Any]:
        task = self.require_task(task_id)
        work = task.work
        return {
            "task_id": task.id,
            "commits": list(work["commits"]),
            "files": list(work["files"]),
            "test_results": work["test_results"],
            "artifacts": list(work["artifacts"]),
            "commit_count": len(work["commits"]),
            "file_count": len(work["files"]),
            "artifact_count": len(work["artifacts"]),
            "lines_added": sum(f.get("additions", 0) for f in work["files"]),
            "lines_removed": sum(f.get("deletions", 0) for f in work["files"]),
        }

    # ------------------------------------------------------------------
    # Board view
    # ------------------------------------------------------------------

    def get_board(self) -> dict[str, list[dict[str, Any]]]:
        """Return tasks grouped by lane, each lane sorted by priority then age."""
        tasks = self.store.read_snapshot()
        columns: dict[str, list[Task]] = {lane: [] for lane in LANE_VALUES}
        for t in tasks:
            columns[t.lane.value].append(t)
        return {
            lane: [t.to_dict() for t in sorted(items, key=lambda t: (t.priority.sort_key, t.created_at))]
            for lane, items in columns.items()
        }

    def get_recent_events(self, limit: int = 100) -> list[dict[str, Any]]:
        return self.activity.recent(limit)

    def get_task_events(self, task_id: str, limit: int = 100) -> list[dict[str, Any]]:
        return self.activity.for_task(task_id, limit)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _require(tx: Any, task_id: str) -> Task:
        task = tx.get(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        return task

    @staticmethod
    def _check_references(tx: Any, task_id: str, depends_on: list[str]) -> None:
        for dep_id in depends_on:
            if not isinstance(dep_id, str) or not dep_id:
                raise ValidationError("'depends_on' entries must be task ids")
            if dep_id == task_id:
                raise ValidationError("A task cannot depend on itself")
            if tx.get(dep_id) is None:
                raise ValidationError(f"Dependency {dep_id} does not exist")

    @staticmethod
    def _unresolved(tx: Any, task: Task) -> list[str]:
        unresolved: list[str] = []
        for dep_id in task.depends_on:
            dep = tx.get(dep_id)
            if dep is None or not dep.is_done:
                unresolved.append(dep_id)
        return unresolved

    @staticmethod
    def _unblock_dependents(tx: Any, completed_task_id: str) -> list[Task]:
        """Remove a completed task from its direct dependents' ``depends_on``.

        Returns the dependents left with no dependencies. Their lane is not
        touched and dependents-of-dependents are not visited.
        """
        unblocked: list[Task] = []
        for task in tx.dependents_of(completed_task_id):
            task.remove_dependency(completed_task_id)
            if not task.depends_on:
                unblocked.append(task)
        return unblocked

    @staticmethod
    def _cycles_through(tx: Any, task_id: str) -> list[list[str]]:
        graph = {t.id: list(t.depends_on) for t in tx.list_all()}
        return [c for c in _find_cycles(graph) if task_id in c]

    def _report_cycles(self, task_id: str, cycles: list[list[str]]) -> None:
        for cycle in cycles:
            logger.warning("Dependency cycle detected: %s", " -> ".join(cycle + [cycle[0]]))
            self.activity.record("dependency.cycle", task_id=task_id, cycle=cycle)


# ---------------------------------------------------------------------------
# Module helpers
# ---------------------------------------------------------------------------

def _dedupe(items: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        out.append(item)
    return out


def _enum_value(value: Any) -> str:
    return str(getattr(value, "value", value))


def _non_negative_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"'{name}' must be a non-negative integer")
    return value


def _find_cycles(graph: dict[str, list[str]]) -> list[list[str]]:
    """Elementary cycles of a ``{node: [depends_on]}`` graph, each reported once.

    Only nodes inside a strongly connected component of size > 1 (or with a
    self edge) are searched, so an acyclic board costs a single Tarjan pass.
    """
    index: dict[str, int] = {}
    low: dict[str, int] = {}
    stack: list[str] = []
    on_stack: set[str] = set()
    cyclic: set[str] = set()
    counter = [0]

    def _strongconnect(node: str) -> None:
        index[node] = low[node] = counter[0]
        counter[0] += 1
        stack.append(node)
        on_stack.add(node)
        for dep in graph.get(node, []):
            if dep not in graph:
                continue
            if dep not in index:
                _strongconnect(dep)
                low[node] = min(low[node], low[dep])
            elif dep in on_stack:
                low[node] = min(low[node], index[dep])
        if low[node] == index[node]:
            component: list[str] = []
            while True:
                member = stack.pop()
                on_stack.discard(member)
                component.append(member)
                if member == node:
                    break
            if len(component) > 1 or node in graph.get(node, []):
                cyclic.update(component)

    for node in graph:
        if node not in index:
            _strongconnect(node)

    found: dict[tuple[str, ...], list[str]] = {}

    def _visit(node: str, path: list[str], on_path: set[str]) -> None:
        for dep in graph.get(node, []):
            if dep not in cyclic:
                continue
            if dep in on_path:
                cycle = path[path.index(dep):]
                pivot = cycle.index(min(cycle))
                rotated = cycle[pivot:] + cycle[:pivot]
                found.setdefault(tuple(rotated), rotated)
                continue
            path.append(dep)
            on_path.add(dep)
            _visit(dep, path, on_path)
            on_path.discard(dep)
            path.pop()

    for start in sorted(cyclic):
        _visit(start, [start], {start})
    return list(found.values())
