"""File-based task store.

Stores tasks in ``.clawhub/tasks.yaml``. All reads and writes go through
:meth:`TaskStore.transaction`, which holds an exclusive lock so every
operation sees the immediately preceding write.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from ..constants import TASKS_FILE, TASKS_LOCK_FILE
from ..storage import CollectionTx, YamlCollection
from .model import Task


class _TaskTx(CollectionTx[Task]):
    """Transaction over the task list with board-specific lookups."""

    def find(
        self,
        *,
        lane: Optional[str] = None,
        owner: Optional[str] = None,
        priority: Optional[str] = None,
        tag: Optional[str] = None,
        search: Optional[str] = None,
        parent_id: Optional[str] = None,
    ) -> list[Task]:
        out: list[Task] = []
        for t in self.items:
            if lane and t.lane.value != lane:
                continue
            if owner and t.owner != owner:
                continue
            if priority and t.priority.value != priority:
                continue
            if tag and tag not in t.tags:
                continue
            if parent_id is not None and t.parent_id != parent_id:
                continue
            if search:
                q = search.lower()
                if q not in t.title.lower() and q not in t.description.lower() and q not in t.id.lower():
                    continue
            out.append(t)
        return out

    def dependents_of(self, task_id: str) -> list[Task]:
        """Tasks whose ``depends_on`` contains *task_id* (the derived ``blocks`` view)."""
        return [t for t in self.items if task_id in t.depends_on]

    def subtasks_of(self, task_id: str) -> list[Task]:
        return [t for t in self.items if t.parent_id == task_id]


class TaskStore(YamlCollection[Task]):
    """Thread-safe, file-backed store for :class:`Task` objects.

    Parameters
    ----------
    state_dir:
        Path to the ``.clawhub/`` directory for the project.
    """

    tx_class = _TaskTx

    def __init__(self, state_dir: Path) -> None:
        super().__init__(
            state_dir / TASKS_FILE,
            state_dir / TASKS_LOCK_FILE,
            "tasks",
            loader=Task.from_dict,
            dumper=Task.to_dict,
            key_of=lambda t: t.id,
        )
