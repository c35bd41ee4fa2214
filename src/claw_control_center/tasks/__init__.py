"""Task lifecycle: model, file store and engine."""

from .engine import TaskEngine, TaskUpdate
from .model import Lane, Task, TaskPriority
from .store import TaskStore

__all__ = ["Lane", "Task", "TaskEngine", "TaskPriority", "TaskStore", "TaskUpdate"]
