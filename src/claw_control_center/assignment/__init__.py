"""Role inference, least-load selection and the assignment engine."""

from .engine import AssignmentEngine, AssignmentResult, AssignmentStatus
from .roles import DEFAULT_ROLE_TABLE, RolePattern, RoleTable, analyze_task_roles
from .selection import find_best_agent

__all__ = [
    "AssignmentEngine",
    "AssignmentResult",
    "AssignmentStatus",
    "DEFAULT_ROLE_TABLE",
    "RolePattern",
    "RoleTable",
    "analyze_task_roles",
    "find_best_agent",
]
