"""Least-load candidate selection.

Pure functions over an agent list: no I/O and no mutation, so the same
code serves auto-assignment, previews and the manual "best agent" query.
"""

from __future__ import annotations

from typing import Iterable, Optional

from ..agents.model import Agent
from ..constants import DEV_ROLES


def matching_agents(roles: Iterable[str], agents: list[Agent]) -> list[Agent]:
    """Available agents sharing at least one role, in list order.

    Agents with no roles never match.
    """
    wanted = set(roles)
    return [a for a in agents if a.is_available and wanted.intersection(a.roles)]


def least_loaded(candidates: list[Agent]) -> Optional[Agent]:
    """Smallest workload wins; ``sorted`` is stable so ties keep list order."""
    if not candidates:
        return None
    return sorted(candidates, key=lambda a: a.workload)[0]


def find_best_agent(
    roles: Iterable[str],
    agents: list[Agent],
    dev_roles: Iterable[str] = DEV_ROLES,
) -> Optional[Agent]:
    """Pick the least-loaded available agent for *roles*.

    When nobody matches and *roles* includes a dev role, any dev-tagged agent
    is considered instead. Returns None when there is no candidate.
    """
    roles = set(roles)
    dev_roles = set(dev_roles)
    candidates = matching_agents(roles, agents)
    if not candidates and roles & dev_roles:
        candidates = matching_agents(dev_roles, agents)
    return least_loaded(candidates)
