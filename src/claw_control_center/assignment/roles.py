"""Keyword-to-role inference.

The role table is plain data: an ordered sequence of ``(role, patterns)``
pairs compiled once into case-insensitive regexes. Patterns match as
substrings, so ``auth`` fires on "OAuth" and ``test`` on "pytest". The short
tokens in ``BOUNDED_KEYWORDS`` only match as whole words, which keeps ``ui``
from firing inside "build". A task may match several roles; all are returned.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from ..constants import DEFAULT_ROLE


@dataclass(frozen=True)
class RolePattern:
    role: str
    patterns: tuple[str, ...]


DEFAULT_ROLE_PATTERNS: tuple[RolePattern, ...] = (
    RolePattern("designer", (
        "design", "ui", "ux", "mockup", "wireframe", "prototype",
        "visual", "style", "theme", "color", "layout", "sketch",
    )),
    RolePattern("frontend-dev", (
        "frontend", "front-end", "react", "vue", "angular", "ui component",
        "tailwind", "css", "html", "javascript", "typescript",
        "responsive", "web page", "dashboard",
    )),
    RolePattern("backend-dev", (
        "backend", "back-end", "api", "endpoint", "database", "server",
        "auth", "firebase", "node", "express", "graphql", "rest", "sql",
    )),
    RolePattern("fullstack-dev", (
        "fullstack", "full stack", "full-stack", r"end.to.end", "integration",
    )),
    RolePattern("qa", (
        "test", "qa", "e2e", "verify", "validation", "quality", "bug", "regression",
    )),
    RolePattern("content", (
        "doc", "documentation", "readme", "docs", "content", "copy",
        "write", "blog", "article", "guide", "tutorial",
    )),
    RolePattern("devops", (
        "deploy", "devops", "ci", r"ci.cd", "docker", "kubernetes",
        "infrastructure", "infra", "pipeline", "monitoring", "hosting",
    )),
    RolePattern("architect", (
        "architecture", "design system", "design-system", "technical design",
        "system design", "blueprint", "strategy",
    )),
    RolePattern("pm", (
        "plan", "project", "coordinat", "epic", "roadmap",
        "prioriti", "organize", "manage",
    )),
)


BOUNDED_KEYWORDS = frozenset({"ui", "ux", "ci", "qa", "doc"})


def _keyword_regex(keyword: str) -> str:
    if keyword.lower() in BOUNDED_KEYWORDS:
        return rf"\b{keyword}\b"
    return keyword


class RoleTable:
    """Compiled, ordered role table."""

    def __init__(self, patterns: Iterable[RolePattern] = DEFAULT_ROLE_PATTERNS) -> None:
        self.patterns: tuple[RolePattern, ...] = tuple(patterns)
        self._compiled: list[tuple[str, re.Pattern[str]]] = [
            (p.role, re.compile("|".join(f"(?:{_keyword_regex(k)})" for k in p.patterns), re.IGNORECASE))
            for p in self.patterns
            if p.patterns
        ]

    @property
    def roles(self) -> list[str]:
        return [p.role for p in self.patterns]

    def with_overrides(self, overrides: Mapping[str, list[str]]) -> "RoleTable":
        """Replace the patterns of known roles and append unknown roles at the end."""
        if not overrides:
            return self
        merged: list[RolePattern] = []
        seen: set[str] = set()
        for entry in self.patterns:
            if entry.role in overrides:
                merged.append(RolePattern(entry.role, tuple(overrides[entry.role])))
            else:
                merged.append(entry)
            seen.add(entry.role)
        for role, patterns in overrides.items():
            if role not in seen:
                merged.append(RolePattern(role, tuple(patterns)))
        return RoleTable(merged)

    def match(self, text: str) -> list[str]:
        """Roles whose patterns occur in *text*, in table order."""
        return [role for role, regex in self._compiled if regex.search(text)]


DEFAULT_ROLE_TABLE = RoleTable()


def analyze_task_roles(
    title: str,
    description: Optional[str] = "",
    table: RoleTable = DEFAULT_ROLE_TABLE,
) -> set[str]:
    """Infer the roles a task needs from its title and description.

    Falls back to ``{"fullstack-dev"}`` when nothing matches.
    """
    text = f"{title or ''} {description or ''}"
    matched = table.match(text)
    return set(matched) if matched else {DEFAULT_ROLE}


def ordered_roles(roles: Iterable[str], table: RoleTable = DEFAULT_ROLE_TABLE) -> list[str]:
    """*roles* sorted by table position (unknown roles last, alphabetically)."""
    position = {role: i for i, role in enumerate(table.roles)}
    return sorted(set(roles), key=lambda r: (position.get(r, len(position)), r))
