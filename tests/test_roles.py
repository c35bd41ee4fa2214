"""Tests for role inference and candidate selection."""

from __future__ import annotations

import pytest

from claw_control_center.agents.model import Agent, AgentStatus
from claw_control_center.assignment.roles import (
    DEFAULT_ROLE_TABLE,
    RolePattern,
    RoleTable,
    analyze_task_roles,
    ordered_roles,
)
from claw_control_center.assignment.selection import find_best_agent, least_loaded, matching_agents


def _agent(agent_id: str, roles: list[str], active: int = 0, status: AgentStatus = AgentStatus.ONLINE) -> Agent:
    return Agent(
        id=agent_id,
        name=agent_id,
        roles=roles,
        status=status,
        active_tasks=[f"{agent_id}-t{i}" for i in range(active)],
    )


class TestAnalyzeTaskRoles:
    def test_multi_match(self) -> None:
        roles = analyze_task_roles("Write backend API tests")
        assert {"backend-dev", "qa"} <= roles

    def test_default_role(self) -> None:
        assert analyze_task_roles("Refactor") == {"fullstack-dev"}

    def test_case_insensitive(self) -> None:
        assert "devops" in analyze_task_roles("DOCKER image for staging")

    def test_description_is_searched(self) -> None:
        assert "designer" in analyze_task_roles("Landing", "needs a new mockup")

    @pytest.mark.parametrize(
        "title,role",
        [
            ("Fix backend auth bug", "backend-dev"),
            ("Fix backend auth bug", "qa"),
            ("React dashboard widgets", "frontend-dev"),
            ("Update README", "content"),
            ("Plan the Q3 roadmap", "pm"),
            ("Architecture review", "architect"),
            ("Set up CI/CD pipeline", "devops"),
            ("Add e2e coverage", "qa"),
        ],
    )
    def test_keywords(self, title: str, role: str) -> None:
        assert role in analyze_task_roles(title)

    @pytest.mark.parametrize(
        "title,role",
        [
            ("Implement OAuth login", "backend-dev"),
            ("Fix CI build", "devops"),
            ("Update doc comments", "content"),
            ("Fix flaky pytest suite", "qa"),
        ],
    )
    def test_keywords_match_inside_words(self, title: str, role: str) -> None:
        roles = analyze_task_roles(title)
        assert role in roles
        assert "fullstack-dev" not in roles

    def test_short_keywords_need_word_boundaries(self) -> None:
        assert "designer" not in analyze_task_roles("Nightly build")
        assert "devops" not in analyze_task_roles("Decide on pricing")
        assert "content" not in analyze_task_roles("Docker image")
        assert "qa" in analyze_task_roles("More tests")

    def test_ordered_roles_follow_table(self) -> None:
        assert ordered_roles({"qa", "backend-dev", "zeta"}) == ["backend-dev", "qa", "zeta"]


class TestRoleTable:
    def test_overrides_replace_and_append(self) -> None:
        table = DEFAULT_ROLE_TABLE.with_overrides({"qa": ["smoke"], "security": ["cve", "pentest"]})
        assert table.roles[-1] == "security"
        assert table.match("smoke run") == ["qa"]
        assert table.match("test run") == []
        assert table.match("triage CVE") == ["security"]

    def test_no_overrides_returns_same_table(self) -> None:
        assert DEFAULT_ROLE_TABLE.with_overrides({}) is DEFAULT_ROLE_TABLE

    def test_custom_table(self) -> None:
        table = RoleTable([RolePattern("ops", ("pager",))])
        assert analyze_task_roles("pager rota", table=table) == {"ops"}
        assert analyze_task_roles("anything", table=table) == {"fullstack-dev"}


class TestSelection:
    def test_offline_agents_never_match(self) -> None:
        agents = [_agent("a", ["qa"], status=AgentStatus.OFFLINE), _agent("b", ["qa"], active=3)]
        assert [a.id for a in matching_agents({"qa"}, agents)] == ["b"]

    def test_busy_agents_are_candidates(self) -> None:
        agents = [_agent("a", ["qa"], status=AgentStatus.BUSY)]
        assert find_best_agent({"qa"}, agents).id == "a"

    def test_agents_without_roles_never_match(self) -> None:
        assert find_best_agent({"fullstack-dev"}, [_agent("a", [])]) is None

    def test_least_loaded_wins(self) -> None:
        agents = [_agent("A", ["backend-dev"], active=2), _agent("B", ["backend-dev"], active=1)]
        assert find_best_agent({"backend-dev"}, agents).id == "B"

    def test_tie_keeps_list_order(self) -> None:
        agents = [_agent("A", ["backend-dev"], active=1), _agent("B", ["backend-dev"], active=1)]
        assert find_best_agent({"backend-dev"}, agents).id == "A"
        assert least_loaded(list(reversed(agents))).id == "B"

    def test_partial_role_match_is_enough(self) -> None:
        agents = [_agent("q", ["qa"])]
        assert find_best_agent({"backend-dev", "qa"}, agents).id == "q"

    def test_dev_fallback(self) -> None:
        agents = [_agent("designer", ["designer"]), _agent("fe", ["frontend-dev"])]
        assert find_best_agent({"backend-dev"}, agents).id == "fe"

    def test_no_fallback_for_non_dev_roles(self) -> None:
        agents = [_agent("fe", ["frontend-dev"])]
        assert find_best_agent({"qa"}, agents) is None

    def test_no_candidates(self) -> None:
        assert least_loaded([]) is None
        assert find_best_agent({"qa"}, []) is None
