"""Tests for the agent registry (agents/registry.py)."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from claw_control_center.agents.model import Agent, AgentStatus
from claw_control_center.agents.registry import AgentRegistry
from claw_control_center.errors import NotFoundError, ValidationError


@pytest.fixture
def registry(tmp_path: Path) -> AgentRegistry:
    return AgentRegistry(tmp_path / ".clawhub")


def _backdate(registry: AgentRegistry, agent_id: str, seconds: int) -> None:
    stamp = (datetime.now(timezone.utc) - timedelta(seconds=seconds)).isoformat()
    with registry.store.transaction() as tx:
        agent = tx.get(agent_id)
        agent.last_heartbeat = stamp
        agent.updated_at = stamp
        tx.mark_dirty()


class TestRegister:
    def test_new_agent_defaults(self, registry: AgentRegistry) -> None:
        agent = registry.register({"id": "forge", "roles": ["backend-dev"]})
        assert agent.name == "forge"
        assert agent.status == AgentStatus.OFFLINE
        assert agent.last_heartbeat is None
        assert registry.require("forge").roles == ["backend-dev"]

    def test_online_registration_sets_heartbeat(self, registry: AgentRegistry) -> None:
        agent = registry.register({"id": "forge", "status": "online"})
        assert agent.last_heartbeat is not None

    def test_reregister_keeps_order_and_workload(self, registry: AgentRegistry) -> None:
        registry.register({"id": "a", "roles": ["qa"], "active_tasks": ["t1"]})
        registry.register({"id": "b", "roles": ["qa"]})
        registry.register({"id": "a", "name": "Alpha", "roles": ["qa", "pm"]})
        agents = registry.list_agents()
        assert [a.id for a in agents] == ["a", "b"]
        assert agents[0].name == "Alpha"
        assert agents[0].roles == ["qa", "pm"]
        assert agents[0].active_tasks == ["t1"]

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"id": "  "},
            {"id": "a", "roles": "qa"},
            {"id": "a", "roles": ["qa", 3]},
            {"id": "a", "status": "sleeping"},
        ],
    )
    def test_invalid_payloads(self, registry: AgentRegistry, payload: dict) -> None:
        with pytest.raises(ValidationError):
            registry.register(payload)
        assert registry.list_agents() == []


class TestStatus:
    def test_heartbeat_brings_offline_agent_online(self, registry: AgentRegistry) -> None:
        registry.register({"id": "a"})
        agent = registry.heartbeat("a")
        assert agent.status == AgentStatus.ONLINE
        assert agent.last_heartbeat is not None

    def test_heartbeat_keeps_busy(self, registry: AgentRegistry) -> None:
        registry.register({"id": "a", "status": "busy"})
        assert registry.heartbeat("a").status == AgentStatus.BUSY

    def test_heartbeat_with_current_task(self, registry: AgentRegistry) -> None:
        registry.register({"id": "a"})
        agent = registry.heartbeat("a", current_task={"id": "task-1", "title": "Login"})
        assert agent.current_task == {"id": "task-1", "title": "Login"}
        assert agent.is_working

    def test_update_status(self, registry: AgentRegistry) -> None:
        registry.register({"id": "a", "status": "online"})
        agent = registry.update_status("a", "offline", "task-9")
        assert agent.status == AgentStatus.OFFLINE
        assert agent.current_task == {"id": "task-9", "title": None}

    def test_unknown_agent(self, registry: AgentRegistry) -> None:
        with pytest.raises(NotFoundError):
            registry.heartbeat("ghost")
        assert registry.get("ghost") is None

    def test_set_current_task_clears(self, registry: AgentRegistry) -> None:
        registry.register({"id": "a", "current_task": "task-1"})
        assert registry.set_current_task("a", None).current_task is None


class TestQueries:
    def test_filters(self, registry: AgentRegistry) -> None:
        registry.register({"id": "a", "roles": ["qa"], "status": "online"})
        registry.register({"id": "b", "roles": ["designer"]})
        assert [a.id for a in registry.list_agents(status="online")] == ["a"]
        assert [a.id for a in registry.list_agents(role="designer")] == ["b"]
        assert [a.id for a in registry.available()] == ["a"]
        with pytest.raises(ValidationError):
            registry.list_agents(status="asleep")

    def test_workload(self, registry: AgentRegistry) -> None:
        registry.register({"id": "a", "active_tasks": ["t1", "t2"]})
        assert registry.workload("a") == 2
        registry.register({"id": "a", "active_tasks": ["t2"]})
        assert registry.require("a").active_tasks == ["t2"]

    def test_no_workload_mutators_outside_assignment(self) -> None:
        assert not hasattr(AgentRegistry, "add_active_task")
        assert not hasattr(AgentRegistry, "remove_active_task")


class TestRemoval:
    def test_prune_stale(self, registry: AgentRegistry) -> None:
        registry.register({"id": "old", "status": "online"})
        registry.register({"id": "busy-old", "status": "online"})
        registry.register({"id": "fresh", "status": "online"})
        registry.register({"id": "busy-old", "active_tasks": ["t1"]})
        _backdate(registry, "old", 600)
        _backdate(registry, "busy-old", 600)

        removed = registry.prune_stale(300)

        assert removed == ["old"]
        assert [a.id for a in registry.list_agents()] == ["busy-old", "fresh"]

    def test_delete(self, registry: AgentRegistry) -> None:
        registry.register({"id": "a", "active_tasks": ["t1"]})
        with pytest.raises(ValidationError):
            registry.delete("a")
        registry.register({"id": "a", "active_tasks": []})
        registry.delete("a")
        assert registry.list_agents() == []


class TestAgentModel:
    def test_round_trip(self) -> None:
        agent = Agent(id="a", name="Alpha", roles=["qa"], status=AgentStatus.BUSY, active_tasks=["t1"])
        data = agent.to_dict()
        assert data["workload"] == 1
        assert Agent.from_dict(data) == agent

    def test_from_dict_unknown_status(self) -> None:
        assert Agent.from_dict({"id": "a", "status": "napping"}).status == AgentStatus.OFFLINE
