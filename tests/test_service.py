"""End-to-end tests for the ControlCenter facade."""

from __future__ import annotations

from pathlib import Path

import pytest

from claw_control_center import ControlCenter
from claw_control_center.agents.model import AgentStatus
from claw_control_center.assignment.engine import AssignmentStatus
from claw_control_center.errors import ValidationError
from claw_control_center.tasks.model import Lane


@pytest.fixture
def center(tmp_path: Path) -> ControlCenter:
    return ControlCenter(tmp_path)


def _kinds(center: ControlCenter, agent_id: str) -> list[str]:
    return [n.kind for n in reversed(center.notifications.list_for_agent(agent_id))]


class TestCreate:
    def test_state_dir_created(self, center: ControlCenter, tmp_path: Path) -> None:
        assert (tmp_path / ".clawhub").is_dir()

    def test_auto_assign_on_create(self, center: ControlCenter) -> None:
        center.register_agent({"id": "forge", "roles": ["backend-dev"], "status": "online"})

        created = center.create_and_assign("Fix backend auth bug")

        assert created.assignment.status == AssignmentStatus.ASSIGNED
        assert created.task.owner == "forge"
        assert center.agents.require("forge").active_tasks == [created.task.id]

    def test_no_candidate_leaves_task_unowned(self, center: ControlCenter) -> None:
        created = center.create_and_assign("Run regression suite")
        assert created.assignment.status == AssignmentStatus.NO_CANDIDATE
        assert center.require_task(created.task.id).owner is None

    def test_explicit_registered_owner_gets_workload(self, center: ControlCenter) -> None:
        center.register_agent({"id": "patch", "roles": ["qa"], "status": "online"})
        center.register_agent({"id": "forge", "roles": ["fullstack-dev"], "status": "online"})

        created = center.create_and_assign("Refactor", owner="patch")

        assert created.task.owner == "patch"
        assert created.assignment is None
        assert center.agents.workload("patch") == 1
        assert center.agents.workload("forge") == 0
        assert center.auto_assign_task(created.task.id).status == AssignmentStatus.ALREADY_ASSIGNED
        assert _kinds(center, "patch") == ["task-assigned"]
        assert _kinds(center, "forge") == []
        events = [e["type"] for e in center.tasks.get_task_events(created.task.id)]
        assert events.count("task.assigned") == 1

    def test_explicit_owner_on_done_task(self, center: ControlCenter) -> None:
        center.register_agent({"id": "patch", "roles": ["qa"], "status": "online"})
        task = center.create_task("Old fix", lane="done", owner="patch")
        assert task.owner == "patch"
        assert center.agents.workload("patch") == 0
        assert _kinds(center, "patch") == []

    def test_explicit_unknown_owner_stored_raw(self, center: ControlCenter) -> None:
        task = center.create_task("Refactor", owner="human-reviewer")
        assert task.owner == "human-reviewer"

    def test_auto_assign_can_be_disabled(self, tmp_path: Path) -> None:
        center = ControlCenter(tmp_path, config={"assignment": {"auto_assign_on_create": False}})
        center.register_agent({"id": "forge", "roles": ["backend-dev"], "status": "online"})
        created = center.create_and_assign("Backend API")
        assert created.assignment is None
        assert created.task.owner is None

    def test_role_overrides_from_config(self, tmp_path: Path) -> None:
        center = ControlCenter(tmp_path, config={"assignment": {"role_patterns": {"security": ["cve"]}}})
        center.register_agent({"id": "sec", "roles": ["security"], "status": "online"})
        assert center.create_task("Patch CVE in parser").owner == "sec"

    def test_bad_role_pattern_falls_back(self, tmp_path: Path) -> None:
        center = ControlCenter(tmp_path, config={"assignment": {"role_patterns": {"qa": ["("]}}})
        assert center.assignment.roles_for(center.tasks.create_task("More tests")) == ["qa"]


class TestLifecycle:
    def test_complete_releases_and_notifies_dependents(self, center: ControlCenter) -> None:
        center.register_agent({"id": "forge", "roles": ["backend-dev"], "status": "online"})
        center.register_agent({"id": "tester", "roles": ["qa"], "status": "online"})
        api = center.create_task("Backend API")
        tests = center.create_task("Regression suite", lane="blocked", depends_on=[api.id])
        assert tests.owner == "tester"

        update = center.complete_task(api.id, note="merged")

        assert update.task.lane == Lane.DONE
        assert update.task.status_history[-1]["note"] == "merged"
        assert [t.id for t in update.unblocked] == [tests.id]
        dependent = center.require_task(tests.id)
        assert dependent.depends_on == []
        assert dependent.lane == Lane.BLOCKED
        forge = center.agents.require("forge")
        assert forge.workload == 0
        assert forge.status == AgentStatus.ONLINE
        assert _kinds(center, "tester") == ["task-assigned", "task-unblocked"]

    def test_unowned_unblocked_task_gets_activity_only(self, center: ControlCenter) -> None:
        first = center.create_task("Backend API")
        second = center.create_task("Backend client", depends_on=[first.id])
        center.complete_task(first.id)
        events = center.tasks.get_task_events(second.id)
        assert events[-1]["type"] == "task.unblocked"

    def test_reopen_reattaches_owner(self, center: ControlCenter) -> None:
        center.register_agent({"id": "forge", "roles": ["backend-dev"], "status": "online"})
        task = center.create_task("Backend API")
        center.complete_task(task.id)
        assert center.agents.workload("forge") == 0

        center.update_task(task.id, {"lane": "review"})

        assert center.agents.require("forge").active_tasks == [task.id]

    def test_patch_owner_moves_workload(self, center: ControlCenter) -> None:
        center.register_agent({"id": "a", "roles": ["qa"], "status": "online"})
        center.register_agent({"id": "b", "roles": ["qa"], "status": "online"})
        task = center.create_task("Test login")
        assert task.owner == "a"

        updated = center.update_task(task.id, {"owner": "b", "title": "Test login flow"})

        assert updated.owner == "b"
        assert updated.title == "Test login flow"
        assert center.agents.workload("a") == 0
        assert center.agents.workload("b") == 1

    def test_patch_owner_to_none_unassigns(self, center: ControlCenter) -> None:
        center.register_agent({"id": "a", "roles": ["qa"], "status": "online"})
        task = center.create_task("Test login")
        assert center.update_task(task.id, {"owner": None}).owner is None
        assert center.agents.workload("a") == 0

    def test_patch_owner_must_be_string(self, center: ControlCenter) -> None:
        task = center.create_task("x")
        with pytest.raises(ValidationError):
            center.update_task(task.id, {"owner": 5})


class TestStart:
    def test_start_requires_resolved_dependencies(self, center: ControlCenter) -> None:
        center.register_agent({"id": "forge", "roles": ["backend-dev"], "status": "online"})
        first = center.create_task("Backend schema")
        second = center.create_task("Backend API", depends_on=[first.id])

        with pytest.raises(ValidationError):
            center.start_task(second.id)
        assert center.require_task(second.id).lane == Lane.PROPOSED

        center.complete_task(first.id)
        started = center.start_task(second.id)
        assert started.lane == Lane.DEVELOPMENT
        assert started.status_history[-1]["note"] == "started by forge"
        forge = center.agents.require("forge")
        assert forge.current_task == {"id": second.id, "title": "Backend API"}

    def test_start_takes_unowned_task(self, center: ControlCenter) -> None:
        center.register_agent({"id": "tester", "roles": ["qa"], "status": "online"})
        task = center.create_task("Write docs")
        assert task.owner is None
        started = center.start_task(task.id, "tester")
        assert started.owner == "tester"
        assert center.agents.workload("tester") == 1

    def test_start_refuses_other_owner(self, center: ControlCenter) -> None:
        center.register_agent({"id": "a", "roles": ["qa"], "status": "online"})
        center.register_agent({"id": "b", "roles": ["designer"], "status": "online"})
        task = center.create_task("Test login")
        with pytest.raises(ValidationError):
            center.start_task(task.id, "b")

    def test_start_without_agent(self, center: ControlCenter) -> None:
        task = center.create_task("Write docs")
        with pytest.raises(ValidationError):
            center.start_task(task.id)


class TestBatchAndHousekeeping:
    def test_auto_assign_all_open_unowned(self, center: ControlCenter) -> None:
        ids = [center.create_task(f"Backend job {i}").id for i in range(3)]
        center.create_task("Done already", lane="done")
        center.register_agent({"id": "A", "roles": ["backend-dev"], "status": "online"})
        center.register_agent({"id": "B", "roles": ["backend-dev"], "status": "online"})

        results = center.auto_assign_tasks()

        assert [r.task.id for r in results] == ids
        assert [r.agent.id for r in results] == ["A", "B", "A"]

    def test_registration_recorded(self, center: ControlCenter) -> None:
        center.register_agent({"id": "forge", "roles": ["backend-dev"]})
        event = center.activity.recent(1)[0]
        assert event["type"] == "agent.registered"
        assert event["agent_id"] == "forge"

    def test_prune_uses_configured_age(self, center: ControlCenter) -> None:
        center.register_agent({"id": "forge", "status": "online"})
        assert center.prune_stale_agents() == []
        assert center.prune_notifications() == 0
