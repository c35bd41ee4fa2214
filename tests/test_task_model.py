"""Tests for the task model (tasks/model.py)."""

from __future__ import annotations

from claw_control_center.tasks.model import Lane, Task, TaskPriority


class TestTaskDefaults:
    def test_defaults(self) -> None:
        t = Task(title="Write docs")
        assert t.id.startswith("task-")
        assert t.lane == Lane.PROPOSED
        assert t.priority == TaskPriority.P2
        assert t.owner is None
        assert t.depends_on == []
        assert t.acceptance_criteria == []
        assert t.work == {"commits": [], "files": [], "test_results": None, "artifacts": []}

    def test_unique_ids(self) -> None:
        ids = {Task(title="x").id for _ in range(50)}
        assert len(ids) == 50

    def test_priority_sort_key(self) -> None:
        ordered = sorted(TaskPriority, key=lambda p: p.sort_key)
        assert [p.value for p in ordered] == ["P0", "P1", "P2", "P3"]


class TestValidateDict:
    def test_valid_payload(self) -> None:
        assert Task.validate_dict({"title": "ok", "lane": "queued", "priority": "P0"}) == []

    def test_empty_title(self) -> None:
        errors = Task.validate_dict({"title": "   "})
        assert any("title" in e for e in errors)

    def test_title_only_checked_when_present(self) -> None:
        assert Task.validate_dict({"priority": "P1"}) == []

    def test_bad_enums(self) -> None:
        errors = Task.validate_dict({"title": "x", "lane": "limbo", "priority": "P9"})
        assert len(errors) == 2

    def test_bad_types(self) -> None:
        errors = Task.validate_dict({
            "depends_on": "task-1",
            "owner": 5,
            "estimated_hours": -1,
            "metadata": [],
        })
        assert len(errors) == 4

    def test_bool_estimate_rejected(self) -> None:
        assert Task.validate_dict({"estimated_hours": True})


class TestHistory:
    def test_record_creation(self) -> None:
        t = Task(title="x", lane=Lane.QUEUED)
        t.record_creation()
        assert t.status_history == [{"at": t.created_at, "to": "queued", "note": "created"}]

    def test_move_to_appends_entry(self) -> None:
        t = Task(title="x")
        t.record_creation()
        assert t.move_to(Lane.DEVELOPMENT, "go") is True
        last = t.status_history[-1]
        assert last["from"] == "proposed"
        assert last["to"] == "development"
        assert last["note"] == "go"
        assert t.lane == Lane.DEVELOPMENT

    def test_move_to_same_lane_is_noop(self) -> None:
        t = Task(title="x", lane=Lane.DONE)
        t.record_creation()
        assert t.move_to(Lane.DONE) is False
        assert len(t.status_history) == 1

    def test_remove_dependency(self) -> None:
        t = Task(title="x", depends_on=["a", "b"])
        assert t.remove_dependency("a") is True
        assert t.depends_on == ["b"]
        assert t.remove_dependency("zzz") is False


class TestSerialization:
    def test_round_trip_keeps_enums_and_work(self) -> None:
        t = Task(title="Ship", lane=Lane.REVIEW, priority=TaskPriority.P0, tags=["api"])
        t.work["commits"].append({"hash": "abc", "message": "m"})
        data = t.to_dict()
        assert data["lane"] == "review"
        assert data["priority"] == "P0"
        restored = Task.from_dict(data)
        assert restored == t

    def test_from_dict_tolerates_unknown_enum_values(self) -> None:
        t = Task.from_dict({"id": "t1", "title": "x", "lane": "limbo", "priority": "urgent"})
        assert t.lane == Lane.PROPOSED
        assert t.priority == TaskPriority.P2

    def test_from_dict_fills_missing_work_keys(self) -> None:
        t = Task.from_dict({"id": "t1", "title": "x", "work": {"commits": [{"hash": "a"}]}})
        assert t.work["files"] == []
        assert t.work["commits"] == [{"hash": "a"}]

    def test_copy_is_deep(self) -> None:
        t = Task(title="x", depends_on=["a"])
        c = t.copy()
        c.depends_on.append("b")
        assert t.depends_on == ["a"]
