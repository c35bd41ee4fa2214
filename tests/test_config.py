"""Tests for `.clawhub/config.yaml` loading."""

from __future__ import annotations

from pathlib import Path

from claw_control_center.config import (
    get_auto_assign_on_create,
    get_dev_roles,
    get_log_level,
    get_max_activity_events,
    get_notification_retention_days,
    get_role_pattern_overrides,
    get_stale_agent_seconds,
    load_center_config,
)


def _write_config(project_dir: Path, text: str) -> None:
    state = project_dir / ".clawhub"
    state.mkdir(parents=True, exist_ok=True)
    (state / "config.yaml").write_text(text)


def test_missing_config_uses_defaults(tmp_path: Path) -> None:
    config, err = load_center_config(tmp_path)
    assert config == {}
    assert err is None
    assert get_auto_assign_on_create(config) is True
    assert get_dev_roles(config) == ("frontend-dev", "backend-dev", "fullstack-dev")
    assert get_stale_agent_seconds(config) == 300
    assert get_notification_retention_days(config) == 7
    assert get_max_activity_events(config) == 500
    assert get_log_level(config) == "INFO"
    assert get_role_pattern_overrides(config) == {}


def test_values_are_read(tmp_path: Path) -> None:
    _write_config(
        tmp_path,
        """
assignment:
  auto_assign_on_create: false
  dev_roles: [backend-dev]
  role_patterns:
    security: [cve, pentest]
    qa: "not-a-list"
agents:
  stale_after_seconds: 60
notifications:
  retention_days: 2
activity:
  max_events: 50
logging:
  level: debug
""",
    )
    config, err = load_center_config(tmp_path)
    assert err is None
    assert get_auto_assign_on_create(config) is False
    assert get_dev_roles(config) == ("backend-dev",)
    assert get_role_pattern_overrides(config) == {"security": ["cve", "pentest"]}
    assert get_stale_agent_seconds(config) == 60
    assert get_notification_retention_days(config) == 2
    assert get_max_activity_events(config) == 50
    assert get_log_level(config) == "DEBUG"


def test_invalid_values_fall_back(tmp_path: Path) -> None:
    _write_config(
        tmp_path,
        """
assignment:
  auto_assign_on_create: "nope"
agents:
  stale_after_seconds: -5
logging:
  level: chatty
""",
    )
    config, _ = load_center_config(tmp_path)
    assert get_auto_assign_on_create(config) is True
    assert get_stale_agent_seconds(config) == 300
    assert get_log_level(config) == "INFO"


def test_unparseable_config_reports_error(tmp_path: Path) -> None:
    _write_config(tmp_path, "assignment: [unclosed\n")
    config, err = load_center_config(tmp_path)
    assert config == {}
    assert err is not None and "YAMLError" in err
