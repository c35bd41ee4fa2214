"""Load optional control-center configuration from `.clawhub/config.yaml`."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from .constants import (
    CONFIG_FILE,
    DEFAULT_LOG_LEVEL,
    DEFAULT_MAX_ACTIVITY_EVENTS,
    DEFAULT_NOTIFICATION_RETENTION_DAYS,
    DEFAULT_STALE_AGENT_SECONDS,
    DEV_ROLES,
    STATE_DIR_NAME,
)
from .io_utils import _load_data_with_error

VALID_LOG_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}


def load_center_config(project_dir: Path) -> tuple[dict[str, Any], str | None]:
    """Load the optional config file.

    Args:
        project_dir: Project root directory (the parent of `.clawhub/`).

    Returns:
        A tuple of `(config, error_message)`. If the file is missing, returns `({}, None)`.
    """
    path = project_dir.resolve() / STATE_DIR_NAME / CONFIG_FILE
    if not path.exists():
        return {}, None
    data, err = _load_data_with_error(path, {})
    if err:
        return {}, err
    return data, None


def _get_nested(config: dict[str, Any], *keys: str) -> Any:
    cur: Any = config
    for key in keys:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(key)
    return cur


def _positive_int(raw: Any, default: int) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int) or raw <= 0:
        return default
    return raw


def get_auto_assign_on_create(config: dict[str, Any]) -> bool:
    raw = _get_nested(config, "assignment", "auto_assign_on_create")
    return raw if isinstance(raw, bool) else True


def get_role_pattern_overrides(config: dict[str, Any]) -> dict[str, list[str]]:
    """Extract `assignment.role_patterns` as `{role: [regex, ...]}`.

    Entries that are not a list of strings are dropped.
    """
    raw = _get_nested(config, "assignment", "role_patterns")
    if not isinstance(raw, dict):
        return {}
    overrides: dict[str, list[str]] = {}
    for role, patterns in raw.items():
        if not isinstance(patterns, list):
            continue
        cleaned = [p for p in patterns if isinstance(p, str) and p.strip()]
        if cleaned:
            overrides[str(role)] = cleaned
    return overrides


def get_dev_roles(config: dict[str, Any]) -> tuple[str, ...]:
    raw = _get_nested(config, "assignment", "dev_roles")
    if isinstance(raw, list):
        roles = tuple(str(r) for r in raw if isinstance(r, str) and r.strip())
        if roles:
            return roles
    return DEV_ROLES


def get_stale_agent_seconds(config: dict[str, Any]) -> int:
    return _positive_int(_get_nested(config, "agents", "stale_after_seconds"), DEFAULT_STALE_AGENT_SECONDS)


def get_notification_retention_days(config: dict[str, Any]) -> int:
    return _positive_int(
        _get_nested(config, "notifications", "retention_days"),
        DEFAULT_NOTIFICATION_RETENTION_DAYS,
    )


def get_max_activity_events(config: dict[str, Any]) -> int:
    return _positive_int(_get_nested(config, "activity", "max_events"), DEFAULT_MAX_ACTIVITY_EVENTS)


def get_log_level(config: dict[str, Any]) -> str:
    raw = _get_nested(config, "logging", "level")
    if isinstance(raw, str) and raw.upper() in VALID_LOG_LEVELS:
        return raw.upper()
    return DEFAULT_LOG_LEVEL
