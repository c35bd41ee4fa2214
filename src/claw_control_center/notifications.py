"""Agent notifications.

Notifications are persisted in ``.clawhub/notifications.yaml`` and read by
agents when they poll. Delivery itself (push, retry) happens elsewhere; this
store only records what each agent should be told and whether it was seen.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from .constants import DEFAULT_NOTIFICATION_RETENTION_DAYS, NOTIFICATIONS_FILE, NOTIFICATIONS_LOCK_FILE
from .errors import NotFoundError, ValidationError
from .storage import YamlCollection
from .utils import _cutoff_iso, _now_iso, _parse_iso

NOTIFICATION_KINDS = {"task-assigned", "task-unblocked", "mention", "comment", "info"}


def _gen_notification_id() -> str:
    return f"notif-{uuid.uuid4().hex[:8]}"


@dataclass
class Notification:
    agent_id: str
    kind: str
    task_id: Optional[str] = None
    title: str = ""
    text: str = ""
    source: Optional[str] = None
    project_id: Optional[str] = None
    read: bool = False
    delivered: bool = False
    delivered_at: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=_gen_notification_id)
    created_at: str = field(default_factory=_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Notification":
        return cls(
            id=str(data.get("id") or _gen_notification_id()),
            agent_id=str(data.get("agent_id", "")),
            kind=str(data.get("kind", "info")),
            task_id=data.get("task_id"),
            title=str(data.get("title") or ""),
            text=str(data.get("text") or ""),
            source=data.get("source"),
            project_id=data.get("project_id"),
            read=bool(data.get("read", False)),
            delivered=bool(data.get("delivered", False)),
            delivered_at=data.get("delivered_at"),
            metadata=dict(data.get("metadata") or {}),
            created_at=str(data.get("created_at") or _now_iso()),
        )


class NotificationStore:
    """File-backed notification inbox, one logical inbox per agent."""

    def __init__(self, state_dir: Path) -> None:
        self.store = YamlCollection[Notification](
            state_dir / NOTIFICATIONS_FILE,
            state_dir / NOTIFICATIONS_LOCK_FILE,
            "notifications",
            loader=Notification.from_dict,
            dumper=Notification.to_dict,
            key_of=lambda n: n.id,
        )

    def notify(
        self,
        agent_id: str,
        kind: str,
        task_id: Optional[str] = None,
        *,
        title: str = "",
        text: str = "",
        source: Optional[str] = None,
        project_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Notification:
        """Queue a notification for *agent_id*.

        Args:
            agent_id: Recipient agent.
            kind: Notification kind, e.g. ``task-assigned`` or ``task-unblocked``.
            task_id: Related task, if any.
            title: Short headline.
            text: Body text.
            source: Who or what raised it (``auto-assign``, an agent id, ...).
            project_id: Optional project grouping.
            metadata: Free-form extras.

        Returns:
            The stored notification.
        """
        if not agent_id:
            raise ValidationError("Notification recipient 'agent_id' is required")
        if kind not in NOTIFICATION_KINDS:
            raise ValidationError(f"'kind' must be one of {sorted(NOTIFICATION_KINDS)}, got '{kind}'")
        notification = Notification(
            agent_id=agent_id,
            kind=kind,
            task_id=task_id,
            title=title,
            text=text,
            source=source,
            project_id=project_id,
            metadata=dict(metadata or {}),
        )
        with self.store.transaction() as tx:
            tx.add(notification)
        logger.debug("Notification {} ({}) queued for {}", notification.id, kind, agent_id)
        return notification

    def get(self, notification_id: str) -> Optional[Notification]:
        return self.store.get_one(notification_id)

    def list_for_agent(
        self,
        agent_id: str,
        unread: bool = False,
        kind: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[Notification]:
        """Notifications for *agent_id*, newest first."""
        items = [
            n for n in self.store.read_snapshot()
            if n.agent_id == agent_id
            and (not unread or not n.read)
            and (kind is None or n.kind == kind)
        ]
        items.reverse()
        items.sort(key=lambda n: n.created_at, reverse=True)
        return items[:limit] if limit else items

    def undelivered(self, agent_id: Optional[str] = None) -> list[Notification]:
        return [
            n for n in self.store.read_snapshot()
            if not n.delivered and (agent_id is None or n.agent_id == agent_id)
        ]

    def mark_read(self, notification_id: str) -> Notification:
        with self.store.transaction() as tx:
            notification = self._require(tx, notification_id)
            if not notification.read:
                notification.read = True
                tx.mark_dirty()
        return notification

    def mark_all_read(self, agent_id: str) -> int:
        count = 0
        with self.store.transaction() as tx:
            for notification in tx.list_all():
                if notification.agent_id == agent_id and not notification.read:
                    notification.read = True
                    count += 1
            if count:
                tx.mark_dirty()
        return count

    def mark_delivered(self, notification_id: str) -> Notification:
        with self.store.transaction() as tx:
            notification = self._require(tx, notification_id)
            if not notification.delivered:
                notification.delivered = True
                notification.delivered_at = _now_iso()
                tx.mark_dirty()
        return notification

    def delete(self, notification_id: str) -> None:
        with self.store.transaction() as tx:
            self._require(tx, notification_id)
            tx.remove(notification_id)

    def prune_old(self, retention_days: int = DEFAULT_NOTIFICATION_RETENTION_DAYS) -> int:
        """Drop delivered notifications older than *retention_days*."""
        cutoff = _parse_iso(_cutoff_iso(retention_days))
        removed = 0
        with self.store.transaction() as tx:
            for notification in tx.list_all():
                created = _parse_iso(notification.created_at)
                if notification.delivered and created is not None and created < cutoff:
                    tx.remove(notification.id)
                    removed += 1
        if removed:
            logger.info("Pruned {} delivered notifications older than {} days", removed, retention_days)
        return removed

    @staticmethod
    def _require(tx: Any, notification_id: str) -> Notification:
        notification = tx.get(notification_id)
        if notification is None:
            raise NotFoundError("Notification", notification_id)
        return notification
