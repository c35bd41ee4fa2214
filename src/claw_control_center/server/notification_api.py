"""Notification inbox endpoints."""

from __future__ import annotations

from typing import Any, Callable, Optional

from fastapi import APIRouter, Query

from ..service import ControlCenter


def create_notification_router(get_center: Callable[[Optional[str]], ControlCenter]) -> APIRouter:
    router = APIRouter(prefix="/api", tags=["notifications"])

    @router.get("/agents/{agent_id}/notifications")
    async def list_notifications(
        agent_id: str,
        project_dir: Optional[str] = Query(None),
        unread: bool = Query(False),
        kind: Optional[str] = Query(None),
        limit: Optional[int] = Query(None, ge=1),
    ) -> dict[str, Any]:
        items = get_center(project_dir).notifications.list_for_agent(
            agent_id, unread=unread, kind=kind, limit=limit
        )
        return {"notifications": [n.to_dict() for n in items], "total": len(items)}

    @router.put("/agents/{agent_id}/notifications/read")
    async def mark_all_read(agent_id: str, project_dir: Optional[str] = Query(None)) -> dict[str, Any]:
        return {"marked": get_center(project_dir).notifications.mark_all_read(agent_id)}

    @router.put("/notifications/{notification_id}/read")
    async def mark_read(notification_id: str, project_dir: Optional[str] = Query(None)) -> dict[str, Any]:
        notification = get_center(project_dir).notifications.mark_read(notification_id)
        return {"notification": notification.to_dict()}

    @router.put("/notifications/{notification_id}/delivered")
    async def mark_delivered(
        notification_id: str,
        project_dir: Optional[str] = Query(None),
    ) -> dict[str, Any]:
        notification = get_center(project_dir).notifications.mark_delivered(notification_id)
        return {"notification": notification.to_dict()}

    @router.delete("/notifications/{notification_id}")
    async def delete_notification(
        notification_id: str,
        project_dir: Optional[str] = Query(None),
    ) -> dict[str, str]:
        get_center(project_dir).notifications.delete(notification_id)
        return {"status": "deleted"}

    return router
