"""Agent API endpoints: registration, heartbeats, status and workload."""

from __future__ import annotations

from typing import Any, Callable, Optional

from fastapi import APIRouter, Query
from loguru import logger
from pydantic import BaseModel, Field

from ..service import ControlCenter


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------

class RegisterAgentRequest(BaseModel):
    id: str
    name: Optional[str] = None
    emoji: Optional[str] = None
    roles: Optional[list[str]] = None
    model: Optional[str] = None
    workspace: Optional[str] = None
    status: Optional[str] = "online"
    metadata: Optional[dict[str, Any]] = None


class HeartbeatRequest(BaseModel):
    status: Optional[str] = None
    current_task: Optional[Any] = None


class StatusRequest(BaseModel):
    status: str
    current_task: Optional[Any] = None


class PruneRequest(BaseModel):
    max_age_seconds: Optional[int] = Field(default=None, ge=1)


class AgentResponse(BaseModel):
    agent: dict[str, Any]


class AgentListResponse(BaseModel):
    agents: list[dict[str, Any]]
    total: int


# ---------------------------------------------------------------------------
# Router factory
# ---------------------------------------------------------------------------

def create_agent_router(get_center: Callable[[Optional[str]], ControlCenter]) -> APIRouter:
    router = APIRouter(prefix="/api/agents", tags=["agents"])

    @router.post("/register", response_model=AgentResponse)
    async def register(
        body: RegisterAgentRequest,
        project_dir: Optional[str] = Query(None),
    ) -> AgentResponse:
        agent = get_center(project_dir).register_agent(body.model_dump())
        logger.info("Agent {} registered via API", agent.id)
        return AgentResponse(agent=agent.to_dict())

    @router.get("", response_model=AgentListResponse)
    async def list_agents(
        project_dir: Optional[str] = Query(None),
        status: Optional[str] = Query(None),
        role: Optional[str] = Query(None),
    ) -> AgentListResponse:
        agents = get_center(project_dir).agents.list_agents(status=status, role=role)
        return AgentListResponse(agents=[a.to_dict() for a in agents], total=len(agents))

    @router.get("/workload")
    async def workload(project_dir: Optional[str] = Query(None)) -> dict[str, Any]:
        return {"agents": get_center(project_dir).assignment.workload_report()}

    @router.get("/best")
    async def best_for_role(
        role: str = Query(...),
        project_dir: Optional[str] = Query(None),
    ) -> dict[str, Any]:
        agent = get_center(project_dir).assignment.best_agent_for_role(role)
        return {"role": role, "agent": agent.to_dict() if agent else None}

    @router.post("/prune")
    async def prune(
        body: PruneRequest,
        project_dir: Optional[str] = Query(None),
    ) -> dict[str, Any]:
        removed = get_center(project_dir).prune_stale_agents(body.max_age_seconds)
        return {"removed": removed}

    @router.get("/{agent_id}", response_model=AgentResponse)
    async def get_agent(agent_id: str, project_dir: Optional[str] = Query(None)) -> AgentResponse:
        return AgentResponse(agent=get_center(project_dir).agents.require(agent_id).to_dict())

    @router.post("/{agent_id}/heartbeat", response_model=AgentResponse)
    async def heartbeat(
        agent_id: str,
        body: HeartbeatRequest,
        project_dir: Optional[str] = Query(None),
    ) -> AgentResponse:
        agent = get_center(project_dir).agents.heartbeat(agent_id, body.status, body.current_task)
        return AgentResponse(agent=agent.to_dict())

    @router.put("/{agent_id}/status", response_model=AgentResponse)
    async def update_status(
        agent_id: str,
        body: StatusRequest,
        project_dir: Optional[str] = Query(None),
    ) -> AgentResponse:
        agent = get_center(project_dir).agents.update_status(agent_id, body.status, body.current_task)
        return AgentResponse(agent=agent.to_dict())

    @router.get("/{agent_id}/tasks")
    async def agent_tasks(
        agent_id: str,
        project_dir: Optional[str] = Query(None),
        lane: Optional[str] = Query(None),
    ) -> dict[str, Any]:
        center = get_center(project_dir)
        agent = center.agents.require(agent_id)
        tasks = center.list_tasks(owner=agent.id, lane=lane)
        return {
            "agent_id": agent.id,
            "active_tasks": list(agent.active_tasks),
            "tasks": [t.to_dict() for t in tasks],
            "total": len(tasks),
        }

    @router.delete("/{agent_id}")
    async def delete_agent(agent_id: str, project_dir: Optional[str] = Query(None)) -> dict[str, str]:
        get_center(project_dir).agents.delete(agent_id)
        return {"status": "deleted"}

    return router
