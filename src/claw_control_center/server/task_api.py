"""Task API endpoints for the control-center board.

This module provides a FastAPI router with CRUD, assignment, dependency,
collaboration and work-reporting endpoints. It is mounted under
``/api/tasks`` by the main ``create_app`` factory.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

from fastapi import APIRouter, Query
from loguru import logger
from pydantic import BaseModel, Field

from ..errors import NotFoundError
from ..service import ControlCenter


# ---------------------------------------------------------------------------
# Pydantic request / response models
# ---------------------------------------------------------------------------

class CreateTaskRequest(BaseModel):
    title: Optional[str] = None
    description: str = ""
    lane: str = "proposed"
    priority: str = "P2"
    owner: Optional[str] = None
    acceptance_criteria: list[str] = Field(default_factory=list)
    depends_on: list[str] = Field(default_factory=list)
    parent_id: Optional[str] = None
    project_id: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    estimated_hours: Optional[float] = None
    created_by: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class AssignRequest(BaseModel):
    agent_id: str


class StartRequest(BaseModel):
    agent_id: Optional[str] = None


class CompleteRequest(BaseModel):
    note: Optional[str] = None


class BatchAssignRequest(BaseModel):
    task_ids: Optional[list[str]] = None


class DependenciesRequest(BaseModel):
    depends_on: list[str]


class CommentRequest(BaseModel):
    text: str
    by: Optional[str] = None


class TimeRequest(BaseModel):
    hours: float
    agent_id: Optional[str] = None
    start: Optional[str] = None
    end: Optional[str] = None
    note: Optional[str] = None


class CommitsRequest(BaseModel):
    commits: list[dict[str, Any]]


class FilesRequest(BaseModel):
    files: list[dict[str, Any]]


class TestResultsRequest(BaseModel):
    passed: int = 0
    failed: int = 0
    skipped: int = 0


class ArtifactsRequest(BaseModel):
    artifacts: list[dict[str, Any]]


class TaskResponse(BaseModel):
    """Standard wrapper for task responses."""
    task: dict[str, Any]


class CreateTaskResponse(BaseModel):
    task: dict[str, Any]
    assignment: Optional[dict[str, Any]] = None


class TaskListResponse(BaseModel):
    tasks: list[dict[str, Any]]
    total: int


class BoardResponse(BaseModel):
    columns: dict[str, list[dict[str, Any]]]


class CompleteResponse(BaseModel):
    task: dict[str, Any]
    unblocked: list[str]


# ---------------------------------------------------------------------------
# Router factory
# ---------------------------------------------------------------------------

def create_task_router(get_center: Callable[[Optional[str]], ControlCenter]) -> APIRouter:
    """Create the task API router.

    Parameters
    ----------
    get_center:
        A callable ``(project_dir_param: str | None) -> ControlCenter`` that
        resolves the control center for the current request's project.
    """
    router = APIRouter(prefix="/api/tasks", tags=["tasks"])

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    @router.get("", response_model=TaskListResponse)
    async def list_tasks(
        project_dir: Optional[str] = Query(None),
        lane: Optional[str] = Query(None),
        owner: Optional[str] = Query(None),
        priority: Optional[str] = Query(None),
        tag: Optional[str] = Query(None),
        search: Optional[str] = Query(None),
        parent_id: Optional[str] = Query(None),
    ) -> TaskListResponse:
        center = get_center(project_dir)
        tasks = center.list_tasks(
            lane=lane, owner=owner, priority=priority, tag=tag, search=search, parent_id=parent_id
        )
        data = [t.to_dict() for t in tasks]
        return TaskListResponse(tasks=data, total=len(data))

    @router.post("", response_model=CreateTaskResponse, status_code=201)
    async def create_task(
        body: CreateTaskRequest,
        project_dir: Optional[str] = Query(None),
    ) -> CreateTaskResponse:
        center = get_center(project_dir)
        fields = body.model_dump()
        created = center.create_and_assign(fields.pop("title"), **fields)
        logger.info("API created task {}", created.task.id)
        return CreateTaskResponse(
            task=created.task.to_dict(),
            assignment=created.assignment.to_dict() if created.assignment else None,
        )

    @router.get("/board", response_model=BoardResponse)
    async def get_board(project_dir: Optional[str] = Query(None)) -> BoardResponse:
        return BoardResponse(columns=get_center(project_dir).tasks.get_board())

    @router.get("/cycles")
    async def get_cycles(project_dir: Optional[str] = Query(None)) -> dict[str, Any]:
        cycles = get_center(project_dir).tasks.find_dependency_cycles()
        return {"cycles": cycles, "total": len(cycles)}

    @router.get("/blocked", response_model=TaskListResponse)
    async def get_blocked(project_dir: Optional[str] = Query(None)) -> TaskListResponse:
        data = [t.to_dict() for t in get_center(project_dir).tasks.get_blocked_tasks()]
        return TaskListResponse(tasks=data, total=len(data))

    @router.post("/auto-assign")
    async def auto_assign_batch(
        body: BatchAssignRequest,
        project_dir: Optional[str] = Query(None),
    ) -> dict[str, Any]:
        results = get_center(project_dir).auto_assign_tasks(body.task_ids)
        return {
            "results": [r.to_dict() for r in results],
            "assigned": sum(1 for r in results if r.assigned),
        }

    @router.get("/{task_id}", response_model=TaskResponse)
    async def get_task(task_id: str, project_dir: Optional[str] = Query(None)) -> TaskResponse:
        task = get_center(project_dir).get_task(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        return TaskResponse(task=task.to_dict())

    @router.patch("/{task_id}", response_model=TaskResponse)
    async def update_task(
        task_id: str,
        body: dict[str, Any],
        project_dir: Optional[str] = Query(None),
    ) -> TaskResponse:
        task = get_center(project_dir).update_task(task_id, body)
        return TaskResponse(task=task.to_dict())

    # ------------------------------------------------------------------
    # Assignment and lifecycle
    # ------------------------------------------------------------------

    @router.post("/{task_id}/auto-assign")
    async def auto_assign(task_id: str, project_dir: Optional[str] = Query(None)) -> dict[str, Any]:
        return get_center(project_dir).auto_assign_task(task_id).to_dict()

    @router.get("/{task_id}/suggestions")
    async def suggestions(task_id: str, project_dir: Optional[str] = Query(None)) -> dict[str, Any]:
        return get_center(project_dir).assignment.suggest(task_id)

    @router.post("/{task_id}/assign")
    async def assign(
        task_id: str,
        body: AssignRequest,
        project_dir: Optional[str] = Query(None),
    ) -> dict[str, Any]:
        return get_center(project_dir).assign_task(task_id, body.agent_id).to_dict()

    @router.post("/{task_id}/start", response_model=TaskResponse)
    async def start(
        task_id: str,
        body: StartRequest,
        project_dir: Optional[str] = Query(None),
    ) -> TaskResponse:
        task = get_center(project_dir).start_task(task_id, body.agent_id)
        return TaskResponse(task=task.to_dict())

    @router.post("/{task_id}/complete", response_model=CompleteResponse)
    async def complete(
        task_id: str,
        body: CompleteRequest,
        project_dir: Optional[str] = Query(None),
    ) -> CompleteResponse:
        update = get_center(project_dir).complete_task(task_id, body.note)
        return CompleteResponse(task=update.task.to_dict(), unblocked=[t.id for t in update.unblocked])

    # ------------------------------------------------------------------
    # Dependencies
    # ------------------------------------------------------------------

    @router.put("/{task_id}/dependencies", response_model=TaskResponse)
    async def set_dependencies(
        task_id: str,
        body: DependenciesRequest,
        project_dir: Optional[str] = Query(None),
    ) -> TaskResponse:
        task = get_center(project_dir).tasks.set_dependencies(task_id, body.depends_on)
        return TaskResponse(task=task.to_dict())

    @router.get("/{task_id}/context")
    async def get_context(task_id: str, project_dir: Optional[str] = Query(None)) -> dict[str, Any]:
        return get_center(project_dir).tasks.get_context(task_id)

    @router.get("/{task_id}/activity")
    async def get_task_activity(
        task_id: str,
        project_dir: Optional[str] = Query(None),
        limit: int = Query(50, ge=1, le=500),
    ) -> dict[str, Any]:
        center = get_center(project_dir)
        center.require_task(task_id)
        return {"events": center.tasks.get_task_events(task_id, limit)}

    # ------------------------------------------------------------------
    # Collaboration and time
    # ------------------------------------------------------------------

    @router.post("/{task_id}/comments", response_model=TaskResponse, status_code=201)
    async def add_comment(
        task_id: str,
        body: CommentRequest,
        project_dir: Optional[str] = Query(None),
    ) -> TaskResponse:
        task = get_center(project_dir).tasks.add_comment(task_id, body.text, by=body.by)
        return TaskResponse(task=task.to_dict())

    @router.post("/{task_id}/time", response_model=TaskResponse, status_code=201)
    async def log_time(
        task_id: str,
        body: TimeRequest,
        project_dir: Optional[str] = Query(None),
    ) -> TaskResponse:
        task = get_center(project_dir).tasks.log_time(task_id, **body.model_dump())
        return TaskResponse(task=task.to_dict())

    # ------------------------------------------------------------------
    # Work reporting
    # ------------------------------------------------------------------

    @router.post("/{task_id}/commits")
    async def report_commits(
        task_id: str,
        body: CommitsRequest,
        project_dir: Optional[str] = Query(None),
    ) -> dict[str, Any]:
        return get_center(project_dir).tasks.record_commits(task_id, body.commits)

    @router.post("/{task_id}/files")
    async def report_files(
        task_id: str,
        body: FilesRequest,
        project_dir: Optional[str] = Query(None),
    ) -> dict[str, Any]:
        return get_center(project_dir).tasks.record_files(task_id, body.files)

    @router.post("/{task_id}/tests")
    async def report_tests(
        task_id: str,
        body: TestResultsRequest,
        project_dir: Optional[str] = Query(None),
    ) -> dict[str, Any]:
        return get_center(project_dir).tasks.record_test_results(task_id, **body.model_dump())

    @router.post("/{task_id}/artifacts")
    async def report_artifacts(
        task_id: str,
        body: ArtifactsRequest,
        project_dir: Optional[str] = Query(None),
    ) -> dict[str, Any]:
        return get_center(project_dir).tasks.record_artifacts(task_id, body.artifacts)

    @router.get("/{task_id}/work")
    async def get_work(task_id: str, project_dir: Optional[str] = Query(None)) -> dict[str, Any]:
        return get_center(project_dir).tasks.work_summary(task_id)

    return router
