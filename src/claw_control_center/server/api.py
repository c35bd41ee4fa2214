"""FastAPI application for the Claw Control Center bridge."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from ..errors import NotFoundError, StoreCorruptedError, ValidationError
from ..service import ControlCenter
from .agent_api import create_agent_router
from .notification_api import create_notification_router
from .task_api import create_task_router


def create_app(
    project_dir: Optional[Path] = None,
    enable_cors: bool = True,
) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        project_dir: Default project directory.
        enable_cors: Whether to enable CORS.

    Returns:
        Configured FastAPI app.
    """
    app = FastAPI(
        title="Claw Control Center",
        description="Task board and assignment bridge for coordinating AI coding agents",
        version="0.1.0",
    )

    if enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.state.default_project_dir = project_dir
    centers: dict[Path, ControlCenter] = {}

    def _get_project_dir(project_dir_param: Optional[str] = None) -> Path:
        """Get project directory from parameter or default."""
        if project_dir_param:
            return Path(project_dir_param).expanduser().resolve()
        if app.state.default_project_dir:
            return Path(app.state.default_project_dir).resolve()
        return Path.cwd().resolve()

    def _get_center(project_dir_param: Optional[str] = None) -> ControlCenter:
        # One instance per project so its assignment lock is shared by all requests.
        path = _get_project_dir(project_dir_param)
        center = centers.get(path)
        if center is None:
            center = ControlCenter(path)
            centers[path] = center
            logger.info("Opened control center for {}", path)
        return center

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        logger.debug("{} {} rejected: {}", request.method, request.url.path, exc)
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(StoreCorruptedError)
    async def _store_corrupted(request: Request, exc: StoreCorruptedError) -> JSONResponse:
        logger.error("{} {} failed: {}", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": f"State file is corrupted: {exc}"})

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/activity")
    async def activity(
        project_dir: Optional[str] = Query(None),
        limit: int = Query(50, ge=1, le=500),
    ) -> dict[str, Any]:
        return {"events": _get_center(project_dir).activity.recent(limit)}

    app.include_router(create_task_router(_get_center))
    app.include_router(create_agent_router(_get_center))
    app.include_router(create_notification_router(_get_center))
    return app
