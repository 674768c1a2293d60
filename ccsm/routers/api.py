"""API routers for projects, sessions and user-level data."""
from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from ccsm.models import (
    BatchDeleteRequest,
    BatchDeleteResult,
    ClaudeMdFile,
    DataResponse,
    DeleteResult,
    GlobalStats,
    MemoryFile,
    Project,
    Session,
    SessionSummary,
    SkillFile,
)
from ccsm.repositories import ProjectRepository, SessionRepository, UserDataRepository

logger = logging.getLogger("ccsm.api")

projects_router = APIRouter(prefix="/api/projects", tags=["projects"])
sessions_router = APIRouter(prefix="/api/projects/{project_hash}/sessions", tags=["sessions"])
user_router = APIRouter(prefix="/api", tags=["user"])


# ── Dependencies ───────────────────────────────────────────────────

def get_project_repository(request: Request) -> ProjectRepository:
    return request.app.state.project_repository


def get_session_repository(request: Request) -> SessionRepository:
    return request.app.state.session_repository


def get_user_data_repository(request: Request) -> UserDataRepository:
    return request.app.state.user_data_repository


def _bad_request(exc: ValueError) -> HTTPException:
    return HTTPException(status_code=400, detail=str(exc))


def _io_failure(action: str, exc: OSError) -> HTTPException:
    logger.exception(f"Failed to {action}: {exc}")
    return HTTPException(status_code=500, detail=f"Failed to {action}")


# ── Projects ───────────────────────────────────────────────────────

@projects_router.get("", response_model=DataResponse[list[Project]])
async def list_projects(repo: ProjectRepository = Depends(get_project_repository)):
    try:
        projects = await repo.list_projects()
    except OSError as exc:
        raise _io_failure("list projects", exc) from exc
    return DataResponse(data=projects)


@projects_router.get("/{project_hash}", response_model=DataResponse[Project])
async def get_project(project_hash: str, repo: ProjectRepository = Depends(get_project_repository)):
    try:
        project = await repo.get_project(project_hash)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    except OSError as exc:
        raise _io_failure("get project", exc) from exc
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return DataResponse(data=project)


@projects_router.get("/{project_hash}/claude-md", response_model=DataResponse[ClaudeMdFile])
async def get_project_claude_md(project_hash: str, repo: ProjectRepository = Depends(get_project_repository)):
    try:
        claude_md = await repo.get_claude_md(project_hash)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    except OSError as exc:
        raise _io_failure("read CLAUDE.md", exc) from exc
    if claude_md is None:
        raise HTTPException(status_code=404, detail="CLAUDE.md not found")
    return DataResponse(data=claude_md)


@projects_router.get("/{project_hash}/memory", response_model=DataResponse[list[MemoryFile]])
async def get_project_memory(project_hash: str, repo: ProjectRepository = Depends(get_project_repository)):
    try:
        memory = await repo.get_memory_files(project_hash)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    except OSError as exc:
        raise _io_failure("read memory files", exc) from exc
    return DataResponse(data=memory)


@projects_router.get("/{project_hash}/skills", response_model=DataResponse[list[SkillFile]])
async def get_project_skills(project_hash: str, repo: ProjectRepository = Depends(get_project_repository)):
    try:
        skills = await repo.get_skills(project_hash)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    except OSError as exc:
        raise _io_failure("read skills", exc) from exc
    return DataResponse(data=skills)


# ── Sessions ───────────────────────────────────────────────────────

@sessions_router.get(
    "",
    response_model=DataResponse[list[SessionSummary]],
    response_model_exclude_none=True,
)
async def list_sessions(project_hash: str, repo: SessionRepository = Depends(get_session_repository)):
    try:
        sessions = await repo.list_sessions(project_hash)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    except OSError as exc:
        raise _io_failure("list sessions", exc) from exc
    return DataResponse(data=sessions)


@sessions_router.post("/batch-delete", response_model=DataResponse[BatchDeleteResult])
async def batch_delete_sessions(
    project_hash: str,
    body: BatchDeleteRequest,
    repo: SessionRepository = Depends(get_session_repository),
):
    if not body.sessionIds:
        raise HTTPException(status_code=400, detail="sessionIds must be a non-empty list")
    try:
        result = await repo.delete_sessions(project_hash, body.sessionIds)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    except OSError as exc:
        raise _io_failure("delete sessions", exc) from exc
    return DataResponse(data=result)


@sessions_router.get(
    "/{session_id}",
    response_model=DataResponse[Session],
    response_model_exclude_none=True,
)
async def get_session(
    project_hash: str,
    session_id: str,
    repo: SessionRepository = Depends(get_session_repository),
):
    try:
        session = await repo.get_session(project_hash, session_id)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    except OSError as exc:
        raise _io_failure("read session", exc) from exc
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return DataResponse(data=session)


@sessions_router.delete("/{session_id}", response_model=DataResponse[DeleteResult])
async def delete_session(
    project_hash: str,
    session_id: str,
    repo: SessionRepository = Depends(get_session_repository),
):
    try:
        deleted = await repo.delete_session(project_hash, session_id)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    except OSError as exc:
        raise _io_failure("delete session", exc) from exc
    if not deleted:
        raise HTTPException(status_code=404, detail="Session not found")
    return DataResponse(data=DeleteResult())


# ── User-level data ────────────────────────────────────────────────

@user_router.get("/settings", response_model=DataResponse[Optional[dict[str, Any]]])
async def get_user_settings(repo: UserDataRepository = Depends(get_user_data_repository)):
    try:
        settings = await repo.get_settings()
    except OSError as exc:
        raise _io_failure("read settings", exc) from exc
    return DataResponse(data=settings)


@user_router.get("/user-claude-md", response_model=DataResponse[Optional[str]])
async def get_user_claude_md(repo: UserDataRepository = Depends(get_user_data_repository)):
    try:
        content = await repo.get_claude_md()
    except OSError as exc:
        raise _io_failure("read user CLAUDE.md", exc) from exc
    return DataResponse(data=content)


@user_router.get("/stats", response_model=DataResponse[GlobalStats])
async def get_global_stats(repo: ProjectRepository = Depends(get_project_repository)):
    try:
        stats = await repo.get_global_stats()
    except OSError as exc:
        raise _io_failure("compute stats", exc) from exc
    return DataResponse(data=stats)
