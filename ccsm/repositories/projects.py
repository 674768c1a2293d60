"""Filesystem-backed project repository.

Projects are the subdirectories of the projects root. Their metadata is
aggregated from directory probes on every call.
"""
from __future__ import annotations

import asyncio
import logging
import os
import time
from pathlib import Path
from typing import Optional

from ccsm.config import Settings
from ccsm.date_utils import file_modified_ms
from ccsm.models import ClaudeMdFile, GlobalStats, MemoryFile, Project, SkillFile
from ccsm.observability import record_ingestion, start_span
from ccsm.repositories.sessions import TRANSCRIPT_SUFFIX, validate_segment
from ccsm.services.claude_files import find_claude_md, read_memory_files, read_skill_files
from ccsm.services.path_resolver import ProjectPathResolver, ResolverContext

logger = logging.getLogger("ccsm.projects")

MEMORY_DIR = "memory"


def directory_size(root: Path) -> int:
    """Total size in bytes of every regular file below ``root``."""
    total = 0
    pending = [root]
    while pending:
        current = pending.pop()
        try:
            entries = list(os.scandir(current))
        except OSError:
            continue
        for entry in entries:
            try:
                if entry.is_file(follow_symlinks=False):
                    total += entry.stat(follow_symlinks=False).st_size
                elif entry.is_dir(follow_symlinks=False):
                    pending.append(Path(entry.path))
            except OSError:
                continue
    return total


def _session_files(project_dir: Path) -> list[Path]:
    try:
        entries = list(os.scandir(project_dir))
    except OSError as exc:
        logger.debug("Cannot list %s: %s", project_dir, exc)
        return []
    # Counted by name; entries that cannot be stat'ed still count as sessions.
    return [Path(entry.path) for entry in entries if entry.name.endswith(TRANSCRIPT_SUFFIX)]


def _last_active(session_files: list[Path]) -> int:
    last_active = 0
    for path in session_files:
        try:
            last_active = max(last_active, file_modified_ms(path.stat()))
        except OSError:
            continue
    return last_active


def _exists(path: Path) -> bool:
    try:
        return path.exists()
    except OSError:
        return False


class ProjectRepository:
    """Discovers projects and the instruction, memory and skill files around them."""

    def __init__(self, settings: Settings, resolver: Optional[ProjectPathResolver] = None):
        self.settings = settings
        self.resolver = resolver or ProjectPathResolver(settings.user_config_file)

    def _project_names(self) -> list[str]:
        entries = list(os.scandir(self.settings.projects_dir))
        return sorted(entry.name for entry in entries if entry.is_dir(follow_symlinks=False))

    def _build_project(self, name: str, context: ResolverContext) -> Project:
        project_dir = self.settings.projects_dir / name
        project_path = self.resolver.resolve(project_dir, context)

        try:
            claude_md = find_claude_md(project_path)
        except OSError as exc:
            logger.debug("Cannot read CLAUDE.md for %s: %s", name, exc)
            claude_md = None

        session_files = _session_files(project_dir)
        has_project_skills = bool(project_path) and _exists(Path(project_path) / ".claude" / "skills")

        return Project(
            hash=name,
            projectPath=project_path,
            hasClaudeMd=claude_md is not None,
            claudeMdContent=claude_md.content if claude_md else None,
            sessionCount=len(session_files),
            lastActive=_last_active(session_files),
            hasMemory=_exists(project_dir / MEMORY_DIR),
            hasSkills=has_project_skills or _exists(self.settings.user_skills_dir),
        )

    async def list_projects(self) -> list[Project]:
        """All projects, most recently active first."""
        if not self.settings.projects_dir.is_dir():
            return []

        started = time.monotonic()
        with start_span("projects.list"):
            context = await asyncio.to_thread(self.resolver.load_context)
            names = await asyncio.to_thread(self._project_names)
            projects = await asyncio.gather(
                *(asyncio.to_thread(self._build_project, name, context) for name in names)
            )

        # sorted() is stable, so equal lastActive keeps directory name order.
        ordered = sorted(projects, key=lambda p: p.lastActive, reverse=True)
        record_ingestion("project_list", "ok", (time.monotonic() - started) * 1000, project_id="*")
        return ordered

    async def get_project(self, project_hash: str) -> Optional[Project]:
        validate_segment(project_hash, "project hash")
        for project in await self.list_projects():
            if project.hash == project_hash:
                return project
        return None

    async def get_claude_md(self, project_hash: str) -> Optional[ClaudeMdFile]:
        project = await self.get_project(project_hash)
        if project is None or not project.projectPath:
            return None
        return await asyncio.to_thread(find_claude_md, project.projectPath)

    async def get_memory_files(self, project_hash: str) -> list[MemoryFile]:
        memory_dir = self.settings.projects_dir / validate_segment(project_hash, "project hash") / MEMORY_DIR
        return await asyncio.to_thread(read_memory_files, memory_dir)

    async def get_skills(self, project_hash: str) -> list[SkillFile]:
        """User-level skills followed by the project's own ``.claude/skills``."""
        skills = await asyncio.to_thread(read_skill_files, self.settings.user_skills_dir, "user")
        project = await self.get_project(project_hash)
        if project and project.projectPath:
            project_skills_dir = Path(project.projectPath) / ".claude" / "skills"
            skills.extend(await asyncio.to_thread(read_skill_files, project_skills_dir, "project"))
        return skills

    async def get_global_stats(self) -> GlobalStats:
        projects = await self.list_projects()
        total_size = 0
        if self.settings.projects_dir.is_dir():
            total_size = await asyncio.to_thread(directory_size, self.settings.projects_dir)
        return GlobalStats(
            totalProjects=len(projects),
            totalSessions=sum(p.sessionCount for p in projects),
            projectsWithClaudeMd=sum(1 for p in projects if p.hasClaudeMd),
            totalSizeBytes=total_size,
        )
