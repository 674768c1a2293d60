"""Readers for the markdown and JSON side files around the session logs."""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from ccsm.date_utils import file_modified_ms
from ccsm.models import ClaudeMdFile, MemoryFile, SkillFile, SkillScope

logger = logging.getLogger("ccsm.files")

SKILL_MANIFEST = "SKILL.md"


def read_text_or_none(path: Path) -> Optional[str]:
    """File content, or None when the file does not exist."""
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except (FileNotFoundError, NotADirectoryError, IsADirectoryError):
        return None


def claude_md_candidates(project_path: str) -> list[Path]:
    root = Path(project_path)
    return [root / "CLAUDE.md", root / ".claude" / "CLAUDE.md"]


def find_claude_md(project_path: Optional[str]) -> Optional[ClaudeMdFile]:
    """Project instructions file, root first then ``.claude/``."""
    if not project_path:
        return None
    for candidate in claude_md_candidates(project_path):
        content = read_text_or_none(candidate)
        if content is not None:
            return ClaudeMdFile(content=content, path=str(candidate))
    return None


def read_memory_files(memory_dir: Path) -> list[MemoryFile]:
    """Markdown files in a project's memory directory, newest first."""
    if not memory_dir.is_dir():
        return []

    files: list[MemoryFile] = []
    for entry in sorted(os.scandir(memory_dir), key=lambda e: e.name):
        if not entry.name.endswith(".md"):
            continue
        path = Path(entry.path)
        try:
            if not entry.is_file():
                continue
            content = path.read_text(encoding="utf-8", errors="replace")
            updated_at = file_modified_ms(path.stat())
        except OSError as exc:
            logger.debug("Skipping memory file %s: %s", path, exc)
            continue
        files.append(
            MemoryFile(name=path.stem, path=str(path), content=content, updatedAt=updated_at)
        )

    files.sort(key=lambda f: f.updatedAt, reverse=True)
    return files


def read_skill_files(skills_dir: Path, scope: SkillScope) -> list[SkillFile]:
    """Skill definitions: loose ``*.md`` files and ``<name>/SKILL.md`` folders."""
    if not skills_dir.is_dir():
        return []

    skills: list[SkillFile] = []
    for entry in sorted(os.scandir(skills_dir), key=lambda e: e.name):
        try:
            if entry.is_file() and entry.name.endswith(".md"):
                name, path = entry.name[: -len(".md")], Path(entry.path)
            elif entry.is_dir():
                name, path = entry.name, Path(entry.path) / SKILL_MANIFEST
            else:
                continue
            content = read_text_or_none(path)
        except OSError as exc:
            logger.debug("Skipping skill %s: %s", entry.name, exc)
            continue
        if content is None:
            continue
        skills.append(SkillFile(name=name, path=str(path), content=content, scope=scope))
    return skills


def read_json_mapping(path: Path) -> Optional[dict[str, Any]]:
    """Parse a JSON object file; missing or malformed files read as None."""
    content = read_text_or_none(path)
    if content is None:
        return None
    try:
        data = json.loads(content)
    except (ValueError, RecursionError) as exc:
        logger.warning(f"Ignoring malformed JSON in {path}: {exc}")
        return None
    return data if isinstance(data, dict) else None
