"""Recover a project's real filesystem path from its opaque directory name.

The assistant stores each project's sessions under a directory whose name is
derived from the project path. The derivation is lossy, so resolution is a
chain of best-effort strategies tried in order; the first one that answers
wins and a project may legitimately stay unresolved.
"""
from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Callable, Optional, Sequence
from urllib.parse import unquote_plus

logger = logging.getLogger("ccsm.resolver")

_SYSTEM_PATH_PATTERN = re.compile(r"(?:directory|cwd|project)[:\s]+([/~][^\s\"']+)", re.IGNORECASE)


@dataclass(frozen=True)
class ResolverContext:
    """Side data shared by every resolution within one listing request."""

    known_project_paths: tuple[str, ...] = field(default_factory=tuple)


Strategy = Callable[[Path, ResolverContext], Optional[str]]


def load_known_project_paths(user_config_file: Path) -> tuple[str, ...]:
    """Keys of the ``projects`` mapping in the user-level config file."""
    try:
        raw = json.loads(user_config_file.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return ()
    except (OSError, ValueError, RecursionError) as exc:
        logger.debug("Unreadable user config %s: %s", user_config_file, exc)
        return ()
    projects = raw.get("projects") if isinstance(raw, dict) else None
    if not isinstance(projects, dict):
        return ()
    return tuple(str(key) for key in projects)


def _first_line(path: Path) -> Optional[str]:
    with path.open("r", encoding="utf-8", errors="replace") as handle:
        for line in handle:
            if line.strip():
                return line
    return None


def path_from_transcript(project_dir: Path, context: ResolverContext) -> Optional[str]:
    """Read the working directory recorded at the top of the first transcript."""
    transcripts = sorted(name for name in os.listdir(project_dir) if name.endswith(".jsonl"))
    if not transcripts:
        return None
    line = _first_line(project_dir / transcripts[0])
    if line is None:
        return None
    record = json.loads(line)
    if not isinstance(record, dict):
        return None

    cwd = record.get("cwd")
    if isinstance(cwd, str) and cwd:
        return cwd
    nested = record.get("message")
    if isinstance(nested, dict) and isinstance(nested.get("cwd"), str) and nested["cwd"]:
        return nested["cwd"]

    content = record.get("content")
    if record.get("role") == "system" and isinstance(content, str):
        match = _SYSTEM_PATH_PATTERN.search(content)
        if match:
            return match.group(1)
    return None


def path_from_user_config(project_dir: Path, context: ResolverContext) -> Optional[str]:
    """Match the directory name against project paths known to the user config.

    Substring match in either direction: it can pick a similarly named project.
    """
    dir_name = project_dir.name
    for known in context.known_project_paths:
        if dir_name in known or PurePosixPath(known).name in dir_name:
            return known
    return None


def path_from_url_decoded_name(project_dir: Path, context: ResolverContext) -> Optional[str]:
    decoded = unquote_plus(project_dir.name)
    if decoded.startswith("/") and os.path.exists(decoded):
        return decoded
    return None


def path_from_dashed_name(project_dir: Path, context: ResolverContext) -> Optional[str]:
    # Directory names usually start with the dash standing for the root slash.
    candidate = "/" + project_dir.name.lstrip("-").replace("-", "/")
    if os.path.exists(candidate):
        return candidate
    return None


DEFAULT_STRATEGIES: tuple[Strategy, ...] = (
    path_from_transcript,
    path_from_user_config,
    path_from_url_decoded_name,
    path_from_dashed_name,
)


class ProjectPathResolver:
    """Runs the strategy chain for one project directory at a time."""

    def __init__(self, user_config_file: Path, strategies: Sequence[Strategy] = DEFAULT_STRATEGIES):
        self.user_config_file = user_config_file
        self.strategies = tuple(strategies)

    def load_context(self) -> ResolverContext:
        return ResolverContext(known_project_paths=load_known_project_paths(self.user_config_file))

    def resolve(self, project_dir: Path, context: Optional[ResolverContext] = None) -> Optional[str]:
        if context is None:
            context = self.load_context()
        for strategy in self.strategies:
            try:
                resolved = strategy(project_dir, context)
            except (OSError, ValueError, RecursionError) as exc:
                logger.debug("%s failed for %s: %s", strategy.__name__, project_dir.name, exc)
                continue
            if resolved:
                return resolved
        return None
