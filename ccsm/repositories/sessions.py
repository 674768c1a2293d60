"""Filesystem-backed session repository.

Every call re-reads the projects directory; nothing is cached between
requests. Per-file work fans out to worker threads and is joined before the
call returns.
"""
from __future__ import annotations

import asyncio
import logging
import os
import shutil
import stat
import time
from pathlib import Path
from typing import Optional

from ccsm.date_utils import file_created_ms, file_modified_ms
from ccsm.models import BatchDeleteResult, Session, SessionSummary
from ccsm.observability import record_ingestion, record_parser_failure, start_span
from ccsm.parsers.transcripts import TranscriptSummary, parse_transcript, summarize_transcript

logger = logging.getLogger("ccsm.sessions")

TRANSCRIPT_SUFFIX = ".jsonl"


def validate_segment(value: str, label: str) -> str:
    """Reject identifiers that would address anything outside the projects root."""
    if not value or value in (".", "..") or "/" in value or "\\" in value or "\x00" in value:
        raise ValueError(f"Invalid {label}: {value!r}")
    return value


def _summary_model(
    path: Path,
    project_hash: str,
    stats: os.stat_result,
    summary: TranscriptSummary,
) -> SessionSummary:
    return SessionSummary(
        id=path.name[: -len(TRANSCRIPT_SUFFIX)],
        projectHash=project_hash,
        createdAt=file_created_ms(stats),
        updatedAt=file_modified_ms(stats),
        fileSize=stats.st_size,
        messageCount=summary.message_count,
        preview=summary.preview,
        model=summary.model,
        cwd=summary.cwd,
    )


class SessionRepository:
    """List, fetch and delete the transcripts of one project directory."""

    def __init__(self, projects_dir: Path):
        self.projects_dir = projects_dir

    def project_dir(self, project_hash: str) -> Path:
        return self.projects_dir / validate_segment(project_hash, "project hash")

    def transcript_path(self, project_hash: str, session_id: str) -> Path:
        validate_segment(session_id, "session id")
        return self.project_dir(project_hash) / f"{session_id}{TRANSCRIPT_SUFFIX}"

    # ── Reads ──────────────────────────────────────────────────────

    def _load_summary(self, path: Path, project_hash: str) -> Optional[SessionSummary]:
        try:
            stats = path.stat()
        except OSError as exc:
            logger.debug("Skipping %s: %s", path.name, exc)
            return None
        if not stat.S_ISREG(stats.st_mode):
            return None
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
            summary = summarize_transcript(text)
        except OSError as exc:
            logger.warning(f"Could not read transcript {path}: {exc}")
            summary = TranscriptSummary()
        return _summary_model(path, project_hash, stats, summary)

    async def list_sessions(self, project_hash: str) -> list[SessionSummary]:
        """Session summaries for a project, most recently updated first."""
        project_dir = self.project_dir(project_hash)
        if not project_dir.is_dir():
            return []

        started = time.monotonic()
        with start_span("sessions.list", {"project.hash": project_hash}):
            names = await asyncio.to_thread(os.listdir, project_dir)
            paths = [project_dir / name for name in sorted(names) if name.endswith(TRANSCRIPT_SUFFIX)]
            loaded = await asyncio.gather(
                *(asyncio.to_thread(self._load_summary, path, project_hash) for path in paths)
            )

        sessions = [s for s in loaded if s is not None]
        sessions.sort(key=lambda s: s.updatedAt, reverse=True)
        record_ingestion("session_list", "ok", (time.monotonic() - started) * 1000, project_id=project_hash)
        return sessions

    def _load_session(self, path: Path, project_hash: str) -> Optional[Session]:
        try:
            stats = path.stat()
            text = path.read_text(encoding="utf-8", errors="replace")
        except (FileNotFoundError, IsADirectoryError):
            return None

        summary = summarize_transcript(text)
        messages = parse_transcript(text)
        dropped = summary.message_count - len(messages)
        if dropped:
            logger.debug("Dropped %d malformed lines from %s", dropped, path.name)
            record_parser_failure("transcript", project_id=project_hash, count=dropped)

        base = _summary_model(path, project_hash, stats, summary)
        return Session(**base.model_dump(), messages=messages)

    async def get_session(self, project_hash: str, session_id: str) -> Optional[Session]:
        """Full transcript, or None when the session file does not exist."""
        path = self.transcript_path(project_hash, session_id)
        started = time.monotonic()
        with start_span("sessions.get", {"project.hash": project_hash, "session.id": session_id}):
            session = await asyncio.to_thread(self._load_session, path, project_hash)
        record_ingestion(
            "session",
            "ok" if session else "not_found",
            (time.monotonic() - started) * 1000,
            project_id=project_hash,
        )
        return session

    # ── Deletes ────────────────────────────────────────────────────

    def _delete(self, project_hash: str, session_id: str) -> bool:
        path = self.transcript_path(project_hash, session_id)
        if not path.is_file():
            return False

        path.unlink()
        # Subordinate records (subagent transcripts etc.) live beside the file.
        children = path.parent / session_id
        if children.is_dir():
            shutil.rmtree(children)
        logger.info(f"Deleted session {session_id} from project {project_hash}")
        return True

    async def delete_session(self, project_hash: str, session_id: str) -> bool:
        """Remove a transcript and its same-named subdirectory; False if absent."""
        return await asyncio.to_thread(self._delete, project_hash, session_id)

    async def delete_sessions(self, project_hash: str, session_ids: list[str]) -> BatchDeleteResult:
        """Delete several sessions concurrently.

        Ids whose transcript is already gone land in ``failed``. Any other
        error is not caught per id: it propagates and aborts the whole batch.
        """
        result = BatchDeleteResult()

        async def _delete_one(session_id: str) -> None:
            if await self.delete_session(project_hash, session_id):
                result.deleted.append(session_id)
            else:
                result.failed.append(session_id)

        await asyncio.gather(*(_delete_one(session_id) for session_id in session_ids))
        return result
