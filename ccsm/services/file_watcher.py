"""File watcher service using watchfiles.

Monitors the projects root for transcript changes and publishes coarse
change events. It performs no parsing; subscribers re-query the API.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional

from watchfiles import Change, awatch

from ccsm.date_utils import now_ms
from ccsm.models import WatcherEvent

logger = logging.getLogger("ccsm.watcher")

Publisher = Callable[[WatcherEvent], Awaitable[object]]

_SESSION_EVENT_TYPES = {
    Change.added: "session-added",
    Change.modified: "session-changed",
    Change.deleted: "session-removed",
}


def classify_change(
    change: Change,
    path: Path,
    projects_dir: Path,
    timestamp: Optional[int] = None,
) -> Optional[WatcherEvent]:
    """Map one raw filesystem change to a WatcherEvent, or None if irrelevant.

    ``<hash>/<id>.jsonl`` is a session; transcripts nested under
    ``<hash>/<id>/`` and ``<hash>/memory/*.md`` only mark the project changed.
    """
    try:
        parts = path.relative_to(projects_dir).parts
    except ValueError:
        return None
    if len(parts) < 2:
        return None

    project_hash = parts[0]
    stamp = now_ms() if timestamp is None else timestamp

    if path.suffix == ".jsonl":
        if len(parts) == 2:
            return WatcherEvent(
                type=_SESSION_EVENT_TYPES[change],
                projectHash=project_hash,
                sessionId=path.stem,
                timestamp=stamp,
            )
        return WatcherEvent(
            type="project-changed",
            projectHash=project_hash,
            sessionId=parts[1],
            timestamp=stamp,
        )

    if path.suffix == ".md" and len(parts) == 3 and parts[1] == "memory":
        return WatcherEvent(type="project-changed", projectHash=project_hash, timestamp=stamp)

    return None


def classify_changes(changes: set[tuple[Change, str]], projects_dir: Path) -> list[WatcherEvent]:
    events = []
    for change_type, path_str in sorted(changes, key=lambda c: c[1]):
        event = classify_change(change_type, Path(path_str), projects_dir)
        if event is not None:
            events.append(event)
    return events


class FileWatcher:
    """Background watcher that publishes change events.

    Uses `watchfiles` (Rust-accelerated) for efficient watching.
    """

    def __init__(self, projects_dir: Path, publish: Publisher, debounce_ms: int = 500):
        self.projects_dir = projects_dir
        self.publish = publish
        self.debounce_ms = debounce_ms
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._running = False

    async def start(self) -> None:
        """Start watching the projects root in a background task."""
        if self._running:
            logger.warning("File watcher already running")
            return
        if not self.projects_dir.is_dir():
            logger.info(f"Projects directory {self.projects_dir} not found, skipping watcher setup")
            return

        self._running = True
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._watch_loop())
        logger.info(f"File watcher started for {self.projects_dir}")

    async def stop(self) -> None:
        """Stop the file watcher."""
        self._running = False
        if self._stop_event:
            self._stop_event.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("File watcher stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    async def _watch_loop(self) -> None:
        try:
            async for changes in awatch(
                self.projects_dir,
                debounce=self.debounce_ms,
                stop_event=self._stop_event,
            ):
                events = classify_changes(changes, self.projects_dir)
                if not events:
                    continue
                logger.debug("Publishing %d change events", len(events))
                for event in events:
                    try:
                        await self.publish(event)
                    except Exception as e:
                        logger.error(f"Error publishing change event: {e}")
        except asyncio.CancelledError:
            logger.info("File watcher task cancelled")
        except Exception as e:
            logger.error(f"File watcher error: {e}")
        finally:
            self._running = False
