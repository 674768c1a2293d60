"""Claude Session Manager FastAPI backend: application entry point."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ccsm.config import Settings
from ccsm.observability import initialize as initialize_observability, shutdown as shutdown_observability
from ccsm.repositories import ProjectRepository, SessionRepository, UserDataRepository
from ccsm.routers.api import projects_router, sessions_router, user_router
from ccsm.routers.events import events_router
from ccsm.services.event_hub import EventHub
from ccsm.services.file_watcher import FileWatcher

logger = logging.getLogger("ccsm")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    settings: Settings = app.state.settings
    logger.info(f"Session manager starting up (config dir {settings.config_dir})")
    initialize_observability(app, settings)

    if settings.watch_enabled:
        await app.state.file_watcher.start()
    else:
        logger.info("File watching disabled (CCSM_WATCH_ENABLED=false)")

    yield

    logger.info("Session manager shutting down")
    await app.state.file_watcher.stop()
    shutdown_observability(app)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application around one immutable Settings instance."""
    settings = settings or Settings.from_env()

    app = FastAPI(
        title="Claude Session Manager API",
        description="Browse, inspect and delete Claude Code sessions stored on disk",
        version="0.1.0",
        lifespan=lifespan,
    )

    hub = EventHub()
    app.state.settings = settings
    app.state.event_hub = hub
    app.state.project_repository = ProjectRepository(settings)
    app.state.session_repository = SessionRepository(settings.projects_dir)
    app.state.user_data_repository = UserDataRepository(settings)
    app.state.file_watcher = FileWatcher(settings.projects_dir, hub.publish, settings.watch_debounce_ms)

    # CORS: allow the frontend dev server
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(projects_router)
    app.include_router(sessions_router)
    app.include_router(user_router)
    app.include_router(events_router)

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {
            "status": "ok",
            "configDir": str(settings.config_dir),
            "watcher": "running" if app.state.file_watcher.is_running else "stopped",
            "subscribers": hub.client_count,
        }

    return app


def run() -> None:
    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level)
    logger.info(f"Serving on http://{settings.host}:{settings.port}")
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
