"""
Release Board - Main Application
================================

Release aggregation and hierarchy service on top of a work item service.

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Catalog, hierarchy caches, mutation services, DTOs
- Domain: Entities, value objects, metrics
- Infrastructure: Work item service client, board config, notifier
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from release_board.config import settings
from release_board.core import ApplicationException
from release_board.releases.application import ReleaseBoard
from release_board.releases.domain import BoardScope
from release_board.releases.infrastructure import (
    BoardConfigManager, QueuedNotifier, WorkItemServiceClient,
)
from release_board.releases.interfaces import board_router
from release_board.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
)
from release_board.shared.infrastructure.logging import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Load board configuration and watch it for changes
    3. Create the work item service client
    4. Create the board session

    Steps 2-4 are skipped when the app was created with a board.

    SHUTDOWN:
    1. Stop the config watcher
    2. Close the work item service client
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting Release Board", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })
    app.state.settings = settings

    config_manager = None
    client = None
    if getattr(app.state, "board", None) is None:
        logger.info("Loading board configuration")
        config_manager = BoardConfigManager()
        config_manager.load(settings.board_config_path)
        config_manager.start_watching()

        client = WorkItemServiceClient()
        app.state.config_manager = config_manager
        app.state.work_item_client = client
        app.state.board = ReleaseBoard(
            gateway=client,
            config_provider=config_manager,
            notifier=QueuedNotifier(),
            scope=BoardScope(settings.default_project, settings.default_area_path),
        )

    logger.info("Release Board started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Release Board")
    if config_manager is not None:
        config_manager.stop_watching()
    if client is not None:
        await client.close()
    logger.info("Release Board shutdown complete")


def create_app(board: Optional[ReleaseBoard] = None) -> FastAPI:
    app = FastAPI(
        title="Release Board API",
        description="""
    ## Release Board

    Releases are tagged work items in an external work item service. This API
    aggregates them per release and caches the release hierarchy.

    **Endpoints:** see `/board/*`

    **Features:**
    - Release versions and release epics with progress
    - Release details: work items, feature metrics, health, latest deployments
    - Lazy release -> linked item -> child hierarchy
    - UAT-ready highlighting of Epics and Features
    - Link/unlink, tag, edit and delete releases
    - Deployment records and release notes export
    """,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    if board is not None:
        app.state.board = board

    # === CORS Middleware ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(LoggingMiddleware)
    app.add_middleware(CorrelationIDMiddleware)
    app.add_exception_handler(ApplicationException, application_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    app.include_router(board_router)

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """Health check endpoint for load balancers and orchestrators."""
        board = getattr(request.app.state, "board", None)
        config_manager = getattr(request.app.state, "config_manager", None)
        checks = {
            "board": "ready" if board else "not_initialized",
            "board_config": "loaded" if config_manager else "not_loaded",
            "work_item_service": settings.work_items_api_url,
        }
        return {
            "status": "healthy",
            "version": settings.app_version,
            "environment": settings.environment,
            "checks": checks
        }

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "service": "Release Board",
            "version": settings.app_version,
            "architecture": "Clean Architecture / Modular Monolith",
            "docs": "/docs",
            "health": "/health",
            "modules": {
                "releases": {
                    "prefix": "/board",
                    "endpoints": [
                        "GET /board/releases - List release versions",
                        "GET /board/epics - List release epics",
                        "GET /board/details - Selected release details",
                        "POST /board/epics/{epic_id}/toggle - Expand a release epic",
                        "POST /board/deployments - Record a deployment",
                    ]
                }
            }
        }

    return app


app = create_app()


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "release_board.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
