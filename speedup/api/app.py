"""FastAPI application setup with lifespan and exception handlers."""

from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from speedup import __version__
from speedup.api.routes import router
from speedup.engine import EngineLifecycleManager, get_engine_manager
from speedup.orchestrator import JobStateMachine
from speedup.services.resources import ResourceLifecycleManager

logger = logging.getLogger(__name__)


def create_app(
    engine_manager: Optional[EngineLifecycleManager] = None,
    resources: Optional[ResourceLifecycleManager] = None,
) -> FastAPI:
    """Build the API around one engine manager and one job state machine.

    Args:
        engine_manager: Defaults to the process-wide ffmpeg engine manager
        resources: Defaults to a manager rooted at settings.storage.resource_dir
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager.

        Startup:
            - Load the media engine (a failed load is reported via /api/status)

        Shutdown:
            - Cancel any processing job
            - Revoke all resource handles
            - Dispose the engine
        """
        manager = engine_manager or get_engine_manager()
        app.state.engine_manager = manager
        app.state.resources = resources or ResourceLifecycleManager()
        app.state.machine = JobStateMachine(manager, app.state.resources)

        logger.info("Starting speedup API...")
        await manager.initialize()
        logger.info(f"API startup complete (engine {manager.state.value})")

        yield

        logger.info("Shutting down speedup API...")
        machine: JobStateMachine = app.state.machine
        if machine.cancel():
            await machine.wait()
        app.state.resources.revoke_all()
        await manager.shutdown()
        logger.info("API shutdown complete")

    app = FastAPI(
        title="speedup API",
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(router)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Catch-all exception handler to prevent stack traces in API responses."""
        logger.error(f"Unhandled exception in {request.method} {request.url.path}: {type(exc).__name__}: {str(exc)}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc),
            },
        )

    return app


app = create_app()
