"""
FastAPI service exposing the LeadFlow workflow execution engine.

Lead events come in on /api/workflows/trigger and fan out to every active
workflow of the tenant listening on that trigger.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, ORJSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from leadflow import __version__
from leadflow.core.container import container
from leadflow.core.logging import configure_logging, get_logger
from leadflow.routers import workflows

# Initialize settings and logging
settings = container.settings()
configure_logging(settings)
logger = get_logger(__name__)

# Suppress noisy loggers
logging.getLogger("uvicorn").setLevel(logging.WARNING)
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("uvicorn.error").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    # Startup
    logger.info("Starting LeadFlow workflow engine")

    await container.database().startup()

    from leadflow.services.execution import set_stale_run_sweeper

    sweeper = None
    if settings.stale_run_sweeper_enabled:
        sweeper = container.stale_run_sweeper()
        set_stale_run_sweeper(sweeper)
        await sweeper.start()
        logger.info("Stale run sweeper started",
                    ttl_seconds=settings.stale_run_ttl_seconds)

    logger.info("Services started successfully")
    yield

    # Shutdown
    if sweeper is not None:
        await sweeper.stop()
        set_stale_run_sweeper(None)
        logger.info("Stale run sweeper stopped")

    dispatcher = container.trigger_dispatcher()
    if dispatcher.pending_dispatches:
        logger.info("Waiting for background dispatches",
                    pending=dispatcher.pending_dispatches)
    await dispatcher.drain()

    await container.database().shutdown()
    logger.info("Services shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="LeadFlow Workflow Engine",
    version=__version__,
    description="Multi-tenant lead automation workflow execution engine",
    lifespan=lifespan,
    default_response_class=ORJSONResponse
)


class CatchAllExceptionsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error("Unhandled exception",
                         error_type=type(e).__name__,
                         error=str(e),
                         path=request.url.path,
                         exc_info=True)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "success": False,
                    "error": f"{type(e).__name__}: {str(e)}",
                    "detail": "Internal server error"
                }
            )


app.add_middleware(CatchAllExceptionsMiddleware)

# Include routers
app.include_router(workflows.router)


@app.get("/health")
async def health_check():
    """Detailed health check."""
    from leadflow.services.execution import get_stale_run_sweeper

    sweeper = get_stale_run_sweeper()

    return {
        "status": "OK",
        "service": "leadflow",
        "version": __version__,
        "environment": "development" if settings.debug else "production",
        "execution_engine": {
            "stale_run_sweeper": sweeper is not None and sweeper.is_running,
            "pending_dispatches": container.trigger_dispatcher().pending_dispatches,
        },
        "timestamp": datetime.now().isoformat()
    }


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting LeadFlow workflow engine",
                host=settings.host, port=settings.port, debug=settings.debug)
    uvicorn.run(
        "leadflow.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1
    )
