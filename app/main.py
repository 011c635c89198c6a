"""
FastAPI application factory
"""
import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from app.config import get_settings
from app.infrastructure.db.session import check_db_connection, get_session_factory
from app.api.v1 import finances

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def run_startup_tasks() -> None:
    """Migrations first, then the once-per-day statement refresh."""
    from app.application.daily_guard import run_daily_refresh
    from app.application.migrations import MigrationRunner

    settings = get_settings()
    Session = get_session_factory()
    db = Session()
    try:
        if settings.RUN_MIGRATIONS_ON_STARTUP and not MigrationRunner(db).run():
            logger.warning("Data migrations incomplete, they will be retried on next start")
        run_daily_refresh(db)
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    from app.application.scheduler import start_scheduler, shutdown_scheduler

    settings = get_settings()
    run_startup_tasks()
    if settings.SCHEDULER_ENABLED:
        start_scheduler()
    yield
    shutdown_scheduler()


class ErrorLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            tb_str = traceback.format_exc()
            logger.error(f"\n{'='*60}\nERROR on {request.method} {request.url.path}\n{tb_str}{'='*60}")
            return Response(content=f"Internal Server Error: {exc}", status_code=500)


def create_app() -> FastAPI:
    """
    Application factory

    Returns:
        Configured FastAPI app
    """
    settings = get_settings()

    app = FastAPI(
        title="Personal Finances",
        debug=settings.DEBUG,
        lifespan=lifespan,
    )

    # Error-logging middleware, catches exceptions from sync routes too
    app.add_middleware(ErrorLoggingMiddleware)

    app.include_router(finances.router)

    # Health checks
    @app.get("/health", response_class=PlainTextResponse, tags=["system"])
    def health():
        """Health check endpoint"""
        return "ok"

    @app.get("/ready", response_class=PlainTextResponse, tags=["system"])
    def ready():
        """Readiness check endpoint (checks the database is reachable)"""
        check_db_connection()
        return "ok"

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
