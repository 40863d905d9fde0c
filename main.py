import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.database import Base, engine
from app.exception_handlers import register_exception_handlers
from app.middleware.logging import StructuredLoggingMiddleware, setup_structured_logging
from app.routes import monitoring, search, search_admin
from app.scheduler import register_jobs, scheduler
from app.services.search_service import search_service
from app.utils.metrics import PrometheusMiddleware, set_app_info

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown tasks."""
    setup_structured_logging(log_level=settings.log_level, json_format=settings.log_json)
    set_app_info(version=settings.app_version, environment=settings.environment)
    logger.info(f"Starting {settings.app_name} ({settings.environment})")

    if settings.debug:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created (if not existing).")

    if settings.scheduler_enabled:
        register_jobs()
        scheduler.start()

    yield

    logger.info("Shutting down the application...")
    if scheduler.running:
        scheduler.shutdown(wait=False)
    await search_service.wait_for_pending_logs()
    await engine.dispose()


def create_app() -> FastAPI:
    """Create the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="Multilingual content search, suggestions and query analytics",
        debug=settings.debug,
        version=settings.app_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(PrometheusMiddleware)
    app.add_middleware(StructuredLoggingMiddleware)

    register_exception_handlers(app)

    app.include_router(monitoring.router)
    app.include_router(search.router, prefix="/api/v1/search", tags=["Search"])
    app.include_router(search_admin.router, prefix="/api/v1/admin/search", tags=["Search Admin"])

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.debug)
