"""
FastAPI application entry point.

Builds the process-wide services (progress tracker, catalog store, import
runner), bootstraps the database tables and registers the routers.
"""
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI

from .api.dependencies import build_progress_tracker
from .api.routers import feeds
from .core.config import settings
from .core.logging_config import configure_logging

# Ensure logging is configured before the application starts serving requests.
configure_logging(settings.log_level)

logger = logging.getLogger(__name__)


def init_database() -> None:
    """Create every catalog table that does not exist yet."""
    from .db import models  # noqa: F401  (registers the tables on Base.metadata)
    from .db.session import Base, get_engine

    Base.metadata.create_all(bind=get_engine())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - startup and shutdown events."""
    if os.getenv("SKIP_DB_INIT") == "1":
        logger.info("SKIP_DB_INIT=1 detected; skipping database bootstrap during startup")
    else:
        try:
            init_database()
            logger.info("Catalog tables ready")
        except Exception:
            logger.exception("Failed to initialize database tables; the application cannot start")
            raise

    yield

    runner = getattr(app.state, "import_runner", None)
    if runner is not None:
        logger.info("Stopping background import runs")
        runner.shutdown(wait=True)


app = FastAPI(
    title="Feed Catalog API",
    version="1.0.0",
    description="Imports vendor product feeds (XML, JSON, CSV) into a product catalog",
    lifespan=lifespan,
)

# Tracker is shared by the background runs and the progress endpoint.
app.state.progress_tracker = build_progress_tracker()
app.state.catalog_store = None
app.state.import_runner = None

app.include_router(feeds.router)


@app.get("/")
async def root():
    """Root endpoint returning API information."""
    return {
        "message": "Feed Catalog API",
        "version": "1.0.0"
    }


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "service": "feed-catalog-api"
    }
