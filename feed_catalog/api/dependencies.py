"""
Shared services for the API.

The progress tracker, catalog store and import runner are owned by the
application (``app.state``) rather than module globals, so tests can swap
them via ``app.dependency_overrides`` or by assigning new instances.
"""
from fastapi import Request

from feed_catalog.core.config import settings
from feed_catalog.domain.feeds.catalog_store import SqlCatalogStore
from feed_catalog.domain.feeds.orchestrator import ImportOrchestrator, ImportRunner
from feed_catalog.domain.feeds.progress import ProgressTracker
from feed_catalog.integrations.downloader import FeedDownloader
from feed_catalog.integrations.search_index import build_search_index


def build_progress_tracker() -> ProgressTracker:
    return ProgressTracker(
        log_limit=settings.progress_log_limit,
        update_interval=settings.progress_update_interval,
    )


def build_import_runner(store, tracker: ProgressTracker) -> ImportRunner:
    orchestrator = ImportOrchestrator(
        store=store,
        downloader=FeedDownloader(),
        tracker=tracker,
        search_index=build_search_index(),
        workers=settings.import_workers,
    )
    return ImportRunner(orchestrator, max_workers=settings.import_max_concurrent_runs)


def get_progress_tracker(request: Request) -> ProgressTracker:
    state = request.app.state
    if getattr(state, "progress_tracker", None) is None:
        state.progress_tracker = build_progress_tracker()
    return state.progress_tracker


def get_catalog_store(request: Request) -> SqlCatalogStore:
    state = request.app.state
    if getattr(state, "catalog_store", None) is None:
        state.catalog_store = SqlCatalogStore()
    return state.catalog_store


def get_import_runner(request: Request) -> ImportRunner:
    state = request.app.state
    if getattr(state, "import_runner", None) is None:
        state.import_runner = build_import_runner(get_catalog_store(request), get_progress_tracker(request))
    return state.import_runner
