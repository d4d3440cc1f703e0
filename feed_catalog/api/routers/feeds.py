"""
Feed administration, import trigger, progress polling and preview endpoints.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status

from feed_catalog.api.dependencies import get_catalog_store, get_import_runner, get_progress_tracker
from feed_catalog.api.schemas.feeds import (
    FeedCreateRequest,
    FeedHistoryResponse,
    FeedListResponse,
    FeedPreviewRequest,
    FeedPreviewResponse,
    FeedProgressResponse,
    FeedResponse,
    FeedUpdateRequest,
    ImportCancelResponse,
    ImportStartResponse,
)
from feed_catalog.domain.feeds.catalog_store import FeedNotFoundError
from feed_catalog.domain.feeds.orchestrator import ImportAlreadyRunningError
from feed_catalog.domain.feeds.progress import STATUS_IDLE
from feed_catalog.integrations.downloader import DownloadError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["feeds"])


@router.get("/feeds", response_model=FeedListResponse)
def list_feeds_endpoint(store=Depends(get_catalog_store)):
    feeds = [feed.to_dict() for feed in store.list_feeds()]
    return FeedListResponse(success=True, feeds=feeds, total_count=len(feeds))


@router.post("/feeds", response_model=FeedResponse, status_code=status.HTTP_201_CREATED)
def create_feed_endpoint(request: FeedCreateRequest, store=Depends(get_catalog_store)):
    feed = store.create_feed(request.model_dump())
    logger.info("Registered feed %s (%s)", feed.id, feed.name)
    return feed.to_dict()


@router.post("/feeds/preview", response_model=FeedPreviewResponse)
def preview_feed_endpoint(request: FeedPreviewRequest, runner=Depends(get_import_runner)):
    """
    Summarize the head of a feed without importing it.

    Only the first ``feed_preview_max_bytes`` of the payload are downloaded.
    """
    try:
        preview = runner.orchestrator.preview(request.url, request.type, request.item_path)
    except DownloadError as exc:
        raise HTTPException(status_code=400, detail=f"Failed to download feed: {exc}")
    return FeedPreviewResponse(success=True, **preview)


@router.get("/feeds/{feed_id}", response_model=FeedResponse)
def get_feed_endpoint(feed_id: str, store=Depends(get_catalog_store)):
    feed = store.get_feed(feed_id)
    if feed is None:
        raise HTTPException(status_code=404, detail="Feed not found")
    return feed.to_dict()


@router.put("/feeds/{feed_id}", response_model=FeedResponse)
def update_feed_endpoint(feed_id: str, request: FeedUpdateRequest, store=Depends(get_catalog_store)):
    try:
        feed = store.update_feed(feed_id, request.model_dump(exclude_unset=True))
    except FeedNotFoundError:
        raise HTTPException(status_code=404, detail="Feed not found")
    return feed.to_dict()


@router.delete("/feeds/{feed_id}")
def delete_feed_endpoint(
    feed_id: str,
    store=Depends(get_catalog_store),
    runner=Depends(get_import_runner),
):
    if runner.is_running(feed_id):
        raise HTTPException(status_code=409, detail="Cannot delete a feed while its import is running")
    try:
        store.delete_feed(feed_id)
    except FeedNotFoundError:
        raise HTTPException(status_code=404, detail="Feed not found")
    return {"success": True, "message": "Feed deleted"}


@router.post(
    "/feeds/{feed_id}/import",
    response_model=ImportStartResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def start_import_endpoint(
    feed_id: str,
    store=Depends(get_catalog_store),
    runner=Depends(get_import_runner),
):
    """Queue a background import run and return immediately; poll /progress for the outcome."""
    feed = store.get_feed(feed_id)
    if feed is None:
        raise HTTPException(status_code=404, detail="Feed not found")

    try:
        runner.start(feed)
    except ImportAlreadyRunningError as exc:
        raise HTTPException(status_code=409, detail=str(exc))

    return ImportStartResponse(success=True, message="Import started")


@router.post("/feeds/{feed_id}/import/cancel", response_model=ImportCancelResponse)
def cancel_import_endpoint(feed_id: str, runner=Depends(get_import_runner)):
    return ImportCancelResponse(success=True, cancelled=runner.cancel(feed_id))


@router.get("/feeds/{feed_id}/progress", response_model=FeedProgressResponse)
def get_progress_endpoint(feed_id: str, tracker=Depends(get_progress_tracker)):
    snapshot = tracker.snapshot(feed_id)
    if snapshot is None:
        return FeedProgressResponse(feed_id=feed_id, status=STATUS_IDLE)
    return FeedProgressResponse(**snapshot)


@router.get("/feeds/{feed_id}/history", response_model=FeedHistoryResponse)
def get_history_endpoint(feed_id: str, limit: int = 20, store=Depends(get_catalog_store)):
    if store.get_feed(feed_id) is None:
        raise HTTPException(status_code=404, detail="Feed not found")
    limit = max(1, min(limit, 100))
    return FeedHistoryResponse(success=True, history=store.list_feed_history(feed_id, limit=limit))
