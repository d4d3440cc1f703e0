"""
Feed import orchestration.

``ImportOrchestrator`` drives one run end to end:

    idle -> downloading -> parsing -> importing -> completed | failed | cancelled

``ImportRunner`` owns the background executor, keeps one cancellable handle per
feed, and refuses to start a second run for a feed that is still in flight.
"""
from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from feed_catalog.core.config import settings
from feed_catalog.integrations.downloader import DownloadError

from .detector import detect_feed_type
from .mapper import map_record, validate_record
from .processors import preview_feed_content, process_feed_content
from .progress import (
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_DOWNLOADING,
    STATUS_FAILED,
    STATUS_IMPORTING,
    STATUS_PARSING,
    ProgressTracker,
)
from .reconciler import OUTCOME_SKIPPED, CategoryResolver, ProductReconciler

logger = logging.getLogger(__name__)

SKIP_LOG_HEAD = 10  # Always log the first N skipped records
SKIP_LOG_EVERY = 100  # ...then every Nth one
SEARCH_SYNC_BATCH = 500


class ImportAlreadyRunningError(RuntimeError):
    """Raised when a run is requested for a feed whose previous run is still in flight."""

    def __init__(self, feed_id: str):
        self.feed_id = feed_id
        super().__init__(f"An import for feed '{feed_id}' is already running")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _RunResult:
    status: str
    message: str
    affected_ids: List[str] = field(default_factory=list)


class ImportOrchestrator:
    def __init__(
        self,
        store,
        downloader,
        tracker: ProgressTracker,
        search_index=None,
        workers: int = 1,
        preview_max_bytes: Optional[int] = None,
    ):
        self.store = store
        self.downloader = downloader
        self.tracker = tracker
        self.search_index = search_index
        self.workers = max(1, workers)
        self.preview_max_bytes = preview_max_bytes or settings.feed_preview_max_bytes

    # ------------------------------------------------------------------
    # Preview
    # ------------------------------------------------------------------
    def preview(self, url: str, feed_type: Optional[str] = None, item_element: Optional[str] = None) -> Dict[str, Any]:
        """
        Download the head of a feed and summarize it.

        Raises:
            DownloadError: If the feed cannot be retrieved
        """
        payload = self.downloader.fetch(url, max_bytes=self.preview_max_bytes)
        detected = detect_feed_type(payload, feed_type)
        preview = preview_feed_content(payload, detected, item_element or settings.feed_default_item_element)
        result = preview.to_dict()
        result["normalized_sample"] = [map_record(record).to_dict() for record in preview.sample]
        return result

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------
    def begin(self, feed) -> None:
        """Reset progress for ``feed`` and flag the persisted feed as running."""
        self.tracker.start(feed.id, f"Import started for: {feed.name}", status=STATUS_DOWNLOADING)
        try:
            self.store.mark_feed_run_started(feed.id)
        except Exception as exc:  # pragma: no cover
            logger.warning("Unable to mark feed %s as running: %s", feed.id, exc)

    def run(self, feed, cancel_event: Optional[threading.Event] = None) -> Dict[str, Any]:
        """
        Execute one import run for ``feed``.

        Never raises: any fault is converted into a ``failed`` terminal state.
        ``begin`` must have been called first (``ImportRunner`` does this).

        Returns:
            The final progress snapshot
        """
        started_at = _utcnow()
        start_time = time.time()

        try:
            result = self._execute(feed, cancel_event)
        except Exception as exc:
            logger.exception("Import run for feed %s crashed", feed.id)
            self.tracker.add_log(feed.id, f"Unexpected error: {exc!r}")
            result = _RunResult(STATUS_FAILED, f"Import failed: {exc}")

        snapshot = self.tracker.snapshot(feed.id) or {}
        message = result.message
        if result.status == STATUS_COMPLETED:
            message = (
                f"Completed: {snapshot.get('created', 0)} created, {snapshot.get('updated', 0)} updated, "
                f"{snapshot.get('skipped', 0)} skipped, {snapshot.get('errors', 0)} errors"
            )
        self.tracker.finish(feed.id, result.status, message)
        snapshot = self.tracker.snapshot(feed.id) or {}

        logger.info(
            "Import for feed %s finished with status '%s' in %.2fs",
            feed.id,
            result.status,
            time.time() - start_time,
        )
        self._persist_outcome(feed, result, snapshot, started_at, time.time() - start_time)

        if result.status == STATUS_COMPLETED:
            self._sync_search_index(feed, result.affected_ids)

        return snapshot

    def _execute(self, feed, cancel_event: Optional[threading.Event]) -> _RunResult:
        tracker = self.tracker

        tracker.add_log(feed.id, f"Downloading from: {feed.url}")
        try:
            payload = self.downloader.fetch(feed.url)
        except DownloadError as exc:
            tracker.add_log(feed.id, f"Download failed: {exc}")
            return _RunResult(STATUS_FAILED, f"Download failed: {exc}")
        tracker.add_log(feed.id, f"Downloaded {len(payload) // 1024} KB")

        if _is_cancelled(cancel_event):
            return _RunResult(STATUS_CANCELLED, "Import cancelled before parsing")

        tracker.set_status(feed.id, STATUS_PARSING, "Parsing feed...")
        feed_type = detect_feed_type(payload, feed.type)
        parse_start = time.time()
        records = process_feed_content(payload, feed_type, feed.xml_item_path)
        del payload
        tracker.add_log(feed.id, f"Parsed {len(records)} items as {feed_type} in {time.time() - parse_start:.2f}s")

        if not records:
            tracker.add_log(feed.id, "No items found in feed")
            return _RunResult(STATUS_FAILED, "Feed contains no items")

        total = len(records)
        tracker.set_total(feed.id, total)
        tracker.set_status(feed.id, STATUS_IMPORTING, f"Importing {total} products...")

        affected_ids: List[str] = []
        attempted = self._import_records(feed, records, cancel_event, affected_ids)
        if attempted < total:
            return _RunResult(
                STATUS_CANCELLED,
                f"Import cancelled after {attempted}/{total} items",
                affected_ids,
            )
        return _RunResult(STATUS_COMPLETED, "", affected_ids)

    def _import_records(
        self,
        feed,
        records: List[Dict[str, Any]],
        cancel_event: Optional[threading.Event],
        affected_ids: List[str],
    ) -> int:
        """Route every record through the reconciler; returns how many were attempted."""
        reconciler = ProductReconciler(self.store, CategoryResolver(self.store))
        skip_lock = threading.Lock()
        skip_count = 0

        def log_skip(index: int, reason: str) -> None:
            nonlocal skip_count
            with skip_lock:
                skip_count += 1
                current = skip_count
            if current <= SKIP_LOG_HEAD or current % SKIP_LOG_EVERY == 0:
                logger.info("Feed %s item %d skipped (%s); %d skipped so far", feed.id, index, reason, current)

        def handle(index: int, raw: Dict[str, Any]) -> bool:
            if _is_cancelled(cancel_event):
                return False
            try:
                record = map_record(raw, feed.field_mapping)
                reason = validate_record(record)
                if reason:
                    log_skip(index, reason)
                    outcome = OUTCOME_SKIPPED
                else:
                    outcome, product_id = reconciler.reconcile(record, feed.id)
                    if product_id:
                        affected_ids.append(product_id)
            except Exception as exc:
                # One bad record never aborts the run.
                logger.warning("Feed %s item %d failed: %s", feed.id, index, exc)
                outcome = "error"
            self.tracker.record_outcome(feed.id, outcome)
            return True

        indexed = range(1, len(records) + 1)
        if self.workers == 1:
            return sum(1 for attempted in map(handle, indexed, records) if attempted)

        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix=f"feed-{feed.id[:8]}") as executor:
            return sum(1 for attempted in executor.map(handle, indexed, records) if attempted)

    def _persist_outcome(
        self,
        feed,
        result: _RunResult,
        snapshot: Dict[str, Any],
        started_at: datetime,
        duration: float,
    ) -> None:
        """Best-effort write of the run outcome; never fails the run."""
        product_count = None
        if result.status == STATUS_COMPLETED:
            product_count = snapshot.get("created", 0) + snapshot.get("updated", 0)

        try:
            self.store.record_feed_run_result(feed.id, result.status, product_count)
        except Exception as exc:
            logger.warning("Unable to record run result for feed %s: %s", feed.id, exc)

        try:
            self.store.record_feed_history(
                feed.id,
                {
                    "status": result.status,
                    "total": snapshot.get("total", 0),
                    "created": snapshot.get("created", 0),
                    "updated": snapshot.get("updated", 0),
                    "skipped": snapshot.get("skipped", 0),
                    "errors": snapshot.get("errors", 0),
                    "duration": round(duration, 3),
                    "error_message": result.message if result.status == STATUS_FAILED else None,
                    "started_at": started_at,
                    "finished_at": _utcnow(),
                },
            )
        except Exception as exc:
            logger.warning("Unable to record history for feed %s: %s", feed.id, exc)

    def _sync_search_index(self, feed, product_ids: List[str]) -> None:
        """Push the run's products to the search index; failures are logged only."""
        if self.search_index is None or not product_ids:
            return

        unique_ids = list(dict.fromkeys(product_ids))
        try:
            sent = 0
            for start in range(0, len(unique_ids), SEARCH_SYNC_BATCH):
                documents = self.store.list_product_documents(unique_ids[start:start + SEARCH_SYNC_BATCH])
                if documents:
                    sent += self.search_index.bulk_upsert(documents)
            self.search_index.refresh()
        except Exception as exc:
            logger.warning("Search index sync for feed %s failed: %s", feed.id, exc)
            self.tracker.add_log(feed.id, f"Search index sync failed: {exc}")
            return

        self.tracker.add_log(feed.id, f"Search index updated with {sent} products")


def _is_cancelled(cancel_event: Optional[threading.Event]) -> bool:
    return cancel_event is not None and cancel_event.is_set()


@dataclass
class RunHandle:
    feed_id: str
    cancel_event: threading.Event = field(default_factory=threading.Event)
    future: Optional[Future] = None

    @property
    def running(self) -> bool:
        return self.future is not None and not self.future.done()


class ImportRunner:
    """
    Schedules import runs on background threads, one live run per feed.

    The triggering request only calls ``start``; the run itself executes on
    the runner's executor and reports exclusively through the progress tracker.
    """

    def __init__(self, orchestrator: ImportOrchestrator, max_workers: int = 4):
        self.orchestrator = orchestrator
        self._executor = ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix="feed-import")
        self._handles: Dict[str, RunHandle] = {}
        self._lock = threading.Lock()

    def start(self, feed) -> RunHandle:
        """
        Begin a background run for ``feed``.

        Raises:
            ImportAlreadyRunningError: If the feed's previous run is still in flight
        """
        with self._lock:
            current = self._handles.get(feed.id)
            if current is not None and current.running:
                raise ImportAlreadyRunningError(feed.id)

            handle = RunHandle(feed_id=feed.id)
            self.orchestrator.begin(feed)
            handle.future = self._executor.submit(self._run, feed, handle)
            self._handles[feed.id] = handle

        logger.info("Queued import run for feed %s (%s)", feed.id, feed.name)
        return handle

    def _run(self, feed, handle: RunHandle) -> Optional[Dict[str, Any]]:
        try:
            return self.orchestrator.run(feed, handle.cancel_event)
        except Exception:  # pragma: no cover - orchestrator.run already contains faults
            logger.exception("Background import for feed %s escaped its run boundary", feed.id)
            return None

    def is_running(self, feed_id: str) -> bool:
        with self._lock:
            handle = self._handles.get(feed_id)
            return handle is not None and handle.running

    def cancel(self, feed_id: str) -> bool:
        """Ask the feed's live run to stop at the next record boundary."""
        with self._lock:
            handle = self._handles.get(feed_id)
            if handle is None or not handle.running:
                return False
            handle.cancel_event.set()
        logger.info("Cancellation requested for feed %s", feed_id)
        return True

    def wait(self, feed_id: str, timeout: Optional[float] = None) -> Optional[Dict[str, Any]]:
        """Block until the feed's latest run finishes and return its final snapshot."""
        with self._lock:
            handle = self._handles.get(feed_id)
        if handle is None or handle.future is None:
            return None
        return handle.future.result(timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            for handle in self._handles.values():
                if handle.running:
                    handle.cancel_event.set()
        self._executor.shutdown(wait=wait)
