import threading

from feed_catalog.domain.feeds.progress import (
    STATUS_COMPLETED,
    STATUS_DOWNLOADING,
    STATUS_FAILED,
    STATUS_IMPORTING,
    ProgressTracker,
)


def test_unknown_feed_has_no_snapshot():
    tracker = ProgressTracker()

    assert tracker.snapshot("missing") is None


def test_processed_is_monotonic_and_matches_total_on_completion():
    tracker = ProgressTracker(update_interval=3)
    tracker.start("feed-1", "Import started")
    tracker.set_total("feed-1", 7)
    tracker.set_status("feed-1", STATUS_IMPORTING)

    seen = []
    for outcome in ["created", "updated", "skipped", "error", "created", "created", "updated"]:
        tracker.record_outcome("feed-1", outcome)
        seen.append(tracker.snapshot("feed-1")["processed"])
    tracker.finish("feed-1", STATUS_COMPLETED, "done")

    snapshot = tracker.snapshot("feed-1")
    assert seen == sorted(seen) == list(range(1, 8))
    assert snapshot["processed"] == snapshot["total"] == 7
    assert (snapshot["created"], snapshot["updated"], snapshot["skipped"], snapshot["errors"]) == (3, 2, 1, 1)
    assert snapshot["percent"] == 100
    assert snapshot["status"] == STATUS_COMPLETED
    assert snapshot["finished_at"] is not None


def test_percent_is_only_recomputed_on_interval():
    tracker = ProgressTracker(update_interval=50)
    tracker.start("feed-1")
    tracker.set_total("feed-1", 200)

    for _ in range(49):
        tracker.record_outcome("feed-1", "created")
    assert tracker.snapshot("feed-1")["percent"] == 0

    tracker.record_outcome("feed-1", "created")
    snapshot = tracker.snapshot("feed-1")
    assert snapshot["percent"] == 25
    assert snapshot["message"] == "Processed 50/200"


def test_rolling_log_drops_oldest_entries():
    tracker = ProgressTracker(log_limit=3)
    tracker.start("feed-1", "line 0")

    for index in range(1, 10):
        tracker.add_log("feed-1", f"line {index}")

    assert tracker.snapshot("feed-1")["logs"] == ["line 7", "line 8", "line 9"]


def test_new_run_replaces_previous_state():
    tracker = ProgressTracker()
    tracker.start("feed-1")
    tracker.set_total("feed-1", 2)
    tracker.record_outcome("feed-1", "created")
    tracker.finish("feed-1", STATUS_FAILED, "boom")

    tracker.start("feed-1", "second run")

    snapshot = tracker.snapshot("feed-1")
    assert snapshot["processed"] == 0
    assert snapshot["created"] == 0
    assert snapshot["logs"] == ["second run"]
    assert snapshot["status"] == STATUS_DOWNLOADING


def test_failed_run_keeps_partial_counts():
    tracker = ProgressTracker()
    tracker.start("feed-1")
    tracker.set_total("feed-1", 4)
    tracker.record_outcome("feed-1", "created")
    tracker.finish("feed-1", STATUS_FAILED, "Import failed")

    snapshot = tracker.snapshot("feed-1")
    assert snapshot["processed"] == 1
    assert snapshot["percent"] == 25
    assert snapshot["status"] == STATUS_FAILED


def test_concurrent_increments_are_not_lost():
    tracker = ProgressTracker()
    tracker.start("feed-1")
    tracker.set_total("feed-1", 4000)

    def work():
        for _ in range(1000):
            tracker.record_outcome("feed-1", "updated")

    threads = [threading.Thread(target=work) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    snapshot = tracker.snapshot("feed-1")
    assert snapshot["processed"] == snapshot["updated"] == 4000
    assert snapshot["percent"] == 100


def test_snapshot_is_a_copy():
    tracker = ProgressTracker()
    tracker.start("feed-1", "hello")

    snapshot = tracker.snapshot("feed-1")
    snapshot["logs"].append("mutated")

    assert tracker.snapshot("feed-1")["logs"] == ["hello"]
