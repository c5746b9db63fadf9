from datetime import timedelta

import pytest

from generation_tracker.jobs.errors import DuplicateJobError
from generation_tracker.jobs.models import JobKind, JobStatus


def test_register_creates_single_queued_record(registry, clock) -> None:
    record = registry.register("r1", JobKind.IMAGE, status=JobStatus.QUEUED, progress=0)

    assert len(registry) == 1
    assert registry.get("r1") == record
    assert record.status == JobStatus.QUEUED
    assert record.progress == 0
    assert record.created_at == clock.now
    assert record.result_reference is None
    assert record.error_detail is None


def test_register_duplicate_is_rejected(registry) -> None:
    registry.register("r1", JobKind.IMAGE, prompt="a cat")

    with pytest.raises(DuplicateJobError) as exc_info:
        registry.register("r1", JobKind.VIDEO)

    assert exc_info.value.request_id == "r1"
    assert registry.get("r1").kind == JobKind.IMAGE
    assert registry.get("r1").prompt == "a cat"


def test_merge_updates_fields(registry) -> None:
    registry.register("r1", JobKind.IMAGE)

    record = registry.merge("r1", {"status": JobStatus.PROCESSING, "progress": 50})

    assert record.status == JobStatus.PROCESSING
    assert record.progress == 50
    assert registry.get("r1") == record


def test_merge_unknown_job_is_noop(registry) -> None:
    assert registry.merge("missing", {"progress": 10}) is None
    assert len(registry) == 0


def test_merge_cannot_change_identity_fields(registry) -> None:
    registry.register("r1", JobKind.IMAGE)

    with pytest.raises(ValueError):
        registry.merge("r1", {"kind": JobKind.VIDEO})


def test_merge_leaves_other_jobs_untouched(registry) -> None:
    registry.register("job-a", JobKind.IMAGE)
    registry.register("job-b", JobKind.VIDEO, message="waiting")
    before = registry.get("job-b").model_dump()

    registry.merge("job-a", {"progress": 75, "message": "rendering"})

    assert registry.get("job-a").progress == 75
    assert registry.get("job-b").model_dump() == before


def test_remove_is_idempotent(registry) -> None:
    registry.register("r1", JobKind.IMAGE)

    assert registry.remove("r1") is True
    assert registry.remove("r1") is False
    assert "r1" not in registry


def test_sweep_stale_removes_only_old_unfinished_jobs(registry, clock) -> None:
    registry.register("old", JobKind.IMAGE)
    registry.register("old-done", JobKind.IMAGE)
    registry.merge("old-done", {"status": JobStatus.COMPLETE, "result_reference": "set-1"})
    clock.advance(minutes=21)
    registry.register("recent", JobKind.IMAGE)
    clock.advance(minutes=10)

    removed = registry.sweep_stale(timedelta(minutes=30))

    assert removed == 1
    assert "old" not in registry
    assert "old-done" in registry
    assert "recent" in registry


def test_subscribers_see_every_mutation(registry) -> None:
    events = []
    unsubscribe = registry.subscribe(lambda rid, record: events.append((rid, record and record.status)))

    registry.register("r1", JobKind.IMAGE)
    registry.merge("r1", {"status": JobStatus.PROCESSING})
    registry.remove("r1")
    unsubscribe()
    registry.register("r2", JobKind.IMAGE)

    assert events == [
        ("r1", JobStatus.QUEUED),
        ("r1", JobStatus.PROCESSING),
        ("r1", None),
    ]


def test_load_records_keeps_jobs_already_tracked(registry) -> None:
    registry.register("live", JobKind.IMAGE)
    registry.merge("live", {"status": JobStatus.PROCESSING, "progress": 40})
    saved = dict(registry.items())
    registry.merge("live", {"progress": 80})
    registry.register("saved-only", JobKind.VIDEO)
    saved["saved-only"] = registry.get("saved-only")
    registry.remove("saved-only")

    added = registry.load_records(saved)

    assert added == ["saved-only"]
    assert registry.get("live").progress == 80
    assert list(registry) == ["live", "saved-only"]


def test_merge_to_failed_always_has_error_detail(registry) -> None:
    registry.register("r1", JobKind.IMAGE)
    registry.register("r2", JobKind.IMAGE, message="Out of credits")

    assert registry.merge("r1", {"status": JobStatus.FAILED}).error_detail == "Generation failed"
    assert registry.merge("r2", {"status": JobStatus.FAILED}).error_detail == "Out of credits"


def test_merge_drops_error_detail_unless_failed(registry) -> None:
    registry.register("r1", JobKind.IMAGE)

    record = registry.merge("r1", {"status": JobStatus.PROCESSING, "error_detail": "hiccup"})

    assert record.error_detail is None


def test_merge_drops_result_reference_without_result_status(registry) -> None:
    registry.register("r1", JobKind.IMAGE)

    assert registry.merge("r1", {"result_reference": "set-x"}).result_reference is None
    record = registry.merge("r1", {"status": JobStatus.PARTIAL, "result_reference": "set-x"})
    assert record.result_reference == "set-x"


def test_merge_rejects_unknown_fields(registry) -> None:
    registry.register("r1", JobKind.IMAGE)

    with pytest.raises(ValueError):
        registry.merge("r1", {"resultReference": "set-x"})

    assert registry.get("r1").result_reference is None


def test_unchanged_merge_is_not_reported(registry) -> None:
    registry.register("r1", JobKind.IMAGE)
    registry.merge("r1", {"status": JobStatus.PROCESSING, "progress": 10})
    events = []
    registry.subscribe(lambda rid, record: events.append(rid))

    registry.merge("r1", {"status": JobStatus.PROCESSING, "progress": 10})

    assert events == []
