import threading

import pytest

from social_recipes.app.core.errors import NotFoundError, ValidationError
from social_recipes.app.db import models
from social_recipes.app.services.job_store import ItemOutcome


def test_create_job_creates_pending_items(job_store):
    job = job_store.create_job(["a", "b", "a"], user_id="user-1")
    assert job.status == "PENDING"
    assert job.total_posts == 3
    assert (job.processed_posts, job.successful_posts, job.failed_posts) == (0, 0, 0)
    assert job.started_at is None

    items = job_store.list_items(job.id)
    assert [i.post_id for i in items] == ["a", "b", "a"]
    assert [i.position for i in items] == [0, 1, 2]
    assert {i.status for i in items} == {"PENDING"}


def test_create_job_rejects_empty_list(job_store, session_factory):
    with pytest.raises(ValidationError):
        job_store.create_job([])
    with session_factory() as db:
        assert db.query(models.BulkImportJob).count() == 0


def test_claim_marks_job_running(job_store):
    job = job_store.create_job(["a", "b"])
    item = job_store.claim_next_pending(job.id)
    assert item.post_id == "a"
    assert item.status == "IN_PROGRESS"
    assert item.claimed_at is not None

    status = job_store.get_status(job.id)
    assert status.status == "RUNNING"
    assert status.started_at is not None

    assert job_store.claim_next_pending(job.id).post_id == "b"
    assert job_store.claim_next_pending(job.id) is None


def test_record_outcome_updates_counters_and_finalizes(job_store):
    job = job_store.create_job(["a", "b"])
    first = job_store.claim_next_pending(job.id)
    second = job_store.claim_next_pending(job.id)

    assert job_store.record_outcome(first.id, ItemOutcome.failed("post_not_found", "gone"))
    status = job_store.get_status(job.id)
    assert (status.processed_posts, status.successful_posts, status.failed_posts) == (1, 0, 1)
    assert status.status == "RUNNING"

    assert job_store.record_outcome(second.id, ItemOutcome.failed("fetch_timeout", "slow"))
    status = job_store.get_status(job.id)
    assert status.status == "COMPLETED_WITH_ERRORS"
    assert status.completed_at is not None
    assert status.processed_posts == status.total_posts == 2

    items = job_store.list_items(job.id)
    assert items[0].error_code == "post_not_found"
    assert items[0].error_detail == "gone"
    assert items[0].result_recipe_id is None
    assert items[0].finished_at is not None


def test_record_outcome_is_written_once(job_store):
    job = job_store.create_job(["a"])
    item = job_store.claim_next_pending(job.id)
    assert job_store.record_outcome(item.id, ItemOutcome.failed("fetch_failed", "boom"))
    assert not job_store.record_outcome(item.id, ItemOutcome.failed("fetch_failed", "again"))
    status = job_store.get_status(job.id)
    assert status.processed_posts == 1
    assert status.failed_posts == 1


def test_record_outcome_requires_claim(job_store):
    job = job_store.create_job(["a"])
    item = job_store.list_items(job.id)[0]
    assert not job_store.record_outcome(item.id, ItemOutcome.failed("fetch_failed", "boom"))
    assert job_store.get_status(job.id).processed_posts == 0


def test_maybe_finalize_only_when_all_processed(job_store):
    job = job_store.create_job(["a"])
    assert not job_store.maybe_finalize(job.id)
    item = job_store.claim_next_pending(job.id)
    job_store.record_outcome(item.id, ItemOutcome.failed("fetch_failed", "boom"))
    # record_outcome already finalized the job
    assert not job_store.maybe_finalize(job.id)
    assert job_store.get_status(job.id).status == "COMPLETED_WITH_ERRORS"


def test_concurrent_last_outcomes_finalize_once(job_store):
    post_ids = [f"p{i}" for i in range(8)]
    job = job_store.create_job(post_ids)
    items = [job_store.claim_next_pending(job.id) for _ in post_ids]
    barrier = threading.Barrier(len(items))
    errors = []
    transitions = []
    lock = threading.Lock()

    def finish(item):
        try:
            barrier.wait()
            applied = job_store.apply_outcome(item.id, ItemOutcome.failed("fetch_failed", "boom"))
            finalized_here = job_store.maybe_finalize(job.id)
            with lock:
                transitions.extend([applied.finalized, finalized_here])
        except Exception as exc:  # noqa: BLE001
            errors.append(exc)

    threads = [threading.Thread(target=finish, args=(item,)) for item in items]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert len(transitions) == 2 * len(items)
    # Exactly one caller, via either path, moved the job to its terminal state
    assert sum(transitions) == 1
    status = job_store.get_status(job.id)
    assert status.status == "COMPLETED_WITH_ERRORS"
    assert status.processed_posts == status.total_posts == len(post_ids)
    assert status.failed_posts == len(post_ids)
    assert not job_store.maybe_finalize(job.id)


def test_fail_job_stops_claims(job_store):
    job = job_store.create_job(["a", "b"])
    assert job_store.fail_job(job.id, "store went away")
    assert not job_store.fail_job(job.id, "again")
    status = job_store.get_status(job.id)
    assert status.status == "FAILED"
    assert status.error_message == "store went away"
    assert job_store.claim_next_pending(job.id) is None


def test_get_status_scoped_to_user(job_store):
    job = job_store.create_job(["a"], user_id="user-1")
    assert job_store.get_status(job.id, user_id="user-1").id == job.id
    with pytest.raises(NotFoundError):
        job_store.get_status(job.id, user_id="user-2")
    with pytest.raises(NotFoundError):
        job_store.get_status("missing")


def test_apply_outcome_reports_final_status(job_store):
    job = job_store.create_job(["a", "b"])
    first = job_store.claim_next_pending(job.id)
    second = job_store.claim_next_pending(job.id)

    applied = job_store.apply_outcome(first.id, ItemOutcome.succeeded(1))
    assert applied.recorded and not applied.finalized

    applied = job_store.apply_outcome(second.id, ItemOutcome.failed("fetch_failed", "boom"))
    assert applied.recorded
    assert applied.final_status == "COMPLETED_WITH_ERRORS"

    assert job_store.apply_outcome(second.id, ItemOutcome.succeeded(2)) == (False, None)
    assert job_store.record_outcome(second.id, ItemOutcome.succeeded(2)) is False


def test_resume_helpers(job_store, backdate_job):
    done = job_store.create_job(["x"])
    item = job_store.claim_next_pending(done.id)
    job_store.record_outcome(item.id, ItemOutcome.failed("fetch_failed", "boom"))
    backdate_job(done.id, minutes=120)

    job = job_store.create_job(["a", "b"])
    job_store.claim_next_pending(job.id)
    backdate_job(job.id, minutes=120)
    assert job_store.list_resumable_jobs(cutoff_minutes=30) == [job.id]

    assert job_store.reset_stale_claims(job.id, cutoff_minutes=30) == 1
    assert {i.status for i in job_store.list_items(job.id)} == {"PENDING"}
    assert job_store.reset_stale_claims(done.id, cutoff_minutes=30) == 0


def test_fresh_claims_are_not_reset(job_store, backdate_job):
    job = job_store.create_job(["a", "b"])
    job_store.claim_next_pending(job.id)

    assert job_store.list_resumable_jobs(cutoff_minutes=30) == []
    assert job_store.reset_stale_claims(job.id, cutoff_minutes=30) == 0
    assert [i.status for i in job_store.list_items(job.id)] == ["IN_PROGRESS", "PENDING"]

    backdate_job(job.id, minutes=120)
    assert job_store.list_resumable_jobs(cutoff_minutes=30) == [job.id]
    assert job_store.reset_stale_claims(job.id, cutoff_minutes=30) == 1


def test_recent_activity_keeps_job_out_of_resumable_list(job_store, backdate_job):
    job = job_store.create_job(["a", "b"])
    job_store.claim_next_pending(job.id)
    backdate_job(job.id, minutes=120)
    # A live run is still claiming items
    job_store.claim_next_pending(job.id)

    assert job_store.list_resumable_jobs(cutoff_minutes=30) == []
    assert job_store.reset_stale_claims(job.id, cutoff_minutes=30) == 1
    assert [i.status for i in job_store.list_items(job.id)] == ["PENDING", "IN_PROGRESS"]
