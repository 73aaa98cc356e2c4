import threading
import time
from collections import Counter

from social_recipes.app.core.errors import FetchError, PersistenceError
from social_recipes.app.schemas.post import RawPost
from social_recipes.app.services.import_worker import ImportWorkerPool


def test_partial_failure_completes_with_errors(job_store, worker_pool, fetcher, recipe_repository):
    fetcher.posts["p2"] = FetchError("post_not_found", "Post p2 not found", status_code=404)
    job = job_store.create_job(["p1", "p2", "p3"])

    final = worker_pool.run(job.id)

    assert final.status == "COMPLETED_WITH_ERRORS"
    assert final.total_posts == 3
    assert final.successful_posts == 2
    assert final.failed_posts == 1
    assert final.processed_posts == 3

    items = {item.post_id: item for item in job_store.list_items(job.id)}
    assert items["p2"].status == "FAILED"
    assert items["p2"].error_code == "post_not_found"
    assert items["p2"].error_detail == "Post p2 not found"
    assert items["p2"].result_recipe_id is None
    for post_id in ("p1", "p3"):
        assert items[post_id].status == "SUCCEEDED"
        recipe = recipe_repository.get_recipe(items[post_id].result_recipe_id)
        assert recipe.title == f"Garlic Toast {post_id}"
        assert recipe.source_post_id == post_id
        assert recipe.source_type.value == "social_post"


def test_every_item_processed_exactly_once(job_store, fetcher, recipe_repository):
    post_ids = [f"p{i}" for i in range(100)]
    job = job_store.create_job(post_ids)
    pool = ImportWorkerPool(job_store, fetcher, recipe_repository, concurrency=8)

    final = pool.run(job.id)

    assert final.status == "COMPLETED"
    assert final.processed_posts == final.successful_posts == 100
    assert Counter(fetcher.calls) == Counter(post_ids)
    items = job_store.list_items(job.id)
    assert all(item.status == "SUCCEEDED" for item in items)
    assert len({item.result_recipe_id for item in items}) == 100


def test_unparseable_post_fails_item(job_store, worker_pool, fetcher):
    fetcher.posts["empty"] = RawPost(post_id="empty", caption=None)
    job = job_store.create_job(["empty", "ok"])

    final = worker_pool.run(job.id)

    assert final.status == "COMPLETED_WITH_ERRORS"
    items = {item.post_id: item for item in job_store.list_items(job.id)}
    assert items["empty"].error_code == "no_caption"
    assert items["ok"].status == "SUCCEEDED"


def test_unexpected_error_is_contained(job_store, worker_pool, fetcher):
    fetcher.posts["bad"] = RuntimeError("kaboom")
    job = job_store.create_job(["bad", "good"])

    final = worker_pool.run(job.id)

    assert final.status == "COMPLETED_WITH_ERRORS"
    items = {item.post_id: item for item in job_store.list_items(job.id)}
    assert items["bad"].error_code == "worker_error"
    assert items["bad"].error_detail == "kaboom"


class _BrokenRepository:
    def __init__(self, fatal):
        self.fatal = fatal

    def save_recipe(self, draft, user_id=None):
        raise PersistenceError("store_unavailable" if self.fatal else "persistence_failed", "disk on fire", fatal=self.fatal)

    def get_recipe(self, recipe_id):
        raise AssertionError("not expected")


def test_non_fatal_persistence_error_fails_item(job_store, fetcher):
    job = job_store.create_job(["p1", "p2"])
    pool = ImportWorkerPool(job_store, fetcher, _BrokenRepository(fatal=False), concurrency=2)

    final = pool.run(job.id)

    assert final.status == "COMPLETED_WITH_ERRORS"
    assert final.failed_posts == 2
    assert {item.error_code for item in job_store.list_items(job.id)} == {"persistence_failed"}


def test_fatal_persistence_error_fails_job(job_store, fetcher):
    job = job_store.create_job([f"p{i}" for i in range(5)])
    pool = ImportWorkerPool(job_store, fetcher, _BrokenRepository(fatal=True), concurrency=1)

    final = pool.run(job.id)

    assert final.status == "FAILED"
    assert final.error_message == "disk on fire"
    assert final.processed_posts == 1
    assert final.successful_posts + final.failed_posts == final.processed_posts
    statuses = Counter(item.status for item in job_store.list_items(job.id))
    assert statuses == {"FAILED": 1, "PENDING": 4}


def test_run_on_terminal_job_is_noop(job_store, worker_pool, fetcher):
    job = job_store.create_job(["p1"])
    job_store.fail_job(job.id, "cancelled by operator")

    final = worker_pool.run(job.id)

    assert final.status == "FAILED"
    assert fetcher.calls == []


def test_status_snapshots_consistent_during_run(job_store, fetcher, recipe_repository):
    fetcher.delay = 0.005
    for index in range(0, 60, 7):
        fetcher.posts[f"p{index}"] = FetchError("post_not_found", "Post not found", status_code=404)
    post_ids = [f"p{i}" for i in range(60)]
    job = job_store.create_job(post_ids)
    pool = ImportWorkerPool(job_store, fetcher, recipe_repository, concurrency=8)
    errors = []

    def run():
        try:
            pool.run(job.id)
        except Exception as exc:  # noqa: BLE001
            errors.append(exc)

    runner = threading.Thread(target=run)
    runner.start()
    snapshots = []
    while runner.is_alive():
        snapshots.append(job_store.get_status(job.id))
        time.sleep(0.002)
    runner.join()
    snapshots.append(job_store.get_status(job.id))

    assert errors == []
    assert any(0 < s.processed_posts < len(post_ids) for s in snapshots)
    for snapshot in snapshots:
        assert snapshot.processed_posts == snapshot.successful_posts + snapshot.failed_posts
        assert snapshot.processed_posts <= snapshot.total_posts == len(post_ids)
        if snapshot.is_terminal:
            assert snapshot.processed_posts == snapshot.total_posts
    final = snapshots[-1]
    assert final.status == "COMPLETED_WITH_ERRORS"
    assert (final.successful_posts, final.failed_posts) == (51, 9)
