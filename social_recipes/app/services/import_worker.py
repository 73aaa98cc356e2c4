"""
Worker pool that drains a bulk import job.

Each worker repeatedly claims one PENDING item, fetches the post, parses it
into a recipe draft, saves it and records the outcome. Failures are stored
on the item; only job-store outages and fatal persistence errors stop the
job as a whole.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from social_recipes.app.core.config import get_settings
from social_recipes.app.core.errors import FetchError, ParseError, PersistenceError, StoreUnavailableError
from social_recipes.app.schemas.bulk_import import ImportItemView, ImportJobStatus
from social_recipes.app.services import recipe_parser
from social_recipes.app.services.job_store import ItemOutcome, JobStore
from social_recipes.app.services.post_fetcher import PostFetcher
from social_recipes.app.services.recipes_service import RecipeRepository

logger = logging.getLogger(__name__)


class _StopWorker(Exception):
    """Raised inside a worker when the job can no longer make progress."""


class ImportWorkerPool:
    def __init__(
        self,
        job_store: JobStore,
        fetcher: PostFetcher,
        recipe_repository: RecipeRepository,
        concurrency: Optional[int] = None,
    ):
        self.job_store = job_store
        self.fetcher = fetcher
        self.recipe_repository = recipe_repository
        self.concurrency = concurrency or get_settings().bulk_import_concurrency

    def run(self, job_id: str, concurrency: Optional[int] = None) -> ImportJobStatus:
        """Process every pending item of ``job_id`` and return the final job state."""
        job = self.job_store.get_status(job_id)
        if job.is_terminal:
            logger.info("Job %s already %s; nothing to run", job_id, job.status)
            return job

        workers = max(1, min(concurrency or self.concurrency, job.total_posts))
        logger.info("Running bulk import job %s with %d workers", job_id, workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"import-{job_id[:8]}") as pool:
            futures = [pool.submit(self._worker_loop, job_id, job.user_id) for _ in range(workers)]
            errors = []
            for future in futures:
                exc = future.exception()
                if exc is not None:
                    errors.append(exc)

        if errors:
            first = errors[0]
            try:
                self.job_store.fail_job(job_id, str(first) or first.__class__.__name__)
            except StoreUnavailableError:
                logger.exception("Could not mark job %s as failed", job_id)
                raise first
        else:
            # Covers jobs whose last outcome was recorded by a previous run
            self.job_store.maybe_finalize(job_id)
        return self.job_store.get_status(job_id)

    def _worker_loop(self, job_id: str, user_id: Optional[str]) -> None:
        while True:
            item = self.job_store.claim_next_pending(job_id)
            if item is None:
                return
            try:
                outcome = self.process_item(item, user_id)
            except _StopWorker as exc:
                self.job_store.record_outcome(item.id, ItemOutcome.failed("store_unavailable", str(exc)))
                self.job_store.fail_job(job_id, str(exc))
                return
            self.job_store.record_outcome(item.id, outcome)

    def process_item(self, item: ImportItemView, user_id: Optional[str] = None) -> ItemOutcome:
        """Turn one claimed item into an outcome. Never raises for per-item failures."""
        try:
            raw = self.fetcher.fetch(item.post_id)
            draft = recipe_parser.parse_post(raw)
            recipe_id = self.recipe_repository.save_recipe(draft, user_id=user_id)
        except (FetchError, ParseError) as exc:
            logger.info("Post %s (job %s) failed: %s %s", item.post_id, item.job_id, exc.code, exc.message)
            return ItemOutcome.failed(exc.code, exc.message)
        except PersistenceError as exc:
            if exc.fatal:
                raise _StopWorker(exc.message) from exc
            logger.warning("Post %s (job %s) could not be saved: %s", item.post_id, item.job_id, exc.message)
            return ItemOutcome.failed(exc.code, exc.message)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected error importing post %s (job %s)", item.post_id, item.job_id)
            return ItemOutcome.failed("worker_error", str(exc) or exc.__class__.__name__)
        logger.info("Post %s (job %s) imported as recipe %s", item.post_id, item.job_id, recipe_id)
        return ItemOutcome.succeeded(recipe_id)
