"""Entry points for callers: submit, poll and single-post import."""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from typing import Any, Dict, List, Optional, Sequence

from social_recipes.app.core.config import Settings, get_settings
from social_recipes.app.core.errors import FieldViolation, ValidationError
from social_recipes.app.schemas.bulk_import import BulkImportResponse, ImportItemView, ImportJobStatus
from social_recipes.app.schemas.recipe import RecipeRead, StepDraft
from social_recipes.app.services import recipe_parser
from social_recipes.app.services.import_worker import ImportWorkerPool
from social_recipes.app.services.job_store import JobStore
from social_recipes.app.services.recipes_service import RecipeRepository

logger = logging.getLogger(__name__)


class ImportOrchestrator:
    def __init__(
        self,
        job_store: JobStore,
        worker_pool: ImportWorkerPool,
        recipe_repository: RecipeRepository,
        settings: Optional[Settings] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.job_store = job_store
        self.worker_pool = worker_pool
        self.recipe_repository = recipe_repository
        self.settings = settings or get_settings()
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="bulk-import")
        self._runs: Dict[str, Future] = {}
        self._lock = threading.Lock()

    def _validate_post_ids(self, post_ids: Sequence[str]) -> List[str]:
        if not post_ids:
            raise ValidationError.single("post_ids", "No posts selected for import")
        limit = self.settings.bulk_import_max_posts
        if len(post_ids) > limit:
            raise ValidationError.single("post_ids", f"Maximum {limit} posts per import")
        violations = []
        cleaned = []
        for index, post_id in enumerate(post_ids):
            value = post_id.strip() if isinstance(post_id, str) else ""
            if not value:
                violations.append(FieldViolation(field=f"post_ids.{index}", message="Post id must be a non-empty string"))
            cleaned.append(value)
        if violations:
            raise ValidationError(violations)
        return cleaned

    def submit_bulk_import(self, post_ids: Sequence[str], user_id: Optional[str] = None) -> BulkImportResponse:
        """Create a job for ``post_ids`` and start processing it in the background."""
        cleaned = self._validate_post_ids(list(post_ids or []))
        job = self.job_store.create_job(cleaned, user_id=user_id)
        future = self._executor.submit(self._run_job, job.id)
        with self._lock:
            self._runs[job.id] = future
        future.add_done_callback(lambda _f, job_id=job.id: self._forget(job_id))
        return BulkImportResponse(
            job_id=job.id,
            status=job.status,
            total_posts=job.total_posts,
            message=f"Import job created for {job.total_posts} posts",
        )

    def resume_job(self, job_id: str) -> Future:
        """Requeue orphaned claims of an unfinished job and run it again.

        If this orchestrator is still running the job, nothing is reset and
        the live run is returned.
        """
        with self._lock:
            running = self._runs.get(job_id)
            if running is not None and not running.done():
                logger.info("Job %s is already running; not resuming it", job_id)
                return running
            reset = self.job_store.reset_stale_claims(job_id, self.settings.bulk_import_stale_claim_minutes)
            if reset:
                logger.info("Reset %d stale items for job %s", reset, job_id)
            future = self._executor.submit(self._run_job, job_id)
            self._runs[job_id] = future
        future.add_done_callback(lambda _f: self._forget(job_id))
        return future

    def _forget(self, job_id: str) -> None:
        with self._lock:
            future = self._runs.get(job_id)
            if future is not None and future.done():
                self._runs.pop(job_id, None)

    def _run_job(self, job_id: str) -> Optional[ImportJobStatus]:
        try:
            return self.worker_pool.run(job_id)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Bulk import job %s crashed", job_id)
            try:
                self.job_store.fail_job(job_id, f"Import run crashed: {exc}")
            except Exception:  # noqa: BLE001
                logger.exception("Could not mark job %s as failed", job_id)
            return None

    def get_job_status(self, job_id: str, user_id: Optional[str] = None) -> ImportJobStatus:
        return self.job_store.get_status(job_id, user_id=user_id)

    def get_job_items(self, job_id: str, user_id: Optional[str] = None) -> List[ImportItemView]:
        # Ownership check first so other users' jobs look missing
        self.job_store.get_status(job_id, user_id=user_id)
        return self.job_store.list_items(job_id)

    def import_single_post(self, payload: Any, user_id: Optional[str] = None) -> RecipeRead:
        draft = recipe_parser.parse_payload(payload)
        recipe_id = self.recipe_repository.save_recipe(draft, user_id=user_id)
        logger.info("Imported single recipe %s", recipe_id)
        return self.recipe_repository.get_recipe(recipe_id)

    def generate_steps(self, title: str, ingredients: Sequence[Any]) -> List[StepDraft]:
        return recipe_parser.generate_steps(title, ingredients)

    def wait_for_job(self, job_id: str, timeout: Optional[float] = None) -> ImportJobStatus:
        """Block until the background run for ``job_id`` (if any) finishes."""
        with self._lock:
            future = self._runs.get(job_id)
        if future is not None:
            done, _ = wait_futures([future], timeout=timeout)
            if not done:
                raise TimeoutError(f"Import job {job_id} still running after {timeout}s")
        return self.job_store.get_status(job_id)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
