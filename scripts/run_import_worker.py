#!/usr/bin/env python
"""
Resume bulk import jobs left unfinished by a restart.

Items claimed more than BULK_IMPORT_STALE_CLAIM_MINUTES ago belonged to
workers that no longer exist; they are moved back to PENDING and every
PENDING/RUNNING job without recent activity is run to completion.

Run manually:
    python scripts/run_import_worker.py [job_id ...]
"""
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parents[1] / ".env")

from social_recipes.app.core.config import get_settings  # noqa: E402
from social_recipes.app.core.errors import NotFoundError  # noqa: E402
from social_recipes.app.db.session import SessionLocal  # noqa: E402
from social_recipes.app.services.import_orchestrator import ImportOrchestrator  # noqa: E402
from social_recipes.app.services.import_worker import ImportWorkerPool  # noqa: E402
from social_recipes.app.services.job_store import JobStore  # noqa: E402
from social_recipes.app.services.post_fetcher import HttpPostFetcher  # noqa: E402
from social_recipes.app.services.recipes_service import SqlRecipeRepository  # noqa: E402

settings = get_settings()
logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger("import_worker")


def main():
    if not settings.post_fetch_base_url:
        logger.error("POST_FETCH_BASE_URL is not set")
        sys.exit(1)

    job_store = JobStore(SessionLocal)
    recipes = SqlRecipeRepository(SessionLocal)
    pool = ImportWorkerPool(job_store, HttpPostFetcher(settings.post_fetch_base_url), recipes)
    orchestrator = ImportOrchestrator(job_store, pool, recipes, settings=settings)

    job_ids = sys.argv[1:] or job_store.list_resumable_jobs(settings.bulk_import_stale_claim_minutes)
    if not job_ids:
        logger.info("No unfinished import jobs")
        return
    logger.info("Resuming %d import jobs", len(job_ids))
    try:
        for job_id in job_ids:
            orchestrator.resume_job(job_id)
        for job_id in job_ids:
            try:
                job = orchestrator.wait_for_job(job_id)
            except NotFoundError:
                logger.warning("Job %s not found", job_id)
                continue
            logger.info(
                "Job %s: %s (%d/%d processed, %d failed)",
                job.id,
                job.status,
                job.processed_posts,
                job.total_posts,
                job.failed_posts,
            )
    finally:
        orchestrator.shutdown(wait=True)


if __name__ == "__main__":
    main()
