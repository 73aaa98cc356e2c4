"""Durable state for bulk import jobs and their items.

All job/item mutation goes through this module. Every operation opens its
own short session, and every transition is a conditional UPDATE (a
compare-and-set on the current status), so concurrent workers can call any
operation without coordinating with each other.
"""
import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Iterator, List, NamedTuple, Optional, Sequence

from sqlalchemy import case, insert, or_, select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from social_recipes.app.core.errors import NotFoundError, StoreUnavailableError, ValidationError
from social_recipes.app.db import models
from social_recipes.app.db.models import ImportItemStatus, ImportJobStatus
from social_recipes.app.schemas.bulk_import import ImportItemView, ImportJobStatus as ImportJobView

logger = logging.getLogger(__name__)

ACTIVE_JOB_STATUSES = (ImportJobStatus.PENDING.value, ImportJobStatus.RUNNING.value)
# Claims race on the same row; give up after this many lost CAS attempts in a row
MAX_CLAIM_ATTEMPTS = 50


class ItemOutcome:
    """Terminal result for one item: SUCCEEDED(recipe_id) or FAILED(code, detail)."""

    __slots__ = ("status", "recipe_id", "error_code", "error_detail")

    def __init__(
        self,
        status: ImportItemStatus,
        recipe_id: Optional[int] = None,
        error_code: Optional[str] = None,
        error_detail: Optional[str] = None,
    ):
        self.status = status
        self.recipe_id = recipe_id
        self.error_code = error_code
        self.error_detail = error_detail

    @classmethod
    def succeeded(cls, recipe_id: int) -> "ItemOutcome":
        return cls(ImportItemStatus.SUCCEEDED, recipe_id=recipe_id)

    @classmethod
    def failed(cls, error_code: str, error_detail: str) -> "ItemOutcome":
        return cls(ImportItemStatus.FAILED, error_code=error_code, error_detail=error_detail or error_code)

    @property
    def is_success(self) -> bool:
        return self.status == ImportItemStatus.SUCCEEDED

    def __repr__(self) -> str:
        if self.is_success:
            return f"ItemOutcome(SUCCEEDED, recipe_id={self.recipe_id})"
        return f"ItemOutcome(FAILED, {self.error_code}: {self.error_detail})"


class AppliedOutcome(NamedTuple):
    recorded: bool
    final_status: Optional[str] = None

    @property
    def finalized(self) -> bool:
        return self.final_status is not None


class JobStore:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        except OperationalError as exc:
            db.rollback()
            raise StoreUnavailableError(f"Job store unavailable: {exc}") from exc
        finally:
            db.close()

    def create_job(self, post_ids: Sequence[str], user_id: Optional[str] = None) -> ImportJobView:
        """Create a PENDING job with one PENDING item per post id (duplicates included)."""
        post_ids = list(post_ids)
        if not post_ids:
            raise ValidationError.single("post_ids", "No posts selected for import")
        job_id = str(uuid.uuid4())
        now = datetime.utcnow()
        with self._session() as db:
            job = models.BulkImportJob(
                id=job_id,
                user_id=str(user_id) if user_id is not None else None,
                status=ImportJobStatus.PENDING.value,
                total_posts=len(post_ids),
                processed_posts=0,
                successful_posts=0,
                failed_posts=0,
                created_at=now,
            )
            db.add(job)
            db.flush()
            db.execute(
                insert(models.ImportItem),
                [
                    {
                        "job_id": job_id,
                        "position": position,
                        "post_id": post_id,
                        "status": ImportItemStatus.PENDING.value,
                    }
                    for position, post_id in enumerate(post_ids)
                ],
            )
            db.commit()
            db.refresh(job)
            logger.info("Created bulk import job %s with %d posts", job_id, len(post_ids))
            return ImportJobView.model_validate(job)

    def claim_next_pending(self, job_id: str) -> Optional[ImportItemView]:
        """Atomically move one PENDING item to IN_PROGRESS and return it.

        Returns None when nothing is left to claim or the job is already
        terminal; that is the worker's signal to stop.
        """
        with self._session() as db:
            for _ in range(MAX_CLAIM_ATTEMPTS):
                job_status = db.scalar(select(models.BulkImportJob.status).where(models.BulkImportJob.id == job_id))
                if job_status is None:
                    raise NotFoundError(f"Import job {job_id} not found")
                if job_status not in ACTIVE_JOB_STATUSES:
                    return None
                candidate_id = db.scalar(
                    select(models.ImportItem.id)
                    .where(
                        models.ImportItem.job_id == job_id,
                        models.ImportItem.status == ImportItemStatus.PENDING.value,
                    )
                    .order_by(models.ImportItem.position.asc())
                    .limit(1)
                )
                if candidate_id is None:
                    return None

                now = datetime.utcnow()
                claimed = db.execute(
                    update(models.ImportItem)
                    .execution_options(synchronize_session=False)
                    .where(
                        models.ImportItem.id == candidate_id,
                        models.ImportItem.status == ImportItemStatus.PENDING.value,
                    )
                    .values(status=ImportItemStatus.IN_PROGRESS.value, claimed_at=now)
                )
                if claimed.rowcount != 1:
                    # Another worker won this row; look for the next one
                    db.rollback()
                    continue
                started = db.execute(
                    update(models.BulkImportJob)
                    .execution_options(synchronize_session=False)
                    .where(
                        models.BulkImportJob.id == job_id,
                        models.BulkImportJob.status == ImportJobStatus.PENDING.value,
                    )
                    .values(status=ImportJobStatus.RUNNING.value, started_at=now)
                )
                db.commit()
                if started.rowcount == 1:
                    logger.info("Bulk import job %s started", job_id)
                item = db.get(models.ImportItem, candidate_id)
                return ImportItemView.model_validate(item)
            logger.warning("Gave up claiming an item for job %s after %d attempts", job_id, MAX_CLAIM_ATTEMPTS)
            return None

    def record_outcome(self, item_id: int, outcome: ItemOutcome) -> bool:
        """Store an item's terminal state; False if the item was not IN_PROGRESS."""
        return self.apply_outcome(item_id, outcome).recorded

    def apply_outcome(self, item_id: int, outcome: ItemOutcome) -> AppliedOutcome:
        """Write the item's terminal state, bump the counters and finalize in one transaction.

        Nothing changes if the item is not IN_PROGRESS, so a terminal state is
        only ever written once. ``final_status`` is set only for the caller
        whose write finished the job.
        """
        with self._session() as db:
            job_id = db.scalar(select(models.ImportItem.job_id).where(models.ImportItem.id == item_id))
            if job_id is None:
                raise NotFoundError(f"Import item {item_id} not found")

            now = datetime.utcnow()
            values = {"status": outcome.status.value, "finished_at": now}
            if outcome.is_success:
                values.update(result_recipe_id=outcome.recipe_id, error_code=None, error_detail=None)
            else:
                values.update(result_recipe_id=None, error_code=outcome.error_code, error_detail=outcome.error_detail)
            marked = db.execute(
                update(models.ImportItem)
                .execution_options(synchronize_session=False)
                .where(
                    models.ImportItem.id == item_id,
                    models.ImportItem.status == ImportItemStatus.IN_PROGRESS.value,
                )
                .values(**values)
            )
            if marked.rowcount != 1:
                db.rollback()
                logger.warning("Item %s is not in progress; ignoring outcome %r", item_id, outcome)
                return AppliedOutcome(recorded=False)

            job = models.BulkImportJob
            counter = job.successful_posts if outcome.is_success else job.failed_posts
            db.execute(
                update(job)
                .execution_options(synchronize_session=False)
                .where(job.id == job_id)
                .values({job.processed_posts: job.processed_posts + 1, counter: counter + 1})
            )
            finalized = self._finalize(db, job_id, now)
            db.commit()
        if finalized:
            logger.info("Bulk import job %s finished with status %s", job_id, finalized)
        return AppliedOutcome(recorded=True, final_status=finalized)

    def _finalize(self, db: Session, job_id: str, now: datetime) -> Optional[str]:
        job = models.BulkImportJob
        result = db.execute(
            update(job)
            .execution_options(synchronize_session=False)
            .where(
                job.id == job_id,
                job.status.in_(ACTIVE_JOB_STATUSES),
                job.processed_posts >= job.total_posts,
            )
            .values(
                status=case(
                    (job.failed_posts == 0, ImportJobStatus.COMPLETED.value),
                    else_=ImportJobStatus.COMPLETED_WITH_ERRORS.value,
                ),
                completed_at=now,
            )
        )
        if result.rowcount != 1:
            return None
        return db.scalar(select(job.status).where(job.id == job_id))

    def maybe_finalize(self, job_id: str) -> bool:
        """Move a fully processed job to its terminal status.

        Idempotent: returns True only for the single caller that performed
        the transition.
        """
        with self._session() as db:
            status = self._finalize(db, job_id, datetime.utcnow())
            db.commit()
        if status:
            logger.info("Bulk import job %s finished with status %s", job_id, status)
        return status is not None

    def fail_job(self, job_id: str, error_message: str) -> bool:
        """Mark a non-terminal job FAILED. Reserved for job-level fatal errors."""
        with self._session() as db:
            result = db.execute(
                update(models.BulkImportJob)
                .execution_options(synchronize_session=False)
                .where(
                    models.BulkImportJob.id == job_id,
                    models.BulkImportJob.status.in_(ACTIVE_JOB_STATUSES),
                )
                .values(
                    status=ImportJobStatus.FAILED.value,
                    error_message=error_message,
                    completed_at=datetime.utcnow(),
                )
            )
            db.commit()
        if result.rowcount == 1:
            logger.error("Bulk import job %s failed: %s", job_id, error_message)
            return True
        return False

    def get_status(self, job_id: str, user_id: Optional[str] = None) -> ImportJobView:
        with self._session() as db:
            stmt = select(models.BulkImportJob).where(models.BulkImportJob.id == job_id)
            if user_id is not None:
                stmt = stmt.where(models.BulkImportJob.user_id == str(user_id))
            job = db.scalars(stmt).first()
            if job is None:
                raise NotFoundError(f"Import job {job_id} not found")
            return ImportJobView.model_validate(job)

    def list_items(self, job_id: str) -> List[ImportItemView]:
        with self._session() as db:
            stmt = (
                select(models.ImportItem)
                .where(models.ImportItem.job_id == job_id)
                .order_by(models.ImportItem.position.asc())
            )
            return [ImportItemView.model_validate(item) for item in db.scalars(stmt).all()]

    def list_resumable_jobs(self, cutoff_minutes: int) -> List[str]:
        """Active jobs with no item activity in the last ``cutoff_minutes``.

        A job that some live run is still draining keeps claiming or
        finishing items, so it stays out of this list.
        """
        cutoff = datetime.utcnow() - timedelta(minutes=cutoff_minutes)
        job = models.BulkImportJob
        item = models.ImportItem
        recent_activity = select(item.id).where(
            item.job_id == job.id,
            or_(item.claimed_at >= cutoff, item.finished_at >= cutoff),
        )
        with self._session() as db:
            stmt = (
                select(job.id)
                .where(
                    job.status.in_(ACTIVE_JOB_STATUSES),
                    job.created_at < cutoff,
                    ~recent_activity.exists(),
                )
                .order_by(job.created_at.asc())
            )
            return list(db.scalars(stmt).all())

    def reset_stale_claims(self, job_id: str, cutoff_minutes: int) -> int:
        """Return items claimed more than ``cutoff_minutes`` ago to PENDING.

        Fresh claims belong to a worker that may still be running and are
        left alone.
        """
        cutoff = datetime.utcnow() - timedelta(minutes=cutoff_minutes)
        with self._session() as db:
            job_status = db.scalar(select(models.BulkImportJob.status).where(models.BulkImportJob.id == job_id))
            if job_status not in ACTIVE_JOB_STATUSES:
                return 0
            result = db.execute(
                update(models.ImportItem)
                .execution_options(synchronize_session=False)
                .where(
                    models.ImportItem.job_id == job_id,
                    models.ImportItem.status == ImportItemStatus.IN_PROGRESS.value,
                    models.ImportItem.claimed_at != None,  # noqa: E711
                    models.ImportItem.claimed_at < cutoff,
                )
                .values(status=ImportItemStatus.PENDING.value, claimed_at=None)
            )
            db.commit()
            return result.rowcount or 0
