import threading
import time
from datetime import datetime, timedelta
from typing import Dict, Union

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from social_recipes.app.api.deps import get_orchestrator
from social_recipes.app.core.config import get_settings
from social_recipes.app.core.errors import FetchError
from social_recipes.app.db import models
from social_recipes.app.db.session import init_db, make_engine, make_session_factory
from social_recipes.app.main import create_app
from social_recipes.app.schemas.post import RawPost
from social_recipes.app.services.import_orchestrator import ImportOrchestrator
from social_recipes.app.services.import_worker import ImportWorkerPool
from social_recipes.app.services.job_store import JobStore
from social_recipes.app.services.post_fetcher import PostFetcher
from social_recipes.app.services.recipes_service import SqlRecipeRepository


def caption_for(post_id: str) -> str:
    return "\n".join(
        [
            f"Garlic Toast {post_id}",
            "Ingredients:",
            "- 2 slices bread",
            "- 1 tbsp butter",
            "- 1 clove garlic, minced",
            "#toast",
        ]
    )


class FakeFetcher(PostFetcher):
    """Deterministic fetcher: known failures raise, everything else gets a parseable caption."""

    def __init__(self, posts: Dict[str, Union[RawPost, Exception]] = None, delay: float = 0.0):
        self.posts = dict(posts or {})
        self.delay = delay
        self.calls = []
        self._lock = threading.Lock()

    def fetch(self, post_id: str) -> RawPost:
        with self._lock:
            self.calls.append(post_id)
        if self.delay:
            time.sleep(self.delay)
        result = self.posts.get(post_id)
        if isinstance(result, Exception):
            raise result
        if result is not None:
            return result
        return RawPost(post_id=post_id, caption=caption_for(post_id), owner_username="chef", shortcode=f"sc{post_id}")


class GatedFetcher(FakeFetcher):
    """Blocks every fetch until ``release`` is set."""

    def __init__(self):
        super().__init__()
        self.started = threading.Event()
        self.release = threading.Event()

    def fetch(self, post_id: str) -> RawPost:
        self.started.set()
        if not self.release.wait(timeout=30):
            raise TimeoutError("fetch was never released")
        return super().fetch(post_id)


@pytest.fixture
def engine(tmp_path):
    # File-backed so worker threads get their own connections
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}", busy_timeout_seconds=30)
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def job_store(session_factory):
    return JobStore(session_factory)


@pytest.fixture
def backdate_job(session_factory):
    """Push a job's creation time and its item claims into the past."""

    def backdate(job_id: str, minutes: int) -> None:
        past = datetime.utcnow() - timedelta(minutes=minutes)
        with session_factory() as db:
            db.query(models.BulkImportJob).filter(models.BulkImportJob.id == job_id).update(
                {models.BulkImportJob.created_at: past}, synchronize_session=False
            )
            db.query(models.ImportItem).filter(
                models.ImportItem.job_id == job_id, models.ImportItem.claimed_at != None  # noqa: E711
            ).update({models.ImportItem.claimed_at: past}, synchronize_session=False)
            db.commit()

    return backdate


@pytest.fixture
def recipe_repository(session_factory):
    return SqlRecipeRepository(session_factory)


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def gated_fetcher():
    fetcher = GatedFetcher()
    yield fetcher
    fetcher.release.set()


@pytest.fixture
def worker_pool(job_store, fetcher, recipe_repository):
    return ImportWorkerPool(job_store, fetcher, recipe_repository, concurrency=4)


@pytest.fixture
def orchestrator(job_store, worker_pool, recipe_repository):
    orchestrator = ImportOrchestrator(job_store, worker_pool, recipe_repository, settings=get_settings())
    yield orchestrator
    orchestrator.shutdown(wait=True)


@pytest.fixture
def app(orchestrator):
    app = create_app()
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def auth_settings():
    return get_settings()


def make_token(user_id: str, email: str, settings) -> str:
    payload = {"sub": str(user_id), "email": email}
    return jwt.encode(payload, settings.auth_secret_key, algorithm=settings.auth_algorithm)


@pytest.fixture
def user_token(auth_settings):
    return make_token("user-1", "user1@example.com", auth_settings)


@pytest.fixture
def other_user_token(auth_settings):
    return make_token("user-2", "user2@example.com", auth_settings)


@pytest.fixture
def not_found_error():
    return FetchError("post_not_found", "Post not found", status_code=404)
