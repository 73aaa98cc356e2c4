from functools import lru_cache

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from social_recipes.app.core.config import get_settings
from social_recipes.app.db.session import SessionLocal
from social_recipes.app.schemas.auth import CurrentUser
from social_recipes.app.services.import_orchestrator import ImportOrchestrator
from social_recipes.app.services.import_worker import ImportWorkerPool
from social_recipes.app.services.job_store import JobStore
from social_recipes.app.services.post_fetcher import HttpPostFetcher
from social_recipes.app.services.recipes_service import SqlRecipeRepository

security = HTTPBearer(auto_error=True)


def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)) -> CurrentUser:
    settings = get_settings()
    try:
        payload = jwt.decode(credentials.credentials, settings.auth_secret_key, algorithms=[settings.auth_algorithm])
        sub = payload.get("sub")
        if sub is None or not str(sub).strip():
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")
        return CurrentUser(id=str(sub), email=payload.get("email"))
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")


@lru_cache
def get_orchestrator() -> ImportOrchestrator:
    settings = get_settings()
    if not settings.post_fetch_base_url:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Post fetching is not configured (POST_FETCH_BASE_URL)",
        )
    job_store = JobStore(SessionLocal)
    recipes = SqlRecipeRepository(SessionLocal)
    fetcher = HttpPostFetcher(settings.post_fetch_base_url)
    pool = ImportWorkerPool(job_store, fetcher, recipes, concurrency=settings.bulk_import_concurrency)
    return ImportOrchestrator(job_store, pool, recipes, settings=settings)
