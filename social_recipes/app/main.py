import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status

from social_recipes.app.api.deps import get_orchestrator
from social_recipes.app.api.routes import api_router
from social_recipes.app.core.config import get_settings
from social_recipes.app.core.errors import (
    ImportPipelineError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)
from social_recipes.app.db.session import init_db

logger = logging.getLogger(__name__)


def _error_response(status_code: int, error_code: str, message: str, details=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error_code": error_code,
            "message": message,
            "details": details or [],
            "request_id": str(uuid.uuid4()),
        },
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", []) if part is not None)
        msg = err.get("msg", "Invalid value")
        details.append({"field": loc or None, "message": msg})
    return _error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, "validation_error", "Invalid request payload.", details)


async def pipeline_exception_handler(request: Request, exc: ImportPipelineError):
    if isinstance(exc, ValidationError):
        details = [violation.model_dump() for violation in exc.violations]
        return _error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, exc.code, exc.message, details)
    if isinstance(exc, NotFoundError):
        return _error_response(status.HTTP_404_NOT_FOUND, exc.code, exc.message)
    if isinstance(exc, StoreUnavailableError):
        logger.error("Store unavailable while handling %s: %s", request.url.path, exc.message)
        return _error_response(status.HTTP_503_SERVICE_UNAVAILABLE, exc.code, "Import store is unavailable.")
    logger.error("Unhandled pipeline error on %s: %s", request.url.path, exc.message)
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, exc.code, exc.message)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Social Recipes", version="0.1.0")
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ImportPipelineError, pipeline_exception_handler)
    app.include_router(api_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.on_event("startup")
    async def startup_event() -> None:
        if settings.database_auto_create:
            init_db()
            logger.info("Database tables created")

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        # Only shut down an orchestrator that was actually built
        if get_orchestrator.cache_info().currsize:
            get_orchestrator().shutdown(wait=False)

    return app


app = create_app()
