from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, status

from social_recipes.app.api.deps import get_current_user, get_orchestrator
from social_recipes.app.schemas.auth import CurrentUser
from social_recipes.app.schemas.bulk_import import BulkImportCreate, BulkImportResponse, ImportItemView, ImportJobStatus
from social_recipes.app.schemas.recipe import GenerateStepsRequest, GenerateStepsResponse, RecipeRead
from social_recipes.app.services.import_orchestrator import ImportOrchestrator

router = APIRouter(prefix="/imports", tags=["imports"])


@router.post("/bulk", response_model=BulkImportResponse, status_code=status.HTTP_202_ACCEPTED)
def submit_bulk_import(
    payload: BulkImportCreate,
    current_user: CurrentUser = Depends(get_current_user),
    orchestrator: ImportOrchestrator = Depends(get_orchestrator),
):
    return orchestrator.submit_bulk_import(payload.post_ids, user_id=current_user.id)


@router.post("/single", response_model=RecipeRead, status_code=status.HTTP_201_CREATED)
def import_single_post(
    payload: Dict[str, Any] = Body(...),
    current_user: CurrentUser = Depends(get_current_user),
    orchestrator: ImportOrchestrator = Depends(get_orchestrator),
):
    return orchestrator.import_single_post(payload, user_id=current_user.id)


@router.post("/generate-steps", response_model=GenerateStepsResponse)
def generate_steps(
    payload: GenerateStepsRequest,
    current_user: CurrentUser = Depends(get_current_user),
    orchestrator: ImportOrchestrator = Depends(get_orchestrator),
):
    return GenerateStepsResponse(steps=orchestrator.generate_steps(payload.title, payload.ingredients))


@router.get("/{job_id}", response_model=ImportJobStatus)
def get_import_job(
    job_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    orchestrator: ImportOrchestrator = Depends(get_orchestrator),
):
    return orchestrator.get_job_status(job_id, user_id=current_user.id)


@router.get("/{job_id}/items", response_model=List[ImportItemView])
def get_import_job_items(
    job_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    orchestrator: ImportOrchestrator = Depends(get_orchestrator),
):
    return orchestrator.get_job_items(job_id, user_id=current_user.id)
