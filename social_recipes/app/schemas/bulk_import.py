from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class BulkImportCreate(BaseModel):
    post_ids: List[str]


class BulkImportResponse(BaseModel):
    job_id: str
    status: str
    total_posts: int
    message: str


class ImportJobStatus(BaseModel):
    """Read-only projection of a bulk import job and its counters."""

    id: str
    user_id: Optional[str] = None
    status: str
    total_posts: int
    processed_posts: int
    successful_posts: int
    failed_posts: int
    error_message: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_terminal(self) -> bool:
        return self.status in {"COMPLETED", "COMPLETED_WITH_ERRORS", "FAILED"}


class ImportItemView(BaseModel):
    id: int
    job_id: str
    position: int
    post_id: str
    status: str
    result_recipe_id: Optional[int] = None
    error_code: Optional[str] = None
    error_detail: Optional[str] = None
    claimed_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
