"""Error taxonomy for the import pipeline.

Per-item errors (fetch, parse, persistence) are caught at the item boundary
by the worker pool and stored on the item. Validation and not-found errors
are raised to callers; the API layer maps them onto HTTP responses.
"""
from typing import List, Optional

from pydantic import BaseModel


class FieldViolation(BaseModel):
    field: Optional[str] = None
    message: str


class ImportPipelineError(Exception):
    code = "import_error"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def __str__(self) -> str:
        return self.message


class ValidationError(ImportPipelineError):
    """Malformed caller input. Never retried."""

    code = "validation_error"

    def __init__(self, violations: List[FieldViolation], message: Optional[str] = None):
        self.violations = list(violations)
        if message is None:
            message = "; ".join(_describe(v) for v in self.violations) or "Invalid input"
        super().__init__(message)

    @classmethod
    def single(cls, field: Optional[str], message: str) -> "ValidationError":
        return cls([FieldViolation(field=field, message=message)])


class FetchError(ImportPipelineError):
    code = "fetch_failed"

    def __init__(self, code: str, message: str, status_code: Optional[int] = None):
        super().__init__(message, code=code)
        self.status_code = status_code


class ParseError(ImportPipelineError):
    code = "parse_failed"

    def __init__(self, code: str, message: str, violations: Optional[List[FieldViolation]] = None):
        super().__init__(message, code=code)
        self.violations = list(violations or [])


class PersistenceError(ImportPipelineError):
    """Recipe write failure. ``fatal`` means the store itself is unreachable."""

    code = "persistence_failed"

    def __init__(self, code: str, message: str, fatal: bool = False):
        super().__init__(message, code=code)
        self.fatal = fatal


class NotFoundError(ImportPipelineError):
    code = "not_found"


class StoreUnavailableError(ImportPipelineError):
    code = "store_unavailable"


def _describe(violation: FieldViolation) -> str:
    if violation.field:
        return f"{violation.field}: {violation.message}"
    return violation.message
