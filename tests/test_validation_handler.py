import json

import pytest
from fastapi.exceptions import RequestValidationError

from social_recipes.app.core.errors import FieldViolation, NotFoundError, StoreUnavailableError, ValidationError
from social_recipes.app.main import pipeline_exception_handler, validation_exception_handler


class _Request:
    class url:
        path = "/imports/bulk"


@pytest.mark.asyncio
async def test_validation_handler_formats_errors():
    exc = RequestValidationError(
        errors=[
            {"loc": ("body", "post_ids"), "msg": "field required"},
            {"loc": ("query", "page"), "msg": "value is not a valid integer"},
        ]
    )
    response = await validation_exception_handler(None, exc)
    assert response.status_code == 422
    body = json.loads(response.body)
    assert body["error_code"] == "validation_error"
    assert body["message"] == "Invalid request payload."
    assert "request_id" in body and body["request_id"]
    assert {"field": "body.post_ids", "message": "field required"} in body["details"]
    assert {"field": "query.page", "message": "value is not a valid integer"} in body["details"]


@pytest.mark.asyncio
async def test_pipeline_validation_error_lists_violations():
    exc = ValidationError([FieldViolation(field="title", message="Title is required")])
    response = await pipeline_exception_handler(_Request(), exc)
    assert response.status_code == 422
    body = json.loads(response.body)
    assert body["error_code"] == "validation_error"
    assert body["details"] == [{"field": "title", "message": "Title is required"}]


@pytest.mark.asyncio
async def test_pipeline_not_found_and_unavailable():
    response = await pipeline_exception_handler(_Request(), NotFoundError("Import job x not found"))
    assert response.status_code == 404
    assert json.loads(response.body)["message"] == "Import job x not found"

    response = await pipeline_exception_handler(_Request(), StoreUnavailableError("database is locked"))
    assert response.status_code == 503
    assert json.loads(response.body)["error_code"] == "store_unavailable"
