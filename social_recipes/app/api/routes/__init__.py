from fastapi import APIRouter

from social_recipes.app.api.routes import bulk_import

api_router = APIRouter()
api_router.include_router(bulk_import.router)
