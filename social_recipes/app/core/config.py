import logging
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = Field("sqlite:///./social_recipes.db", alias="DATABASE_URL")
    database_auto_create: bool = Field(False, alias="DATABASE_AUTO_CREATE")
    sqlite_busy_timeout_seconds: float = Field(30.0, alias="SQLITE_BUSY_TIMEOUT_SECONDS")
    auth_secret_key: str = Field("change-me", alias="AUTH_SECRET_KEY")
    auth_algorithm: str = Field("HS256", alias="AUTH_ALGORITHM")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    post_fetch_base_url: str | None = Field(None, alias="POST_FETCH_BASE_URL")
    post_fetch_timeout_seconds: float = Field(10.0, alias="POST_FETCH_TIMEOUT_SECONDS")
    scraper_user_agent: str = Field(
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 13_6) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0 Safari/537.36",
        alias="SCRAPER_USER_AGENT",
    )
    # Kept small to respect rate limits on the post source
    bulk_import_concurrency: int = Field(4, alias="BULK_IMPORT_CONCURRENCY", ge=1)
    bulk_import_max_posts: int = Field(50, alias="BULK_IMPORT_MAX_POSTS", ge=1)
    bulk_import_stale_claim_minutes: int = Field(30, alias="BULK_IMPORT_STALE_CLAIM_MINUTES", ge=1)
    recipe_default_servings: int = Field(4, alias="RECIPE_DEFAULT_SERVINGS", ge=1)

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True)


logger = logging.getLogger(__name__)


@lru_cache
def get_settings() -> Settings:
    try:
        settings = Settings()
    except PermissionError:
        logger.warning("Unable to read .env; continuing with environment variables only")
        settings = Settings(_env_file=None)
    return settings
