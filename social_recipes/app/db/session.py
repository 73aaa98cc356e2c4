from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from social_recipes.app.core.config import get_settings
from social_recipes.app.db.base import Base


def make_engine(database_url: str, busy_timeout_seconds: float = 30.0) -> Engine:
    connect_args = {}
    if database_url.startswith("sqlite"):
        # Workers share the engine across threads
        connect_args = {"check_same_thread": False, "timeout": busy_timeout_seconds}
    return create_engine(database_url, connect_args=connect_args, future=True)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


_settings = get_settings()
engine = make_engine(_settings.database_url, _settings.sqlite_busy_timeout_seconds)
SessionLocal = make_session_factory(engine)


def init_db(bind: Engine | None = None) -> None:
    from social_recipes.app.db import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
