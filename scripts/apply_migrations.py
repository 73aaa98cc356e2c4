#!/usr/bin/env python
"""Upgrade the database to the latest Alembic revision (or the one given)."""
import os
import sys
from pathlib import Path

from alembic import command
from alembic.config import Config
from dotenv import load_dotenv

REPO_ROOT = Path(__file__).resolve().parents[1]


def alembic_config() -> Config:
    env_path = REPO_ROOT / ".env"
    if env_path.exists():
        load_dotenv(env_path)
    # Host-run migrations may target a different URL than the service
    migrations_url = os.getenv("MIGRATIONS_DATABASE_URL")
    if migrations_url:
        os.environ["DATABASE_URL"] = migrations_url
    config = Config(str(REPO_ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(REPO_ROOT / "alembic"))
    return config


def main():
    revision = sys.argv[1] if len(sys.argv) > 1 else "head"
    command.upgrade(alembic_config(), revision)


if __name__ == "__main__":
    main()
