#!/usr/bin/env python
"""Autogenerate a new Alembic revision from the current models."""
import logging
import sys
from pathlib import Path

from alembic import command

sys.path.insert(0, str(Path(__file__).resolve().parent))

from apply_migrations import alembic_config  # noqa: E402

logger = logging.getLogger(__name__)


def main():
    if len(sys.argv) < 2:
        logging.basicConfig(level=logging.INFO)
        logger.error('Usage: python scripts/make_migration.py "message"')
        sys.exit(1)
    command.revision(alembic_config(), message=sys.argv[1], autogenerate=True)


if __name__ == "__main__":
    main()
