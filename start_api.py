#!/usr/bin/env python3
"""
Container entrypoint: wait for Postgres, migrate, seed, then exec uvicorn.
"""
import os
import sys

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.config import settings


def migrate() -> None:
    cfg = Config(os.path.join(os.path.dirname(os.path.abspath(__file__)), "alembic.ini"))
    cfg.set_main_option("sqlalchemy.url", settings.DATABASE_URL)
    command.upgrade(cfg, "head")


def seed() -> None:
    # Own engine, created after the migration has committed
    from app.seed import run

    engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True)
    try:
        run(sessionmaker(autoflush=False, bind=engine)())
    finally:
        engine.dispose()


def main() -> None:
    if settings.DATABASE_URL.startswith("postgres"):
        import wait_for_db

        wait_for_db.wait(settings.DATABASE_URL)
    migrate()
    seed()
    port = os.getenv("PORT", "8000")
    os.execv(
        sys.executable,
        [sys.executable, "-m", "uvicorn", "app.main:app", "--host", "0.0.0.0", "--port", port],
    )


if __name__ == "__main__":
    main()
