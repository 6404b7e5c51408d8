"""Block until the configured Postgres accepts connections (used by start_api.py)."""
import os
import time

import psycopg2
from sqlalchemy.engine import make_url

from app.core.config import settings


def connect_kwargs(database_url: str) -> dict:
    url = make_url(database_url)
    if not url.get_backend_name().startswith("postgres"):
        raise SystemExit(f"wait_for_db only handles Postgres, got {url.get_backend_name()}")
    return {
        "host": url.host or "db",
        "port": url.port or 5432,
        "user": url.username or "cowork",
        "password": url.password or "cowork",
        "dbname": url.database or "cowork",
    }


def wait(database_url: str = settings.DATABASE_URL, timeout_s: int = None) -> None:
    kwargs = connect_kwargs(database_url)
    timeout_s = timeout_s or int(os.getenv("DB_WAIT_TIMEOUT", "60"))
    deadline = time.monotonic() + timeout_s
    print(f"[wait_for_db] Waiting for Postgres at {kwargs['host']}:{kwargs['port']} db={kwargs['dbname']} (timeout={timeout_s}s)")
    while True:
        try:
            psycopg2.connect(connect_timeout=5, **kwargs).close()
            print("[wait_for_db] Postgres is ready.")
            return
        except psycopg2.OperationalError as e:
            if time.monotonic() > deadline:
                print(f"[wait_for_db] Timed out waiting for DB. Last error: {e}")
                raise
            time.sleep(1)


if __name__ == "__main__":
    wait()
