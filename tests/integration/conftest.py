from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path
from typing import Iterator

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from oac.infrastructure.cache import redis_client
from oac.infrastructure.db import session as db_session

BACKEND_DIR = Path(__file__).resolve().parents[2]


@pytest.fixture(scope="session", autouse=True)
def integration_environment() -> Iterator[None]:
    if not os.getenv("DATABASE_URL"):
        pytest.skip("DATABASE_URL is not set")
    os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
    os.environ.setdefault("OTEL_SERVICE_NAME", "oac-backend-test")
    os.environ.setdefault("OTEL_EXPORTER_OTLP_ENDPOINT", "")
    os.environ["EXPIRY_SWEEP_INTERVAL_SECONDS"] = "0"

    db_session.dispose_engines()
    redis_client.close_redis_clients()

    if not db_session.ping_database(timeout_seconds=2.0):
        pytest.skip("Postgres is not reachable at DATABASE_URL")

    env = os.environ.copy()
    env["PYTHONPATH"] = f"{BACKEND_DIR / 'src'}{os.pathsep}{env.get('PYTHONPATH', '')}".rstrip(
        os.pathsep
    )

    subprocess.run(
        [sys.executable, "-m", "alembic", "-c", "alembic.ini", "upgrade", "head"],
        cwd=BACKEND_DIR,
        env=env,
        check=True,
    )
    subprocess.run(
        [sys.executable, "-m", "oac.tools.seed"],
        cwd=BACKEND_DIR,
        env=env,
        check=True,
    )
    yield
