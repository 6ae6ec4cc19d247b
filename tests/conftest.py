import os

import pytest

from app import security


@pytest.fixture
def db():
    """Fresh Postgres schema per test; skipped when no database is configured."""
    if not os.getenv("DATABASE_URL"):
        pytest.skip("DATABASE_URL must be set for Postgres-only tests.")

    from core.db.schema import init_db, truncate_all

    init_db()
    truncate_all()
    yield
    truncate_all()


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    security._rate_state.clear()
    yield
    security._rate_state.clear()
