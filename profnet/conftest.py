"""
Pytest configuration and shared fixtures.

Test environment defaults are set before any profnet import so the cached
settings pick them up. Every test gets its own in-memory SQLite database.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import timedelta  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

# Clear settings cache before any app imports to ensure test env vars are used
from profnet.config import get_settings  # noqa: E402
get_settings.cache_clear()

from profnet.repository import RecordStore  # noqa: E402
from profnet.storage import init_db, make_engine  # noqa: E402
from profnet.utils import to_iso  # noqa: E402


@pytest.fixture
def engine():
    """Fresh in-memory database shared by every session of one test."""
    eng = make_engine("sqlite://", poolclass=StaticPool)
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def store(db):
    return RecordStore(db, new_account_max_age_days=30, retry_limit=3)


@pytest.fixture
def file_engine(tmp_path):
    """File-backed database for tests that use several threads."""
    eng = make_engine(f"sqlite:///{tmp_path / 'profnet.db'}")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def add_users(store):
    """
    Seed users. Established accounts are backdated a year; new ones are
    created now.
    """
    def _add(*user_ids, new=False):
        if new:
            created_at = store.now()
        else:
            created_at = to_iso(store.clock() - timedelta(days=365))
        for user_id in user_ids:
            store.atomic(
                lambda user_id=user_id: store.create_user(
                    user_id,
                    name=user_id.title(),
                    email=f"{user_id}@example.com",
                    created_at=created_at,
                ),
                "seed_user",
            )
    return _add


@pytest.fixture
def connect(store):
    """Connect consecutive users: connect("a", "b", "c") adds a-b and b-c."""
    def _connect(*chain):
        for a, b in zip(chain, chain[1:]):
            store.atomic(lambda a=a, b=b: store.insert_connection(a, b), "seed_connection")
    return _connect
