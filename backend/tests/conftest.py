"""Test configuration and fixtures."""

import os
import sys
import tempfile
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

# Add paths
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Point settings at throwaway locations BEFORE sharezone.core.config is imported.
_TMP_DIR = tempfile.mkdtemp(prefix="sharezone-tests-")
os.environ["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["UPLOAD_DIR"] = os.path.join(_TMP_DIR, "uploads")
os.environ["REAPER_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["LOG_LEVEL"] = "WARNING"

from sharezone.db.base import Base
from sharezone.db.session import SessionLocal, engine
from sharezone.services import BroadcastHub, ChatService, ExpiryReaper, UploadCoordinator, ZoneRegistry
from sharezone.storage import LocalStorageGateway


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create test database tables before tests."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    yield

    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clean_tables():
    """Empty every table after each test."""
    yield
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture(scope="function")
def db():
    """Database session fixture."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def storage(tmp_path):
    return LocalStorageGateway([str(tmp_path / "blobs")])


@pytest.fixture
def hub():
    return MagicMock(spec=BroadcastHub)


@pytest.fixture
def reaper(storage, hub):
    return ExpiryReaper(
        storage=storage,
        hub=hub,
        session_factory=SessionLocal,
        interval_seconds=3600,
        orphan_grace=timedelta(minutes=60),
    )


@pytest.fixture
def registry(hub, reaper):
    return ZoneRegistry(hub=hub, reaper=reaper)


@pytest.fixture
def coordinator(hub, storage):
    return UploadCoordinator(hub=hub, storage=storage, max_file_size=1024, max_files=10)


@pytest.fixture
def chat(hub):
    return ChatService(hub=hub, history_limit=3, max_length=50)


@pytest.fixture
def zone_with_owner(db, registry):
    """A live 5h zone "demo" owned by alice, with its owner capability."""
    zone, capability = registry.create_zone(
        db, zone_name="demo", password="secret123", duration_hours=5, owner_username="alice"
    )
    return zone, capability
