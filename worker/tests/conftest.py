"""
Root conftest for worker tests.

Sets up Python path to allow 'from cutstitch...' imports.
Provides database, storage and job fixtures.
"""
import json
import sys
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# ============================================================================
# Add WORKER directory to sys.path
# ============================================================================

WORKER_DIR = Path(__file__).parent.parent.resolve()

if str(WORKER_DIR) not in sys.path:
    sys.path.insert(0, str(WORKER_DIR))

import cutstitch.db
from cutstitch.config import get_settings
from cutstitch.db import Base
from cutstitch.models import RenderJob
from .utils.plans import make_cut_plan


# ============================================================================
# Settings / Storage Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are cached per process; every test starts from a fresh read."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def isolated_storage(tmp_path, monkeypatch):
    """Create isolated storage directory for each test.

    Points STORAGE_PATH at tmp_path/storage.

    Returns:
        Path to isolated storage root
    """
    storage_root = tmp_path / "storage"
    storage_root.mkdir()
    monkeypatch.setenv("STORAGE_PATH", str(storage_root))
    get_settings.cache_clear()
    return storage_root


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture(scope="function")
def test_db_engine():
    """Create in-memory SQLite engine for tests.

    Each test gets a fresh database with all tables created.
    """
    engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(engine)

    yield engine

    engine.dispose()


@pytest.fixture
def test_db_session(test_db_engine, monkeypatch):
    """Provide database session bound to the in-memory engine.

    Also patches get_db_session (in cutstitch.db and in the render task,
    which imports it by name) to yield this session.
    """
    cutstitch.db._engine = None
    cutstitch.db._SessionLocal = None

    SessionLocal = sessionmaker(bind=test_db_engine)
    session = SessionLocal()

    @contextmanager
    def mock_get_db_session():
        yield session

    monkeypatch.setattr("cutstitch.db.get_db_session", mock_get_db_session)
    monkeypatch.setattr("cutstitch.db.get_engine", lambda: test_db_engine)
    monkeypatch.setattr("cutstitch.tasks.render.get_db_session", mock_get_db_session)

    try:
        yield session
    finally:
        session.rollback()
        session.close()
        cutstitch.db._engine = None
        cutstitch.db._SessionLocal = None


@pytest.fixture
def job_factory(test_db_session, isolated_storage):
    """Factory creating a RenderJob row, its source file and its cut plan.

    Usage:
        job = job_factory(cuts=[keep("0", "10"), cut("10", "15"), keep("15", "25")])

    Returns:
        Dict with env, tenant_id, job_id, source_path and plan_path
    """

    def _create(
        cuts: Optional[List[Dict]] = None,
        plan_text: Optional[str] = None,
        env: str = "dev",
        tenant_id: str = "tenant-a",
        write_source: bool = True,
        write_plan: bool = True,
    ) -> Dict:
        job_id = str(uuid.uuid4())
        job_root = isolated_storage / env / tenant_id / job_id

        source_key = f"{env}/{tenant_id}/{job_id}/input/source.mp4"
        source_path = isolated_storage / source_key
        if write_source:
            source_path.parent.mkdir(parents=True, exist_ok=True)
            source_path.write_bytes(b"source video")

        plan_path = job_root / "plan" / "cut_plan.json"
        if write_plan:
            plan_path.parent.mkdir(parents=True, exist_ok=True)
            if plan_text is None:
                plan_text = json.dumps(make_cut_plan(cuts or []))
            plan_path.write_text(plan_text, encoding="utf-8")

        test_db_session.add(
            RenderJob(id=job_id, env=env, tenant_id=tenant_id, source_key=source_key)
        )
        test_db_session.commit()

        return {
            "env": env,
            "tenant_id": tenant_id,
            "job_id": job_id,
            "source_path": source_path,
            "plan_path": plan_path,
            "job_root": job_root,
        }

    return _create
