"""Global test fixtures."""

import os
import sys
from datetime import datetime
from pathlib import Path

import pytest
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from tenderwatch.db.engine import build_engine  # noqa: E402
from tenderwatch.db.init_db import init_db  # noqa: E402
from tenderwatch.repos.record_repo import RecordStore  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch, tmp_path):
    # keep a developer's .env / TENDERWATCH_* out of the tests
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("TENDERWATCH_"):
            monkeypatch.delenv(key, raising=False)
    yield


@pytest.fixture
def engine():
    eng = build_engine("sqlite://")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    with session_factory() as s:
        yield s


def record_values(external_id: str, description: str, **overrides) -> dict:
    values = {
        "external_id": external_id,
        "description": description,
        "category_code": 6,
        "category_name": "Pregão - Eletrônico",
        "region": "SP",
        "city": "São Paulo",
        "agency_name": "Prefeitura Municipal",
        "estimated_value": None,
        "published_at": datetime(2025, 1, 10, 9, 0),
        "closing_at": None,
    }
    values.update(overrides)
    return values


@pytest.fixture
def add_record(session):
    store = RecordStore(session)

    def _add(external_id: str, description: str, **overrides):
        store.upsert(record_values(external_id, description, **overrides))
        return store.get_by_external_id(external_id)

    return _add


@pytest.fixture
def values():
    """Factory for Record column values: values(external_id, description, **overrides)."""
    return record_values
