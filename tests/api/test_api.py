"""API tests for the read-only endpoints."""

from datetime import date

import pytest
from fastapi.testclient import TestClient

from tenderwatch.api.deps import get_db
from tenderwatch.api.main import app
from tenderwatch.db.schema import CollectionRun
from tenderwatch.repos.alert_repo import AlertRepository
from tenderwatch.repos.runs_repo import CollectionRunRepository


@pytest.fixture
def client(session_factory):
    def _db_override():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _db_override
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    for path in ("/health", "/api/health"):
        res = client.get(path)
        assert res.status_code == 200
        assert res.json()["status"] == "ok"


def test_stats(client, add_record):
    add_record("R1", "software", region="SP")
    add_record("R2", "limpeza", region="RJ")

    payload = client.get("/api/stats").json()

    assert payload["total"] == 2
    assert payload["matched"] == 0
    assert {row["key"] for row in payload["by_region"]} == {"SP", "RJ"}
    assert payload["classifications_today"] == 0


def test_records_search(client, add_record):
    add_record("R1", "Aquisição de software", region="SP", estimated_value=1000.0)
    add_record("R2", "Software de gestão", region="RJ", estimated_value=50000.0)
    add_record("R3", "Limpeza predial", region="SP")

    hits = client.get("/api/records", params={"q": "software"}).json()
    assert {r["external_id"] for r in hits} == {"R1", "R2"}

    narrowed = client.get("/api/records", params={"q": "software", "region": "rj"}).json()
    assert [r["external_id"] for r in narrowed] == ["R2"]

    listing = client.get("/api/records", params={"limit": 2}).json()
    assert len(listing) == 2


def test_records_limit_is_validated(client):
    assert client.get("/api/records", params={"limit": 0}).status_code == 422


def test_runs_and_alerts(client, session):
    CollectionRunRepository(session).add(
        CollectionRun(
            category_code=6,
            region="SP",
            date_from=date(2025, 1, 1),
            date_to=date(2025, 1, 2),
            total=3,
            new=3,
            success=False,
            error_message="TransientNetworkError: PNCP API error 503",
        )
    )
    AlertRepository(session).create(name="TI", keywords=["software"], channel="both")

    runs = client.get("/api/runs").json()
    assert runs[0]["success"] is False
    assert runs[0]["error_message"].startswith("TransientNetworkError")

    alerts = client.get("/api/alerts").json()
    assert alerts[0]["keywords"] == ["software"]
    assert alerts[0]["channel"] == "both"


def test_session_factory_is_built_once(monkeypatch, tmp_path):
    from tenderwatch.api import deps
    from tenderwatch.config.settings import get_settings

    monkeypatch.setenv("TENDERWATCH_DB_URL", f"sqlite:///{tmp_path / 'api.db'}")
    get_settings.cache_clear()
    deps.get_session_factory.cache_clear()
    try:
        assert deps.get_session_factory() is deps.get_session_factory()
    finally:
        deps.get_session_factory.cache_clear()
        get_settings.cache_clear()
