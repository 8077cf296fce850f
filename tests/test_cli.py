"""CLI tests for the database and alert commands."""

import pytest
from typer.testing import CliRunner

from tenderwatch.cli.app import app
from tenderwatch.config.settings import get_settings

runner = CliRunner()


@pytest.fixture(autouse=True)
def _cli_db(tmp_path, monkeypatch):
    monkeypatch.setenv("TENDERWATCH_DB_URL", f"sqlite:///{tmp_path / 'cli.db'}")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_init_db():
    res = runner.invoke(app, ["init-db"])
    assert res.exit_code == 0
    assert "Database initialized" in res.stdout


def test_alert_lifecycle():
    res = runner.invoke(app, ["alert-add", "--name", "TI", "-k", "software", "-r", "sp", "--channel", "both"])
    assert res.exit_code == 0
    assert "Created alert id=1" in res.stdout

    res = runner.invoke(app, ["alerts"])
    assert res.exit_code == 0
    assert "software" in res.stdout
    assert "SP" in res.stdout

    assert runner.invoke(app, ["alert-disable", "1"]).exit_code == 0
    assert runner.invoke(app, ["alert-remove", "1"]).exit_code == 0
    assert runner.invoke(app, ["alert-remove", "1"]).exit_code == 1


def test_alert_add_rejects_bad_channel():
    res = runner.invoke(app, ["alert-add", "--name", "TI", "-k", "software", "--channel", "fax"])
    assert res.exit_code == 1


def test_schedule_rejects_bad_interval():
    assert runner.invoke(app, ["schedule", "--interval", "0"]).exit_code == 2


def test_stats_on_empty_db():
    res = runner.invoke(app, ["stats"])
    assert res.exit_code == 0
    assert "Records: 0" in res.stdout
