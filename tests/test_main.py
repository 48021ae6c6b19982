"""Tests for configuration and the command line entry point."""

from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from sitewatch import main as cli
from sitewatch.config import Settings, settings
from sitewatch.endpoints.models import EndpointDefinition
from sitewatch.storage import EndpointStore, HistoryStore, KVStore


@pytest.fixture
def db_path(tmp_path: Path, monkeypatch) -> Path:
    path = tmp_path / "cli.db"
    monkeypatch.setattr(settings, "db_path", str(path))
    return path


def _invoke(monkeypatch, *args: str) -> None:
    monkeypatch.setattr(sys, "argv", ["sitewatch", *args])
    cli.main()


class TestSettings:
    def test_defaults(self, monkeypatch) -> None:
        monkeypatch.delenv("SITEWATCH_TICK_INTERVAL", raising=False)
        s = Settings(_env_file=None)
        assert s.tick_interval == 5.0
        assert s.prune_interval == 3600.0
        assert s.max_concurrency == 0
        assert s.alert_webhook_url == ""

    def test_env_prefix(self, monkeypatch) -> None:
        monkeypatch.setenv("SITEWATCH_API_PORT", "9999")
        monkeypatch.setenv("SITEWATCH_MAX_CONCURRENCY", "4")
        s = Settings(_env_file=None)
        assert s.api_port == 9999
        assert s.max_concurrency == 4


class TestCLI:
    def test_no_command_exits(self, monkeypatch) -> None:
        with pytest.raises(SystemExit):
            _invoke(monkeypatch)

    def test_import(self, monkeypatch, db_path: Path, tmp_path: Path) -> None:
        yaml_path = tmp_path / "endpoints.yaml"
        yaml_path.write_text(
            "endpoints:\n  - name: API\n    url: https://api.example.com/health\n",
            encoding="utf-8",
        )
        _invoke(monkeypatch, "import", str(yaml_path))

        kv = KVStore(db_path)
        try:
            assert [d.name for d in EndpointStore(kv).all()] == ["API"]
        finally:
            kv.close()

    def test_status(self, monkeypatch, db_path: Path, capsys) -> None:
        kv = KVStore(db_path)
        stored = EndpointStore(kv).save(EndpointDefinition(name="API", url="https://x"))
        HistoryStore(kv).record(stored.id, "unhealthy", 0.0, error="boom")
        kv.close()

        monkeypatch.setattr(cli.console, "width", 200)
        _invoke(monkeypatch, "status")
        out = capsys.readouterr().out
        assert "API" in out
        assert "unhealthy" in out

    def test_prune(self, monkeypatch, db_path: Path) -> None:
        kv = KVStore(db_path)
        HistoryStore(kv).record("api", "healthy", 0.01, 200, at=datetime.now(timezone.utc) - timedelta(days=9))
        kv.close()

        _invoke(monkeypatch, "prune")

        kv = KVStore(db_path)
        try:
            assert HistoryStore(kv).query("api") == []
        finally:
            kv.close()
