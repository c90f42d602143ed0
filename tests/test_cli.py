"""Tests for the command-line interface."""

import json
from unittest.mock import patch

import httpx
import pytest

from daylog.__main__ import build_parser, main
from daylog.auth import authenticate
from daylog.client import JournalClient
from daylog.storage import JournalDatabase
from daylog.sync import LocalCache

from helpers import make_entry


def _unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("Connection refused", request=request)


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    """Config pointing the database and cache into tmp_path."""
    for key in ("DAYLOG_DB_PATH", "DAYLOG_CACHE_PATH", "DAYLOG_STORAGE_BACKEND", "DAYLOG_EMAIL_HOST"):
        monkeypatch.delenv(key, raising=False)

    path = tmp_path / "config.yaml"
    path.write_text(
        f"""
storage:
  db_path: {tmp_path / "journal.db"}
client:
  cache_path: {tmp_path / "cache.db"}
  username: alice
  password: password123
  retry_max_attempts: 1
"""
    )
    return path


@pytest.fixture
def offline(tmp_path):
    """Patch the CLI to build clients that cannot reach the server."""

    def make_client(config):
        cache = LocalCache(tmp_path / "cache.db")
        cache.connect()
        return JournalClient(
            cache,
            config.client.server_url,
            username="alice",
            password="password123",
            max_retries=1,
            transport=httpx.MockTransport(_unreachable),
        )

    with patch("daylog.__main__._make_client", side_effect=make_client):
        yield tmp_path / "cache.db"


class TestParser:
    """Tests for argument parsing."""

    def test_add_defaults(self):
        args = build_parser().parse_args(["add", "Closures", "--content", "Scope"])

        assert args.command == "add"
        assert args.category == "other"
        assert args.importance == 3

    def test_importance_range(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["add", "x", "--importance", "6"])

    def test_global_options(self):
        args = build_parser().parse_args(["-v", "--log-level", "debug", "--json-logs", "sync"])

        assert args.verbose
        assert args.log_level == "debug"
        assert args.json_logs

    def test_no_command(self, capsys):
        assert main([]) == 1


class TestServerCommands:
    """Tests for commands that work on the server database."""

    def test_add_user(self, config_file, tmp_path, capsys):
        code = main(["-c", str(config_file), "add-user", "alice", "--password", "password123"])

        assert code == 0
        assert "Created user alice" in capsys.readouterr().out
        db = JournalDatabase(tmp_path / "journal.db")
        db.connect()
        assert authenticate(db, "alice", "password123") == "alice"
        db.close()

    def test_add_user_short_password(self, config_file, capsys):
        code = main(["-c", str(config_file), "add-user", "alice", "--password", "short"])

        assert code == 1
        assert "at least" in capsys.readouterr().err

    def test_test_email_disabled(self, config_file, capsys):
        code = main(["-c", str(config_file), "test-email"])

        assert code == 1
        assert "not configured" in capsys.readouterr().err


class TestClientCommands:
    """Tests for client commands while the server is unreachable."""

    def test_add_offline(self, config_file, offline, capsys):
        code = main([
            "-c", str(config_file),
            "add", "Streams", "--content", "Readable and writable", "--category", "node",
        ])

        assert code == 0
        out = capsys.readouterr().out
        assert "Streams" in out
        assert "Saved locally (offline mode)" in out
        cache = LocalCache(offline)
        assert [e.title for e in cache.entries()] == ["Streams"]
        cache.close()

    def test_list_offline_json(self, config_file, offline, capsys):
        cache = LocalCache(offline)
        cache.upsert(make_entry("a", title="Cached"))
        cache.close()

        code = main(["-c", str(config_file), "list", "--json"])

        assert code == 0
        assert [e["title"] for e in json.loads(capsys.readouterr().out)] == ["Cached"]

    def test_delete_unknown(self, config_file, offline, capsys):
        code = main(["-c", str(config_file), "delete", "nope"])

        assert code == 1
        assert "Log entry not found" in capsys.readouterr().err

    def test_sync_offline(self, config_file, offline, capsys):
        cache = LocalCache(offline)
        cache.upsert(make_entry("a"))
        cache.close()

        code = main(["-c", str(config_file), "sync"])

        assert code == 1
        assert "Sync offline" in capsys.readouterr().err

    def test_progress_offline(self, config_file, offline, capsys):
        cache = LocalCache(offline)
        cache.upsert(make_entry("a"))
        cache.close()

        code = main(["-c", str(config_file), "progress", "--json"])

        assert code == 0
        data = json.loads(capsys.readouterr().out)
        assert data["days_logged"] == 1
        assert data["target_days"] == 65

    def test_list_rejected_by_server(self, config_file, tmp_path, capsys):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/login":
                return httpx.Response(200, json={"success": True, "username": "alice"})
            return httpx.Response(400, json={"error": "Bad request"})

        def make_client(config):
            cache = LocalCache(tmp_path / "cache.db")
            cache.connect()
            return JournalClient(
                cache,
                config.client.server_url,
                username="alice",
                password="password123",
                max_retries=1,
                transport=httpx.MockTransport(handler),
            )

        with patch("daylog.__main__._make_client", side_effect=make_client):
            code = main(["-c", str(config_file), "list"])

        assert code == 1
        assert "Error: HTTP 400: Bad request" in capsys.readouterr().err
