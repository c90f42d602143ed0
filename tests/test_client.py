"""Tests for the journal HTTP client and its offline fallback."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from daylog.auth import register_user
from daylog.client import JournalClient, SyncStatus
from daylog.config import Config, ServerConfig
from daylog.errors import DaylogError, EntryNotFoundError, InvalidEntryError
from daylog.notify import EmailNotifier, NotificationQueue
from daylog.web import create_app

from helpers import make_entry

SERVER_URL = "http://testserver"


def _unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("Connection refused", request=request)


@pytest.fixture
def app(db):
    """Server app with one registered user and notifications disabled."""
    register_user(db, "alice", "password123")
    notifier = MagicMock(spec=EmailNotifier)
    notifier.enabled = False
    return create_app(
        Config(server=ServerConfig(secret_key="test-secret")),
        db,
        notifications=NotificationQueue(notifier),
    )


@pytest.fixture
def server_entries(db):
    return db.entries_for("alice")


def online_client(app, cache, password="password123") -> JournalClient:
    return JournalClient(
        cache,
        SERVER_URL,
        username="alice",
        password=password,
        max_retries=1,
        transport=httpx.ASGITransport(app=app),
    )


def offline_client(cache) -> JournalClient:
    return JournalClient(
        cache,
        SERVER_URL,
        username="alice",
        password="password123",
        max_retries=1,
        transport=httpx.MockTransport(_unreachable),
    )


class TestOnline:
    """Client operations with the server reachable."""

    @pytest.mark.asyncio
    async def test_create_uses_server_id(self, app, cache, server_entries):
        async with online_client(app, cache) as client:
            entry, offline = await client.create_entry("Closures", "Scope", "javascript", 4)

        assert offline is False
        assert server_entries.get(entry.id) == entry
        assert cache.get(entry.id) == entry

    @pytest.mark.asyncio
    async def test_create_invalid(self, app, cache):
        async with online_client(app, cache) as client:
            with pytest.raises(InvalidEntryError):
                await client.create_entry("", "Scope")

    @pytest.mark.asyncio
    async def test_list_shows_server_entries(self, app, cache, server_entries):
        server_entries.upsert(make_entry("a", "2026-03-01T10:00:00Z", title="Old"))
        server_entries.upsert(make_entry("b", "2026-03-02T10:00:00Z", title="New"))

        async with online_client(app, cache) as client:
            entries, offline = await client.list_entries()

        assert offline is False
        assert [e.title for e in entries] == ["New", "Old"]
        assert cache.count() == 0

    @pytest.mark.asyncio
    async def test_update(self, app, cache, server_entries):
        server_entries.upsert(make_entry("a", title="Before"))

        async with online_client(app, cache) as client:
            entry, offline = await client.update_entry("a", title="After")

        assert offline is False
        assert entry.title == "After"
        assert server_entries.get("a").title == "After"
        assert cache.get("a").title == "After"

    @pytest.mark.asyncio
    async def test_update_unknown(self, app, cache):
        async with online_client(app, cache) as client:
            with pytest.raises(EntryNotFoundError):
                await client.update_entry("nope", title="x")

    @pytest.mark.asyncio
    async def test_delete(self, app, cache, server_entries):
        server_entries.upsert(make_entry("a"))
        cache.upsert(make_entry("a"))

        async with online_client(app, cache) as client:
            reached = await client.delete_entry("a")

        assert reached is True
        assert server_entries.count() == 0
        assert cache.count() == 0

    @pytest.mark.asyncio
    async def test_delete_unknown(self, app, cache):
        async with online_client(app, cache) as client:
            with pytest.raises(EntryNotFoundError):
                await client.delete_entry("nope")

    @pytest.mark.asyncio
    async def test_progress(self, app, cache, server_entries):
        server_entries.upsert(make_entry("a"))

        async with online_client(app, cache) as client:
            progress, offline = await client.progress()

        assert offline is False
        assert progress.days_logged == 1
        assert progress.target_days == 65

    @pytest.mark.asyncio
    async def test_server_status(self, app, cache):
        async with online_client(app, cache) as client:
            status = await client.server_status()

        assert status["status"] == "online"
        assert status["email_enabled"] is False

    @pytest.mark.asyncio
    async def test_test_email_disabled(self, app, cache):
        async with online_client(app, cache) as client:
            ok, message = await client.test_email()

        assert ok is False
        assert "not configured" in message


class TestOffline:
    """Client operations with the server unreachable."""

    @pytest.mark.asyncio
    async def test_create_goes_to_cache(self, cache):
        async with offline_client(cache) as client:
            entry, offline = await client.create_entry("Train notes", "No signal")

        assert offline is True
        assert cache.get(entry.id) == entry
        assert cache.pending_count() == 1

    @pytest.mark.asyncio
    async def test_list_uses_cache(self, cache):
        cache.upsert(make_entry("a", category="node", title="Streams"))
        cache.upsert(make_entry("b", category="javascript"))

        async with offline_client(cache) as client:
            entries, offline = await client.list_entries(category="node")

        assert offline is True
        assert [e.title for e in entries] == ["Streams"]

    @pytest.mark.asyncio
    async def test_update_in_cache(self, cache):
        cache.upsert(make_entry("a", title="Before"))

        async with offline_client(cache) as client:
            entry, offline = await client.update_entry("a", content="Edited offline")

        assert offline is True
        assert cache.get("a").content == "Edited offline"
        assert cache.get("a").timestamp == entry.timestamp
        assert cache.pending_count() == 1

    @pytest.mark.asyncio
    async def test_update_unknown(self, cache):
        async with offline_client(cache) as client:
            with pytest.raises(EntryNotFoundError):
                await client.update_entry("nope", title="x")

    @pytest.mark.asyncio
    async def test_delete_in_cache(self, cache):
        cache.upsert(make_entry("a"))

        async with offline_client(cache) as client:
            reached = await client.delete_entry("a")

        assert reached is False
        assert cache.count() == 0

    @pytest.mark.asyncio
    async def test_delete_unknown(self, cache):
        async with offline_client(cache) as client:
            with pytest.raises(EntryNotFoundError):
                await client.delete_entry("nope")

    @pytest.mark.asyncio
    async def test_progress_from_cache(self, cache):
        cache.upsert(make_entry("a", "2026-03-01T12:00:00Z"))
        cache.upsert(make_entry("b", "2026-03-04T12:00:00Z"))

        async with offline_client(cache) as client:
            progress, offline = await client.progress()

        assert offline is True
        assert progress.days_logged == 2
        assert progress.percentage == 3

    @pytest.mark.asyncio
    async def test_sync_reports_offline(self, cache):
        cache.upsert(make_entry("a"))

        async with offline_client(cache) as client:
            result = await client.sync()

        assert result.status == SyncStatus.OFFLINE
        assert client.last_sync is None

    @pytest.mark.asyncio
    async def test_server_status_none(self, cache):
        async with offline_client(cache) as client:
            assert await client.server_status() is None


class TestSync:
    """Offline work followed by reconnection."""

    @pytest.mark.asyncio
    async def test_offline_entry_reaches_server(self, app, cache, server_entries):
        async with offline_client(cache) as client:
            entry, _ = await client.create_entry("Train notes", "No signal", "node", 2)

        async with online_client(app, cache) as client:
            result = await client.sync()

        assert result.status == SyncStatus.SUCCESS
        assert result.entries_pushed == 1
        assert result.added == 1
        assert server_entries.get(entry.id) == entry
        assert client.last_sync is not None

    @pytest.mark.asyncio
    async def test_sync_pulls_newer_server_versions(self, app, cache, server_entries):
        cache.upsert(make_entry("a", "2026-03-01T10:00:00Z", title="Cached"))
        server_entries.upsert(make_entry("a", "2026-03-01T12:00:00Z", title="Server"))
        server_entries.upsert(make_entry("b", "2026-03-01T12:00:00Z", title="Elsewhere"))

        async with online_client(app, cache) as client:
            result = await client.sync()

        assert (result.added, result.updated) == (0, 0)
        assert result.entries_pulled == 2
        assert cache.get("a").title == "Server"
        assert cache.get("b").title == "Elsewhere"

    @pytest.mark.asyncio
    async def test_sync_with_empty_cache_only_pulls(self, app, cache, server_entries):
        server_entries.upsert(make_entry("a"))

        async with online_client(app, cache) as client:
            result = await client.sync()

        assert result.status == SyncStatus.SUCCESS
        assert result.entries_pushed == 0
        assert cache.count() == 1

    @pytest.mark.asyncio
    async def test_sync_bad_credentials(self, app, cache):
        cache.upsert(make_entry("a"))

        async with online_client(app, cache, password="wrong-password") as client:
            result = await client.sync()

        assert result.status == SyncStatus.FAILED
        assert "Invalid username or password" in result.error

    @pytest.mark.asyncio
    async def test_entry_deleted_on_server_is_not_resurrected(self, app, cache, server_entries):
        server_entries.upsert(make_entry("a", title="Doomed"))

        async with online_client(app, cache) as client:
            await client.sync()
            assert cache.get("a") is not None

            server_entries.delete("a")
            entries, offline = await client.list_entries()
            result = await client.sync()

        assert offline is False
        assert entries == []
        assert result.added == 0
        assert server_entries.get("a") is None
        assert cache.get("a") is None

    @pytest.mark.asyncio
    async def test_edit_on_server_reaches_client(self, app, cache, server_entries):
        server_entries.upsert(make_entry("a", title="Before"))

        async with online_client(app, cache) as client:
            await client.sync()
            server_entries.upsert(server_entries.get("a").edited(title="After"))

            entries, _ = await client.list_entries()
            await client.sync()

        assert [e.title for e in entries] == ["After"]
        assert cache.get("a").title == "After"

    @pytest.mark.asyncio
    async def test_edit_of_unsynced_entry_is_pushed(self, app, cache, server_entries):
        async with offline_client(cache) as client:
            entry, _ = await client.create_entry("Draft", "Written offline")

        async with online_client(app, cache) as client:
            edited, local = await client.update_entry(entry.id, title="Final")
            result = await client.sync()

        assert local is True
        assert edited.title == "Final"
        assert result.added == 1
        assert server_entries.get(entry.id).title == "Final"
        assert cache.pending_count() == 0

    @pytest.mark.asyncio
    async def test_sync_status(self, app, cache):
        cache.upsert(make_entry("a"), pending=True)

        async with online_client(app, cache) as client:
            await client.sync()
            status = client.get_sync_status()

        assert status["server_url"] == SERVER_URL
        assert status["cached_entries"] == 1
        assert status["pending_entries"] == 0
        assert status["last_sync"] is not None


class TestRetry:
    """Tests for the retry loop."""

    @pytest.mark.asyncio
    async def test_retries_server_errors(self, cache):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.path)
            if len(calls) < 3:
                return httpx.Response(503)
            return httpx.Response(200, json={"status": "online"})

        client = JournalClient(
            cache, SERVER_URL, max_retries=3, transport=httpx.MockTransport(handler)
        )
        with patch("daylog.client.asyncio.sleep", new=AsyncMock()) as sleep:
            status = await client.server_status()
        await client.aclose()

        assert status == {"status": "online"}
        assert len(calls) == 3
        assert [c.args[0] for c in sleep.await_args_list] == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, cache):
        client = JournalClient(
            cache, SERVER_URL, max_retries=2, transport=httpx.MockTransport(_unreachable)
        )
        with patch("daylog.client.asyncio.sleep", new=AsyncMock()):
            assert await client.server_status() is None
        await client.aclose()


class TestRejectedRequests:
    """Tests for 4xx responses other than authentication failures."""

    @pytest.fixture
    def rejecting_client(self, cache):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/login":
                return httpx.Response(200, json={"success": True, "username": "alice"})
            return httpx.Response(400, json={"error": "Bad request"})

        return JournalClient(
            cache,
            SERVER_URL,
            username="alice",
            password="password123",
            max_retries=1,
            transport=httpx.MockTransport(handler),
        )

    @pytest.mark.asyncio
    async def test_list_raises_daylog_error(self, rejecting_client):
        with pytest.raises(DaylogError, match="Bad request"):
            await rejecting_client.list_entries()
        await rejecting_client.aclose()

    @pytest.mark.asyncio
    async def test_progress_raises_daylog_error(self, rejecting_client):
        with pytest.raises(DaylogError, match="HTTP 400"):
            await rejecting_client.progress()
        await rejecting_client.aclose()

    @pytest.mark.asyncio
    async def test_sync_reports_failure(self, rejecting_client, cache):
        result = await rejecting_client.sync()
        await rejecting_client.aclose()

        assert result.status == SyncStatus.FAILED
        assert cache.count() == 0
