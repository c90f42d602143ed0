"""HTTP client for the journal server with an offline fallback.

Every operation first tries the server, which owns the collection. When the
server cannot be reached the client works against its LocalCache, and
``sync`` later pushes what was written offline and refreshes the cache.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

import httpx

from .entries import LogEntry, Progress, compute_progress, filter_entries
from .entries.models import EDITABLE_FIELDS
from .errors import AuthenticationError, DaylogError, EntryNotFoundError, InvalidEntryError
from .sync.local_cache import LocalCache

logger = logging.getLogger(__name__)


class SyncStatus(Enum):
    """Status of a sync operation."""

    SUCCESS = "success"
    FAILED = "failed"
    OFFLINE = "offline"  # Remote unavailable


@dataclass
class SyncResult:
    """Result of a sync operation."""

    status: SyncStatus
    entries_pushed: int = 0
    added: int = 0
    updated: int = 0
    entries_pulled: int = 0
    error: str | None = None
    timestamp: datetime | None = None


class _Offline(Exception):
    """The server could not be reached after all retries."""


class _RequestFailed(DaylogError):
    """The server rejected a request with a 4xx status."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"HTTP {status_code}: {message}")
        self.status_code = status_code
        self.message = message


class JournalClient:
    """Client for the journal server.

    Uses exponential backoff for retries and falls back to the local cache
    when the server stays unreachable.
    """

    def __init__(
        self,
        cache: LocalCache,
        server_url: str,
        username: str | None = None,
        password: str | None = None,
        max_retries: int = 3,
        timeout: float = 10.0,
        target_days: int = 65,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            cache: Local entry cache used offline.
            server_url: Base URL of the server (e.g. "http://127.0.0.1:3000").
            username: Account used to log in on first request.
            password: Password for ``username``.
            max_retries: Attempts per request before going offline.
            timeout: Request timeout in seconds.
            target_days: Progress target used when computing offline.
            transport: Optional httpx transport (tests use a mock transport).
        """
        self.cache = cache
        self.server_url = server_url.rstrip("/")
        self.username = username
        self.password = password
        self.max_retries = max_retries
        self.timeout = timeout
        self.target_days = target_days
        self._transport = transport
        self._http: httpx.AsyncClient | None = None
        self._logged_in = False
        self._last_sync: datetime | None = None

    async def __aenter__(self) -> "JournalClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None
        self._logged_in = False

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self.server_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._http

    async def _request_with_retry(
        self,
        method: str,
        path: str,
        json_data: Any = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Make an HTTP request with exponential backoff retry.

        Connection errors, timeouts and 5xx responses are retried.

        Returns:
            The first response with a status below 500.

        Raises:
            _Offline: If every attempt failed.
        """
        client = self._client()
        backoff = 0.5

        for attempt in range(self.max_retries):
            try:
                response = await client.request(method, path, json=json_data, params=params)
                if response.status_code < 500:
                    return response
                logger.warning(
                    f"Server error {response.status_code}, "
                    f"attempt {attempt + 1}/{self.max_retries}"
                )
            except httpx.ConnectError:
                logger.warning(f"Connection failed, attempt {attempt + 1}/{self.max_retries}")
            except httpx.TimeoutException:
                logger.warning(f"Request timeout, attempt {attempt + 1}/{self.max_retries}")
            except httpx.TransportError as e:
                logger.warning(f"Transport error: {e}, attempt {attempt + 1}/{self.max_retries}")

            if attempt < self.max_retries - 1:
                await asyncio.sleep(backoff)
                backoff *= 2

        raise _Offline(f"Max retries ({self.max_retries}) exceeded for {method} {path}")

    async def login(self) -> None:
        """Open a session with the configured credentials.

        Raises:
            AuthenticationError: If no credentials are set or they are rejected.
            _Offline: If the server is unreachable.
        """
        if not self.username or not self.password:
            raise AuthenticationError("No username/password configured for the server")

        response = await self._request_with_retry(
            "POST", "/api/login", {"username": self.username, "password": self.password}
        )
        if response.status_code != 200:
            raise AuthenticationError(_error_message(response))

        self._logged_in = True
        logger.debug(f"Logged in as {self.username}")

    async def _call(
        self,
        method: str,
        path: str,
        json_data: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Authenticated request returning the decoded JSON body (None for 204).

        Raises:
            _Offline: If the server is unreachable.
            _RequestFailed: On a 4xx response.
            AuthenticationError: If the session cannot be established.
        """
        if not self._logged_in:
            await self.login()

        response = await self._request_with_retry(method, path, json_data, params)
        if response.status_code == 401:
            # Session expired; log in again once
            self._logged_in = False
            await self.login()
            response = await self._request_with_retry(method, path, json_data, params)

        if response.status_code >= 400:
            raise _RequestFailed(response.status_code, _error_message(response))
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # ==================== Entry Operations ====================

    async def _fetch_server(self) -> dict[str, LogEntry]:
        """The user's collection as the server holds it."""
        data = await self._call("GET", "/api/logs")
        entries = {}
        for item in data:
            try:
                entry = LogEntry.from_dict(item)
            except InvalidEntryError as e:
                logger.warning(f"Ignoring invalid entry from server: {e}")
                continue
            entries[entry.id] = entry
        return entries

    async def list_entries(
        self,
        category: str | None = None,
        search_term: str | None = None,
    ) -> tuple[list[LogEntry], bool]:
        """Entries to display, newest first.

        Online this is the server's collection; the cache is only used when
        the server is unreachable.

        Returns:
            Tuple of (entries, offline) where offline means the cache was used.
        """
        try:
            entries = list((await self._fetch_server()).values())
            offline = False
        except _Offline as e:
            logger.warning(f"Server unreachable, showing cached entries: {e}")
            entries = self.cache.entries()
            offline = True

        return filter_entries(entries, category, search_term), offline

    async def create_entry(
        self,
        title: str,
        content: str,
        category: str = "other",
        importance: int = 3,
    ) -> tuple[LogEntry, bool]:
        """Create an entry on the server, or only in the cache when offline.

        Returns:
            Tuple of (entry, offline). Online, the entry carries the
            server-assigned id.

        Raises:
            InvalidEntryError: If the fields are invalid.
        """
        entry = LogEntry.create(title=title, content=content, category=category, importance=importance)

        try:
            data = await self._call("POST", "/api/logs", entry.to_dict())
        except _Offline:
            self.cache.upsert(entry, pending=True)
            logger.info(f"Saved entry {entry.id} locally (offline mode)")
            return entry, True
        except _RequestFailed as e:
            raise InvalidEntryError(e.message) from e

        saved = LogEntry.from_dict(data)
        self.cache.upsert(saved)
        return saved, False

    def _edit_cached(self, entry_id: str, changes: dict[str, Any]) -> LogEntry:
        entry = self.cache.get(entry_id)
        if entry is None:
            raise EntryNotFoundError(entry_id)
        entry = entry.edited(**changes)
        self.cache.upsert(entry, pending=True)
        return entry

    async def update_entry(self, entry_id: str, **changes: Any) -> tuple[LogEntry, bool]:
        """Edit an entry. Its id and original timestamp are kept.

        Only the changed fields are sent, so the server applies them to its
        own current copy.

        Returns:
            Tuple of (entry, local) where local means only the cache changed,
            either because the server is unreachable or because the entry
            has not been synced yet.

        Raises:
            EntryNotFoundError: If the id is unknown.
            InvalidEntryError: If the new values are invalid.
        """
        changes = {key: value for key, value in changes.items() if value is not None}
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise InvalidEntryError(f"Cannot edit fields: {', '.join(sorted(unknown))}")

        try:
            data = await self._call("PUT", f"/api/logs/{entry_id}", changes)
        except _Offline:
            entry = self._edit_cached(entry_id, changes)
            logger.info(f"Updated entry {entry_id} locally (offline mode)")
            return entry, True
        except _RequestFailed as e:
            if e.status_code != 404:
                raise InvalidEntryError(e.message) from e
            if self.cache.get(entry_id) is None:
                raise EntryNotFoundError(entry_id) from e
            # Written offline and not pushed yet
            return self._edit_cached(entry_id, changes), True

        saved = LogEntry.from_dict(data)
        self.cache.upsert(saved)
        return saved, False

    async def delete_entry(self, entry_id: str) -> bool:
        """Delete an entry from the server and the cache.

        Returns:
            True if the server was reached, False if only the cache changed.

        Raises:
            EntryNotFoundError: If neither the server nor the cache knows it.
        """
        try:
            await self._call("DELETE", f"/api/logs/{entry_id}")
        except _Offline:
            if not self.cache.delete(entry_id):
                raise EntryNotFoundError(entry_id)
            logger.info(f"Deleted entry {entry_id} locally (offline mode)")
            return False
        except _RequestFailed as e:
            if e.status_code != 404:
                raise
            if not self.cache.delete(entry_id):
                raise EntryNotFoundError(entry_id) from e
            return True

        self.cache.delete(entry_id)
        return True

    async def progress(self) -> tuple[Progress, bool]:
        """Progress statistics from the server, or computed from the cache.

        Returns:
            Tuple of (progress, offline).
        """
        try:
            data = await self._call("GET", "/api/progress")
        except _Offline:
            return compute_progress(self.cache.entries(), self.target_days), True

        return (
            Progress(
                days_logged=data["days_logged"],
                target_days=data["target_days"],
                percentage=data["percentage"],
                total_entries=data["total_entries"],
            ),
            False,
        )

    # ==================== Sync ====================

    async def sync(self) -> SyncResult:
        """Push pending local entries, then replace the cache with the server's collection.

        Only entries written while offline are pushed. After the push the
        server holds everything worth keeping, so its collection becomes the
        new cache; entries deleted or edited elsewhere are picked up here.

        Returns:
            SyncResult with the server's added/updated counts.
        """
        logs = self.cache.raw_entries(pending_only=True)
        result = SyncResult(status=SyncStatus.SUCCESS, entries_pushed=len(logs))

        try:
            if logs:
                data = await self._call("POST", "/api/logs/sync", {"logs": logs})
                result.added = data.get("added", 0)
                result.updated = data.get("updated", 0)
            server_entries = await self._fetch_server()
        except _Offline as e:
            return SyncResult(status=SyncStatus.OFFLINE, error=str(e))
        except (_RequestFailed, AuthenticationError) as e:
            return SyncResult(status=SyncStatus.FAILED, error=str(e))

        self.cache.write_all(server_entries)
        result.entries_pulled = len(server_entries)

        self._last_sync = datetime.now()
        result.timestamp = self._last_sync
        logger.info(
            f"Sync: pushed={result.entries_pushed}, added={result.added}, "
            f"updated={result.updated}, pulled={result.entries_pulled}"
        )
        return result

    async def server_status(self) -> dict[str, Any] | None:
        """Server status, or None if unreachable."""
        try:
            response = await self._request_with_retry("GET", "/api/status")
        except _Offline:
            return None
        return response.json() if response.status_code == 200 else None

    async def test_email(self) -> tuple[bool, str]:
        """Ask the server to send a test email.

        Returns:
            Tuple of (success, message).
        """
        try:
            await self._call("GET", "/api/test-email")
        except _Offline as e:
            return False, str(e)
        except _RequestFailed as e:
            return False, e.message
        return True, "Test email sent successfully!"

    @property
    def last_sync(self) -> datetime | None:
        """Get timestamp of last successful sync."""
        return self._last_sync

    def get_sync_status(self) -> dict[str, Any]:
        return {
            "server_url": self.server_url,
            "last_sync": self._last_sync.isoformat() if self._last_sync else None,
            "cached_entries": self.cache.count(),
            "pending_entries": self.cache.pending_count(),
        }


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(data, dict):
        return str(data.get("error") or data.get("message") or data.get("detail") or data)
    return str(data)
