"""Background delivery of entry notifications."""

import asyncio
import logging

from ..entries.models import LogEntry
from .email import EmailNotifier

logger = logging.getLogger(__name__)


class NotificationQueue:
    """Queue of new entries drained by a background task.

    Writers call ``submit`` and return immediately; the worker sends one
    email per entry and only logs failures.
    """

    def __init__(self, notifier: EmailNotifier):
        """Initialize the queue.

        Args:
            notifier: Sender used for each queued entry.
        """
        self.notifier = notifier
        self._queue: asyncio.Queue[LogEntry] = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self._running = False
        self.sent = 0
        self.failed = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def submit(self, entry: LogEntry) -> None:
        """Queue a notification for a newly created entry."""
        if not self.notifier.enabled:
            logger.debug(f"Notifications disabled, not queueing {entry.id}")
            return
        self._queue.put_nowait(entry)
        logger.debug(f"Queued notification for {entry.id} ({self.pending} pending)")

    async def start(self) -> None:
        """Start the worker as a background task."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info("Notification worker started")

    async def stop(self) -> None:
        """Stop the worker. Entries still queued are dropped."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self.pending:
            logger.warning(f"Notification worker stopped with {self.pending} unsent")
        logger.info("Notification worker stopped")

    async def drain(self) -> None:
        """Wait until every queued entry has been processed."""
        await self._queue.join()

    async def _run(self) -> None:
        while self._running:
            entry = await self._queue.get()
            try:
                await self._deliver(entry)
            finally:
                self._queue.task_done()

    async def _deliver(self, entry: LogEntry) -> None:
        try:
            sent = await self.notifier.send_entry(entry)
        except Exception as e:
            logger.error(f"Notification for {entry.id} failed: {e}", exc_info=True)
            sent = False

        if sent:
            self.sent += 1
        else:
            self.failed += 1
