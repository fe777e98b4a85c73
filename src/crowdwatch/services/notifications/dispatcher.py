"""Bounded outbound notification queue."""

import asyncio
import logging
import uuid
from collections import OrderedDict
from datetime import datetime, timezone

from crowdwatch.services.notifications.schemas import (
    DispatcherStats,
    NotificationRecord,
    NotificationStatus,
)
from crowdwatch.services.notifications.senders import NotificationSender

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Publishes messages through a sender without blocking the caller.

    Features:
    - Bounded queue; a full queue rejects instead of blocking event processing
    - Single worker, so messages go out in publish order
    - Failures are logged and recorded, never retried
    - Bounded delivery history
    """

    def __init__(
        self,
        sender: NotificationSender,
        max_queue_size: int = 100,
        history_size: int = 200,
    ):
        """Initialize dispatcher.

        Args:
            sender: Channel sender
            max_queue_size: Max messages waiting for delivery
            history_size: Max delivery records kept
        """
        self.sender = sender
        self.max_queue_size = max_queue_size
        self.history_size = history_size
        self._queue: asyncio.Queue[tuple[str, str]] = asyncio.Queue(maxsize=max_queue_size)
        self._records: OrderedDict[str, NotificationRecord] = OrderedDict()
        self._stats = DispatcherStats(channel=sender.channel, max_queue_size=max_queue_size)
        self._worker: asyncio.Task | None = None

    @property
    def stats(self) -> DispatcherStats:
        """Get dispatcher statistics."""
        self._stats.queue_size = self._queue.qsize()
        return self._stats

    def publish(self, text: str) -> bool:
        """Queue a message for delivery.

        Args:
            text: Message text

        Returns:
            True if queued, False if the queue was full
        """
        record = NotificationRecord(
            record_id=f"NTF-{uuid.uuid4().hex[:8].upper()}",
            channel=self.sender.channel,
            status=NotificationStatus.PENDING,
            preview=text.strip().splitlines()[0] if text.strip() else "",
            created_at=datetime.now(timezone.utc),
        )
        self._remember(record)

        try:
            self._queue.put_nowait((record.record_id, text))
        except asyncio.QueueFull:
            record.status = NotificationStatus.DROPPED
            record.error = "queue full"
            self._stats.dropped += 1
            logger.error(
                f"Notification queue full ({self.max_queue_size}), dropped {record.record_id}"
            )
            return False

        self._stats.queued += 1
        return True

    async def start(self) -> None:
        """Start the delivery worker."""
        if self._worker and not self._worker.done():
            return
        self._worker = asyncio.create_task(self._run())
        logger.info(f"Notification dispatcher started (channel: {self.sender.channel})")

    async def drain(self) -> None:
        """Wait until every queued message has been attempted."""
        await self._queue.join()

    async def stop(self, drain_timeout: float = 5.0) -> None:
        """Flush pending messages (bounded wait), then stop the worker."""
        if self._worker:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=drain_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    f"Stopping with {self._queue.qsize()} undelivered notifications"
                )
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

        await self.sender.close()

    def get_records(
        self,
        status: NotificationStatus | None = None,
        limit: int = 100,
    ) -> list[NotificationRecord]:
        """Get delivery records, oldest first.

        Args:
            status: Filter by status
            limit: Max records to return
        """
        records = list(self._records.values())
        if status:
            records = [r for r in records if r.status == status]
        return records[-limit:]

    async def _run(self) -> None:
        while True:
            record_id, text = await self._queue.get()
            try:
                await self._deliver(record_id, text)
            finally:
                self._queue.task_done()

    async def _deliver(self, record_id: str, text: str) -> None:
        record = self._records.get(record_id)
        try:
            await self.sender.send(text)
        except Exception as e:
            self._stats.failed += 1
            if record:
                record.status = NotificationStatus.FAILED
                record.error = str(e)
            logger.error(f"Failed to send notification to {self.sender.channel}: {e}")
            return

        self._stats.sent += 1
        if record:
            record.status = NotificationStatus.SENT
            record.sent_at = datetime.now(timezone.utc)
        logger.info(f"Notification {record_id} sent to {self.sender.channel}")

    def _remember(self, record: NotificationRecord) -> None:
        while len(self._records) >= self.history_size:
            self._records.popitem(last=False)
        self._records[record.record_id] = record
