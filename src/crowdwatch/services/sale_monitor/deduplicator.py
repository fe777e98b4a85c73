"""In-process event deduplication."""

import logging
from collections import OrderedDict
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


class EventDeduplicator:
    """Deduplicates chain events on (tx_hash, log_index).

    Memory only and bounded: the oldest keys are evicted first. Nothing
    survives a process restart.
    """

    def __init__(self, max_size: int = 10000):
        """Initialize event deduplicator.

        Args:
            max_size: Max remembered events
        """
        self.max_size = max_size
        self._seen: OrderedDict[str, datetime] = OrderedDict()

    def __len__(self) -> int:
        return len(self._seen)

    @staticmethod
    def _event_id(tx_hash: str, log_index: int) -> str:
        if tx_hash.startswith("0x"):
            tx_hash = tx_hash[2:]
        return f"{tx_hash.lower()}:{log_index}"

    def is_duplicate(self, tx_hash: str, log_index: int) -> bool:
        """Check if event has already been processed."""
        return self._event_id(tx_hash, log_index) in self._seen

    def mark_processed(self, tx_hash: str, log_index: int) -> None:
        """Mark event as processed."""
        # Remove oldest if at capacity
        while len(self._seen) >= self.max_size:
            self._seen.popitem(last=False)
        self._seen[self._event_id(tx_hash, log_index)] = datetime.now(timezone.utc)

    def check_and_mark(self, tx_hash: str, log_index: int) -> bool:
        """Check if duplicate and mark as processed if not.

        Returns:
            True if event is new (not duplicate), False if duplicate
        """
        if self.is_duplicate(tx_hash, log_index):
            return False
        self.mark_processed(tx_hash, log_index)
        return True
