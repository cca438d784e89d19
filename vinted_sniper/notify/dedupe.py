"""Seen-item tracking so the same listing is never notified twice within a window."""

import logging
import threading
import time
from dataclasses import asdict, dataclass
from typing import Callable, Optional

from vinted_sniper.storage.blob_store import CorruptDocumentError, JsonBlobStore

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_MS = 24 * 60 * 60 * 1000
DEFAULT_RECENT_MS = 60 * 60 * 1000
DOCUMENT_NAME = "cache"


def now_millis() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class SeenRecord:
    """A listing that passed the filters and was handed to the notifier."""

    id: str
    first_seen_at: int
    title: str = ""
    price: float = 0.0

    @classmethod
    def from_dict(cls, data: dict) -> "SeenRecord":
        return cls(
            id=str(data["id"]),
            first_seen_at=int(data["first_seen_at"]),
            title=str(data.get("title") or ""),
            price=float(data.get("price") or 0),
        )


@dataclass(frozen=True)
class SeenStats:
    """Store statistics for observability."""

    total: int
    recent_count: int


class SeenItemStore:
    """
    Time-windowed, persistent map of listing id -> SeenRecord.

    Expiry is computed lazily: an expired record is evicted by is_new() or
    swept by cleanup(). Recording an id that already has a live record
    refreshes its timestamp. Every mutation rewrites the whole document.
    """

    def __init__(
        self,
        blob_store: JsonBlobStore,
        retention_ms: int = DEFAULT_RETENTION_MS,
        recent_ms: int = DEFAULT_RECENT_MS,
        clock: Callable[[], int] = now_millis,
    ):
        self.blob_store = blob_store
        self.retention_ms = retention_ms
        self.recent_ms = recent_ms
        self._clock = clock
        self._lock = threading.RLock()
        self._records: dict[str, SeenRecord] = {}
        self._load()

    def _load(self) -> None:
        """Load persisted records; corrupt storage degrades to an empty store."""
        try:
            document = self.blob_store.load(DOCUMENT_NAME)
        except CorruptDocumentError as e:
            logger.error(f"Seen-item cache unreadable, starting empty: {e}")
            return

        if document is None:
            logger.info("No seen-item cache found, starting empty")
            return

        items = document.get("items") if isinstance(document, dict) else None
        if not isinstance(items, dict):
            logger.error("Seen-item cache has unexpected shape, starting empty")
            return

        skipped = 0
        for item_id, data in items.items():
            try:
                record = SeenRecord.from_dict({**data, "id": item_id})
            except (KeyError, TypeError, ValueError):
                skipped += 1
                continue
            self._records[record.id] = record

        if skipped:
            logger.warning(f"Skipped {skipped} malformed seen-item records")
        logger.info(f"Seen-item cache loaded: {len(self._records)} items")

    def _save(self) -> None:
        document = {
            "version": 1,
            "items": {
                item_id: {k: v for k, v in asdict(record).items() if k != "id"}
                for item_id, record in self._records.items()
            },
        }
        try:
            self.blob_store.save(DOCUMENT_NAME, document)
        except OSError as e:
            logger.error(f"Failed to persist seen-item cache: {e}")

    def _is_expired(self, record: SeenRecord, now: int) -> bool:
        return now - record.first_seen_at > self.retention_ms

    def is_new(self, item_id: str) -> bool:
        """
        Check whether a listing has not been seen within the retention window.

        Args:
            item_id: Listing id

        Returns:
            True if there is no live record for the id (an expired record is
            evicted and counts as unseen), False otherwise
        """
        item_id = str(item_id)
        with self._lock:
            record = self._records.get(item_id)
            if record is None:
                return True
            if self._is_expired(record, self._clock()):
                del self._records[item_id]
                logger.debug(f"Seen record for {item_id} expired")
                return True
            return False

    def record(self, item_id: str, title: str = "", price=0) -> SeenRecord:
        """
        Record a listing as seen now.

        An existing record for the id is replaced, which restarts its window.

        Args:
            item_id: Listing id
            title: Listing title (diagnostics only)
            price: Listing price (diagnostics only)

        Returns:
            The stored record
        """
        record = SeenRecord(
            id=str(item_id),
            first_seen_at=self._clock(),
            title=title or "",
            price=float(price or 0),
        )
        with self._lock:
            self._records[record.id] = record
            self._save()
        return record

    def get(self, item_id: str) -> Optional[SeenRecord]:
        with self._lock:
            return self._records.get(str(item_id))

    def cleanup(self) -> int:
        """
        Evict all expired records.

        Returns:
            Number of records evicted
        """
        with self._lock:
            now = self._clock()
            expired = [
                item_id
                for item_id, record in self._records.items()
                if self._is_expired(record, now)
            ]
            for item_id in expired:
                del self._records[item_id]
            if expired:
                self._save()

        if expired:
            logger.info(f"Seen-item cache cleanup: {len(expired)} items evicted")
        return len(expired)

    def stats(self) -> SeenStats:
        """Count live records and those seen within the recent window."""
        with self._lock:
            now = self._clock()
            live = [r for r in self._records.values() if not self._is_expired(r, now)]
            recent = sum(1 for r in live if now - r.first_seen_at < self.recent_ms)
            return SeenStats(total=len(live), recent_count=recent)

    def clear(self) -> None:
        """Forget every record."""
        with self._lock:
            self._records.clear()
            self._save()
        logger.info("Seen-item cache cleared")

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
