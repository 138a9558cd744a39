"""
Recent-activity log of one Work.

Newest entry first, at most 50 entries. Logging is best-effort: a storage
failure leaves the log empty or unchanged and never reaches the caller.
"""
import logging
import time
import uuid
from datetime import timedelta, timezone

from pydantic import ValidationError as RecordError

from twain.content_store import ContentStore, storage_key
from twain.entities import ActivityEntry, utcnow

logger = logging.getLogger(__name__)

MAX_ENTRIES = 50
DUPLICATE_WINDOW = timedelta(seconds=2)


def _new_entry_id() -> str:
    return f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:12]}"


class ActivityLog:

    def __init__(self, store: ContentStore, work_kind: str, work_id: int, user_key: str,
                 clock=utcnow):
        self.store = store
        self.key = storage_key("recent-activity", work_kind, work_id, user_key)
        self.clock = clock

    def entries(self) -> list[ActivityEntry]:
        entries = []
        for raw in self.store.read_records(self.key):
            # older records carry createdAt/lastModified instead of timestamp
            timestamp = raw.get("timestamp") or raw.get("lastModified") or raw.get("createdAt")
            if not timestamp:
                continue
            try:
                entry = ActivityEntry.from_record({**raw, "timestamp": timestamp})
            except RecordError:
                logger.warning(f"Dropping unreadable activity entry {raw.get('id')!r}")
                continue
            if entry.timestamp.tzinfo is None:
                entry.timestamp = entry.timestamp.replace(tzinfo=timezone.utc)
            entries.append(entry)
        return entries[:MAX_ENTRIES]

    def append(self, kind: str, title: str, action: str = "created") -> ActivityEntry | None:
        """Prepend an entry unless the same one was logged in the last 2 seconds."""
        entries = self.entries()
        now = self.clock()
        for entry in entries:
            if (entry.type, entry.title, entry.action) == (kind, title, action) \
                    and now - entry.timestamp < DUPLICATE_WINDOW:
                return None

        entry = ActivityEntry(id=_new_entry_id(), type=kind, title=title, action=action,
                              timestamp=now)
        updated = [entry] + entries
        self._write(updated[:MAX_ENTRIES])
        return entry

    def remove(self, entry_id: str) -> bool:
        entries = self.entries()
        remaining = [e for e in entries if e.id != entry_id]
        if len(remaining) == len(entries):
            return False
        self._write(remaining)
        return True

    def _write(self, entries):
        if not self.store.write_records(self.key, [e.to_record() for e in entries]):
            logger.warning("Recent activity could not be saved")
