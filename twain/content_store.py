"""
Per-user, per-work collections on top of a key-value storage.

Every collection is read and written whole: callers load the list, change it
in memory and save the full list back. Two writers on the same key simply
overwrite each other, the last save wins.
"""
import json
import logging
from typing import List

from pydantic import ValidationError as RecordError

from twain.entities import (
    ActivityEntry, Chapter, Character, Idea, NoteCard, Outline, Part, Story, Work,
)
from twain.errors import StorageError
from twain.storage import KeyValueStorage

logger = logging.getLogger(__name__)

ITEM_MODELS = {
    "ideas": Idea,
    "characters": Character,
    "chapters": Chapter,
    "stories": Story,
    "outlines": Outline,
    "parts": Part,
    "notecards": NoteCard,
    "recent-activity": ActivityEntry,
}
CONTENT_KINDS = tuple(ITEM_MODELS)

WORK_LIST_NAMES = {"book": "books", "quickstory": "quickstories"}


def storage_key(content_kind: str, work_kind: str, work_id: int, user_key: str) -> str:
    """`twain-{scope}-{contentKind}-{workId}-{userKey}`, scope is book or quickstory."""
    if work_kind not in WORK_LIST_NAMES:
        raise ValueError(f"Unknown work kind: {work_kind}")
    return f"twain-{work_kind}-{content_kind}-{work_id}-{user_key}"


def works_key(work_kind: str, user_key: str) -> str:
    return f"twain-story-builder-{WORK_LIST_NAMES[work_kind]}-{user_key}"


class ContentStore:

    def __init__(self, storage: KeyValueStorage):
        self.storage = storage

    # ------------- raw records -------------

    def read_records(self, key: str) -> List[dict]:
        """The JSON list stored under `key`; empty when missing or unreadable."""
        try:
            stored = self.storage.get(key)
        except StorageError as e:
            logger.error(f"Reading '{key}' failed: {e}")
            return []
        if not stored:
            return []
        try:
            records = json.loads(stored)
        except ValueError as e:
            logger.warning(f"Stored value under '{key}' is not valid JSON, treating as empty: {e}")
            return []
        if not isinstance(records, list):
            logger.warning(f"Stored value under '{key}' is not a list, treating as empty")
            return []
        return [r for r in records if isinstance(r, dict)]

    def write_records(self, key: str, records: List[dict]) -> bool:
        try:
            self.storage.set(key, json.dumps(records, ensure_ascii=False))
            return True
        except StorageError as e:
            logger.error(f"Writing '{key}' failed: {e}")
            return False

    def _validate(self, model, key, records):
        items = []
        for raw in records:
            try:
                items.append(model.from_record(raw))
            except RecordError as e:
                logger.warning(f"Skipping invalid record under '{key}': {e.error_count()} error(s)")
        return items

    # ------------- work-scoped collections -------------

    def load(self, kind: str, work_id: int, user_key: str, work_kind: str = "book") -> list:
        key = storage_key(kind, work_kind, work_id, user_key)
        return self._validate(ITEM_MODELS[kind], key, self.read_records(key))

    def save(self, kind: str, work_id: int, user_key: str, items, work_kind: str = "book") -> bool:
        key = storage_key(kind, work_kind, work_id, user_key)
        return self.write_records(key, [item.to_record() for item in items])

    def remove_work_data(self, work_kind: str, work_id: int, user_key: str):
        """Drop every collection that belongs to one Work."""
        for kind in CONTENT_KINDS:
            key = storage_key(kind, work_kind, work_id, user_key)
            try:
                self.storage.remove(key)
                logger.debug(f"Removed storage key: {key}")
            except StorageError as e:
                logger.error(f"Removing '{key}' failed: {e}")

    # ------------- work lists -------------

    def load_works(self, work_kind: str, user_key: str) -> List[Work]:
        key = works_key(work_kind, user_key)
        return self._validate(Work, key, self.read_records(key))

    def save_works(self, work_kind: str, user_key: str, works) -> bool:
        return self.write_records(works_key(work_kind, user_key), [w.to_record() for w in works])
