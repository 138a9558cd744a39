"""
Key-value storage behind the content store.

The authoring logic only needs get/set/remove on string values. The same code
runs against an in-memory dict (tests, scripts) or the `stored_value` table.

The allow-list and the feedback inbox are whole JSON files instead, read and
written by the two helpers at the bottom.
"""
import json
import os

from sqlalchemy.exc import SQLAlchemyError

from twain.errors import StorageError
from twain.models import StoredValue


class KeyValueStorage:
    """Interface: string keys to string values."""

    def get(self, key: str) -> str | None:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError

    def keys(self, prefix: str = "") -> list[str]:
        raise NotImplementedError


class MemoryStorage(KeyValueStorage):

    def __init__(self, initial: dict | None = None):
        self._data = dict(initial or {})

    def get(self, key):
        return self._data.get(key)

    def set(self, key, value):
        self._data[key] = value

    def remove(self, key):
        self._data.pop(key, None)

    def keys(self, prefix=""):
        return sorted(k for k in self._data if k.startswith(prefix))


class DatabaseStorage(KeyValueStorage):
    """Stores each key as a `StoredValue` row. Needs an app context."""

    def __init__(self, database):
        self.db = database

    def get(self, key):
        try:
            row = self.db.session.get(StoredValue, key)
        except SQLAlchemyError as e:
            raise StorageError(f"Could not read '{key}': {e}") from e
        return row.value if row else None

    def set(self, key, value):
        try:
            row = self.db.session.get(StoredValue, key)
            if row:
                row.value = value
            else:
                self.db.session.add(StoredValue(key=key, value=value))
            self.db.session.commit()
        except SQLAlchemyError as e:
            self.db.session.rollback()
            raise StorageError(f"Could not write '{key}': {e}") from e

    def remove(self, key):
        try:
            row = self.db.session.get(StoredValue, key)
            if row:
                self.db.session.delete(row)
                self.db.session.commit()
        except SQLAlchemyError as e:
            self.db.session.rollback()
            raise StorageError(f"Could not remove '{key}': {e}") from e

    def keys(self, prefix=""):
        try:
            rows = self.db.session.query(StoredValue.key).filter(
                StoredValue.key.startswith(prefix, autoescape=True)
            ).order_by(StoredValue.key).all()
        except SQLAlchemyError as e:
            raise StorageError(f"Could not list keys: {e}") from e
        return [key for (key,) in rows]


def read_json_file(path: str, default):
    """Parsed contents of `path`, or `default` when the file does not exist yet."""
    if not os.path.exists(path):
        return default
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        raise StorageError(f"Could not read {path}: {e}") from e


def write_json_file(path: str, data):
    try:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
    except OSError as e:
        raise StorageError(f"Could not write {path}: {e}") from e
