"""Key-value Store backing all application state.

Values are JSON documents. Each write is applied first and then broadcast on
the store's ``SyncChannel``; there are no transactions across keys and the
last write to a key wins.
"""
import json
import logging
import threading
from typing import Any, Optional

from models import db, StoreEntry
from sync import StoreChange, SyncChannel

logger = logging.getLogger(__name__)


class Store:
    """Persistence port. Subclasses implement the raw text accessors."""

    def __init__(self, channel: Optional[SyncChannel] = None):
        self.channel = channel or SyncChannel()

    def _read(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def _write(self, key: str, raw: str) -> None:
        raise NotImplementedError

    def _delete(self, key: str) -> bool:
        raise NotImplementedError

    def keys(self) -> list[str]:
        raise NotImplementedError

    def __contains__(self, key: str) -> bool:
        return self._read(key) is not None

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._read(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            logger.error("Stored value for %r is not valid JSON; using default", key)
            return default

    def set(self, key: str, value: Any) -> None:
        self._write(key, json.dumps(value))
        logger.debug("Store key %r written", key)
        self.channel.publish(StoreChange(key=key, value=value))

    def remove(self, key: str) -> None:
        if self._delete(key):
            self.channel.publish(StoreChange(key=key, removed=True))


class MemoryStore(Store):
    def __init__(self, channel: Optional[SyncChannel] = None):
        super().__init__(channel)
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def _read(self, key):
        with self._lock:
            return self._data.get(key)

    def _write(self, key, raw):
        with self._lock:
            self._data[key] = raw

    def _delete(self, key):
        with self._lock:
            return self._data.pop(key, None) is not None

    def keys(self):
        with self._lock:
            return sorted(self._data)


class SQLStore(Store):
    """Store kept in the ``store_entry`` table. Needs an application context."""

    def _read(self, key):
        entry = db.session.get(StoreEntry, key)
        return entry.value if entry else None

    def _write(self, key, raw):
        entry = db.session.get(StoreEntry, key)
        if entry is None:
            db.session.add(StoreEntry(key=key, value=raw))
        else:
            entry.value = raw
        db.session.commit()

    def _delete(self, key):
        entry = db.session.get(StoreEntry, key)
        if entry is None:
            return False
        db.session.delete(entry)
        db.session.commit()
        return True

    def keys(self):
        return [row.key for row in StoreEntry.query.order_by(StoreEntry.key).all()]
