"""Publish/subscribe channel keyed by store key.

Open dashboards subscribe to the keys they render and re-read them when a
change is published, instead of re-parsing everything on a generic event.
"""
import logging
import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator, Optional

logger = logging.getLogger(__name__)

ALL_KEYS = "*"


@dataclass(frozen=True)
class StoreChange:
    key: str
    value: Any = None
    removed: bool = False

    def to_dict(self) -> dict:
        return {"key": self.key, "value": self.value, "removed": self.removed}


class SyncChannel:
    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[Callable[[StoreChange], None]]] = {}

    def subscribe(self, key: str, callback: Callable[[StoreChange], None]) -> Callable[[], None]:
        with self._lock:
            self._subscribers.setdefault(key, []).append(callback)

        def unsubscribe():
            with self._lock:
                callbacks = self._subscribers.get(key, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def publish(self, change: StoreChange) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(change.key, []))
            callbacks += self._subscribers.get(ALL_KEYS, [])
        for callback in callbacks:
            try:
                callback(change)
            except Exception:
                logger.exception("Subscriber failed handling change to %r", change.key)

    def listen(self, keys: Iterable[str], timeout: Optional[float] = None) -> "Listener":
        return Listener(self, keys, timeout)


class Listener:
    """Iterator over changes for ``keys``, subscribed from construction on.

    Yields ``None`` whenever ``timeout`` seconds pass without a change so
    a streaming response can send a keep-alive. Changes published before
    the first ``next()`` are kept. ``close()`` drops the subscription.
    """

    def __init__(self, channel: SyncChannel, keys: Iterable[str], timeout: Optional[float] = None):
        self.timeout = timeout
        self.closed = False
        self._inbox: "queue.Queue[StoreChange]" = queue.Queue()
        self._unsubscribers = [channel.subscribe(key, self._inbox.put) for key in (list(keys) or [ALL_KEYS])]

    def __iter__(self) -> Iterator[Optional[StoreChange]]:
        return self

    def __next__(self) -> Optional[StoreChange]:
        if self.closed:
            raise StopIteration
        try:
            return self._inbox.get(timeout=self.timeout)
        except queue.Empty:
            return None

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        for unsubscribe in self._unsubscribers:
            unsubscribe()
