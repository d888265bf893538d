"""
In-process change notifications.

Store writes publish (organization_id, topic). Subscribers react by
dropping whatever they derived from the old snapshot, so the next read
recomputes from freshly fetched data instead of forcing a reload.
"""
import logging
import threading
from typing import Any, Callable, Dict, Hashable, List, Tuple

logger = logging.getLogger(__name__)

Listener = Callable[[str, str], None]


class ChangeFeed:
    def __init__(self):
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, organization_id: str, topic: str) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(organization_id, topic)
            except Exception:
                # a broken subscriber must not fail the write that triggered it
                logger.exception("Change listener failed for %s/%s", organization_id, topic)


class RecomputeCache:
    """
    Results keyed by (organization_id, *key). Any change published for an
    organization evicts all of that organization's entries. A result
    computed while a change arrived for its organization is returned but
    not stored.
    """

    def __init__(self, feed: ChangeFeed):
        self._entries: Dict[Tuple[str, Hashable], Any] = {}
        self._generations: Dict[str, int] = {}
        self._lock = threading.Lock()
        self.unsubscribe = feed.subscribe(self._on_change)

    def _on_change(self, organization_id: str, topic: str) -> None:
        with self._lock:
            self._generations[organization_id] = self._generations.get(organization_id, 0) + 1
            stale = [k for k in self._entries if k[0] == organization_id]
            for k in stale:
                del self._entries[k]
        if stale:
            logger.debug(
                "Dropped %d cached result(s) for %s after %s change",
                len(stale),
                organization_id,
                topic,
            )

    def get_or_compute(self, organization_id: str, key: Hashable, compute: Callable[[], Any]):
        cache_key = (organization_id, key)
        with self._lock:
            if cache_key in self._entries:
                return self._entries[cache_key]
            generation = self._generations.get(organization_id, 0)
        value = compute()
        with self._lock:
            if self._generations.get(organization_id, 0) == generation:
                self._entries[cache_key] = value
            else:
                logger.debug("Not caching result for %s: changed during compute", organization_id)
        return value

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


change_feed = ChangeFeed()
reminder_cache = RecomputeCache(change_feed)
