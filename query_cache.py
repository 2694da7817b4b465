import itertools
import logging
import threading
import time

logger = logging.getLogger(__name__)


def normalize_key(key):
    """Turn a query key into a tuple of parts.

    A plain string is a one-part key, so '/api/admin/users' and
    ('/api/admin/users',) address the same entry.
    """
    if isinstance(key, (list, tuple)):
        return tuple(key)
    return (key,)


def key_matches(key, prefix):
    return key[:len(prefix)] == prefix


class CacheEntry:
    def __init__(self, data, fetched_at):
        self.data = data
        self.fetched_at = fetched_at

    def is_stale(self, stale_time, now):
        return (now - self.fetched_at) >= stale_time


class QueryCache:
    """Most recent successful response per query key.

    Entries go stale after ``stale_time`` seconds and are dropped once stale
    or invalidated. A fetch registers itself with ``begin`` before its
    request goes out; if the key is invalidated while the request is in
    flight, ``set`` discards the response instead of storing it.
    """

    def __init__(self, stale_time=300, clock=time.monotonic):
        self.stale_time = stale_time
        self._clock = clock
        self._entries = {}
        self._pending = {}
        self._tokens = itertools.count(1)
        self._lock = threading.Lock()

    def get(self, key):
        key = normalize_key(key)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_stale(self.stale_time, self._clock()):
                del self._entries[key]
                return None
            return entry.data

    def contains(self, key):
        with self._lock:
            return normalize_key(key) in self._entries

    def begin(self, key):
        """Register an in-flight fetch of ``key``; returns its token."""
        with self._lock:
            token = next(self._tokens)
            self._pending[token] = {'key': normalize_key(key), 'invalidated': False}
            return token

    def cancel(self, token):
        with self._lock:
            self._pending.pop(token, None)

    def set(self, key, data, token=None):
        key = normalize_key(key)
        with self._lock:
            pending = self._pending.pop(token, None) if token is not None else None
            if pending and pending['invalidated']:
                logger.debug('Discarding response for %s, invalidated while in flight', key)
                return False
            now = self._clock()
            self._prune(now)
            self._entries[key] = CacheEntry(data, now)
            return True

    def invalidate(self, key):
        """Drop every entry whose key starts with ``key``.

        Fetches of matching keys that are still in flight are marked so
        their responses are not stored.
        """
        prefix = normalize_key(key)
        with self._lock:
            matched = [k for k in self._entries if key_matches(k, prefix)]
            for entry_key in matched:
                del self._entries[entry_key]
            for pending in self._pending.values():
                if key_matches(pending['key'], prefix):
                    pending['invalidated'] = True
        logger.debug('Invalidated %d cache entries for %s', len(matched), prefix)
        return len(matched)

    def _prune(self, now):
        stale = [k for k, entry in self._entries.items() if entry.is_stale(self.stale_time, now)]
        for key in stale:
            del self._entries[key]

    def clear(self):
        with self._lock:
            self._entries.clear()
            for pending in self._pending.values():
                pending['invalidated'] = True

    def keys(self):
        with self._lock:
            return list(self._entries.keys())
